import copy
import json
from typing import Any

from fuel_analyzer.services.completion import CompletionRequest


def make_pdf_bytes(*lines: str) -> bytes:
    """Create a minimal valid single-page PDF with one text line per argument."""
    parts: list[str] = []
    y = 720
    for line in lines or ("test",):
        safe = line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        parts.append(f"BT /F1 11 Tf 50 {y} Td ({safe}) Tj ET")
        y -= 16
    content = ("\n".join(parts) + "\n").encode()

    objects = [
        b"1 0 obj\n<</Type /Catalog /Pages 2 0 R>>\nendobj\n",
        b"2 0 obj\n<</Type /Pages /Kids [3 0 R] /Count 1>>\nendobj\n",
        b"3 0 obj\n<</Type /Page /Parent 2 0 R /MediaBox [0 0 612 792]"
        b" /Contents 4 0 R /Resources <</Font <</F1 5 0 R>>>>>>\nendobj\n",
        f"4 0 obj\n<</Length {len(content)}>>\nstream\n".encode()
        + content
        + b"endstream\nendobj\n",
        b"5 0 obj\n<</Type /Font /Subtype /Type1 /BaseFont /Helvetica>>\nendobj\n",
    ]

    header = b"%PDF-1.4\n"
    body = b""
    offsets: list[int] = []
    for obj in objects:
        offsets.append(len(header) + len(body))
        body += obj

    xref_offset = len(header) + len(body)
    xref = f"xref\n0 {len(objects) + 1}\n0000000000 65535 f \n"
    xref += "".join(f"{off:010d} 00000 n \n" for off in offsets)
    trailer = (
        f"trailer\n<</Size {len(objects) + 1} /Root 1 0 R>>\n"
        f"startxref\n{xref_offset}\n%%EOF\n"
    )
    return header + body + xref.encode() + trailer.encode()


_REPORT: dict[str, Any] = {
    "period": {"month": 8, "year": 2025},
    "fuels": {
        "diesel_ex": {
            "total_revenue_zar": 15000,
            "quantity_liters": 750,
            "margin_percent": None,
            "profit_zar": None,
        },
        "vpower_95": {
            "total_revenue_zar": 0,
            "quantity_liters": 0,
            "margin_percent": None,
            "profit_zar": None,
        },
        "vpower_diesel": {
            "total_revenue_zar": 0,
            "quantity_liters": 0,
            "margin_percent": None,
            "profit_zar": None,
        },
    },
    "shop_lines": [
        {"category": "Deli Onsite", "total_revenue_zar": 2000, "quantity_units": 40}
    ],
    "forecast": None,
    "notes": "V-Power 95 and V-Power Diesel not in report; set to 0.",
    "advice": ["Push Deli combos at the pumps."],
}


def report_payload(**overrides: Any) -> dict[str, Any]:
    payload = copy.deepcopy(_REPORT)
    payload.update(overrides)
    return payload


class FakeCompletionClient:
    """Returns canned completion text and records every request."""

    model = "fake-model"

    def __init__(self, response: str | dict[str, Any] | None = None) -> None:
        if response is None:
            response = report_payload()
        self._response = response if isinstance(response, str) else json.dumps(response)
        self.requests: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> str:
        self.requests.append(request)
        return self._response


SAMPLE_REPORT_LINES = (
    "Monthly Period Report - August 2025",
    "Diesel Ex Total 15000.00 Qty 750.00",
    "Deli Onsite Total 2000.00 Qty 40",
)
