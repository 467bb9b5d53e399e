import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

from fuel_analyzer.api.v1.schemas import FUEL_KEYS, FuelPrices
from fuel_analyzer.core.errors import InvalidModelOutput, ModelUnavailable
from fuel_analyzer.services.completion import CompletionClient, CompletionRequest
from fuel_analyzer.services.pdf_extractor import ExtractionResult
from fuel_analyzer.services.report_schema import REPORT_SCHEMA, SCHEMA_NAME

logger = logging.getLogger(__name__)

_DEFAULT_TEMPERATURE = 0.1
_DEFAULT_TIMEOUT_SECONDS = 120.0

_SYSTEM_PROMPT = (
    "You are a strict JSON extraction engine for monthly South African fuel "
    "station Period Reports. Return ONE JSON object only, matching the "
    "provided JSON schema exactly. Do not add properties that are not in the "
    "schema and do not add any text outside the JSON object.\n"
    "Rules:\n"
    '- Interpret every "Total" value as GROSS REVENUE in ZAR.\n'
    "- Fuel quantities are LITRES. Shop quantities are UNITS.\n"
    "- Ignore any PROFIT or MARGIN fields printed in the report entirely. "
    "Only revenue and quantity are trusted. Set margin_percent and profit_zar "
    "to null.\n"
    "- Always return all three fuels: diesel_ex (Diesel Ex), vpower_95 "
    "(V-Power 95) and vpower_diesel (V-Power Diesel). If a fuel is absent or "
    'unreadable, use 0 for its numbers and say so in "notes".\n'
    "- If a numeric value cannot be read confidently, set it to 0 and add a "
    'brief explanation in "notes". Never guess a value.\n'
    "- Promotions and discounts are part of sales, not separate shop lines.\n"
    '- period is the month (1-12) and year the report covers.\n'
    '- forecast: give a short "method" and "assumptions" for a next-period '
    "projection. Without evidence of a trend, carry the current period flat.\n"
    '- advice: 3 to 7 concise, practical improvement suggestions based on '
    "the numbers.\n"
    "- fuel_prices in the request context only inform the advice. Never use "
    "them to compute margin_percent or profit_zar."
)


@dataclass(frozen=True)
class ModelCandidate:
    data: dict[str, Any]
    raw: str


def _extract_json_object(raw: str) -> str | None:
    """Return the first balanced {...} substring in raw, handling nested objects."""
    start = raw.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(raw)):
        ch = raw[i]
        if escape_next:
            escape_next = False
            continue
        if ch == "\\" and in_string:
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return raw[start : i + 1]
    return None


def parse_model_output(raw: str) -> dict[str, Any]:
    """Decode the completion text into a candidate record.

    Raises InvalidModelOutput when no JSON object can be recovered or when the
    object lacks any of the three fuel keys.
    """
    data: Any = None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        extracted = _extract_json_object(raw)
        if extracted:
            try:
                data = json.loads(extracted)
            except json.JSONDecodeError:
                data = None

    if not isinstance(data, dict):
        raise InvalidModelOutput("Model did not return a JSON object", raw=raw)

    fuels = data.get("fuels")
    missing = [k for k in FUEL_KEYS if not isinstance(fuels, dict) or k not in fuels]
    if missing:
        raise InvalidModelOutput(
            f"Model output is missing required fuel keys: {', '.join(missing)}",
            raw=raw,
        )
    return data


class ReportExtractor:
    def __init__(
        self,
        client: CompletionClient,
        temperature: float = _DEFAULT_TEMPERATURE,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self._temperature = temperature
        self._timeout = timeout_seconds

    async def extract(
        self,
        extraction: ExtractionResult,
        fuel_prices: FuelPrices | None = None,
    ) -> ModelCandidate:
        request = self._build_request(extraction, fuel_prices)
        try:
            raw = await asyncio.wait_for(
                self._client.complete(request), timeout=self._timeout
            )
        except TimeoutError as exc:
            raise ModelUnavailable(
                f"Completion did not finish within {self._timeout:g}s"
            ) from exc
        logger.debug(
            "Model responded",
            extra={"model": request.model, "response_chars": len(raw)},
        )
        return ModelCandidate(data=parse_model_output(raw), raw=raw)

    def _build_request(
        self, extraction: ExtractionResult, fuel_prices: FuelPrices | None
    ) -> CompletionRequest:
        context: dict[str, Any] = {}
        if fuel_prices is not None:
            context["fuel_prices"] = fuel_prices.model_dump(exclude_none=True)
        # NOTE: report text is interpolated directly into the user turn. The
        # closed response schema keeps injected instructions from adding
        # fields, but values can still be steered by hostile report content.
        context_line = f"Request context: {json.dumps(context)}"
        if extraction.path == "document":
            return CompletionRequest(
                model=self._client.model,
                instruction=_SYSTEM_PROMPT,
                prompt=f"{context_line}\n\nThe report is attached as a PDF.",
                temperature=self._temperature,
                response_schema=REPORT_SCHEMA,
                schema_name=SCHEMA_NAME,
                document=extraction.text,
                filename=extraction.filename,
            )
        return CompletionRequest(
            model=self._client.model,
            instruction=_SYSTEM_PROMPT,
            prompt=(
                f"{context_line}\n\n"
                f"PDF text (truncated if very long):\n\n{extraction.text}\n\n"
                "Return JSON only."
            ),
            temperature=self._temperature,
            response_schema=REPORT_SCHEMA,
            schema_name=SCHEMA_NAME,
            filename=extraction.filename,
        )
