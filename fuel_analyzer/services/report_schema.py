"""JSON Schema handed to the model as its structured-output contract.

Every object is closed (``additionalProperties: false``) and lists all of its
properties as required so the schema is accepted by OpenAI strict mode as
well as by the llama.cpp grammar converter.
"""

from typing import Any

from fuel_analyzer.api.v1.schemas import FUEL_KEYS

SCHEMA_NAME = "analyzed_period_report"

_NUMBER = {"type": "number", "minimum": 0}
_NULLABLE_NUMBER = {"type": ["number", "null"]}


def _closed(properties: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def _fuel_line(with_margins: bool) -> dict[str, Any]:
    properties: dict[str, Any] = {
        "total_revenue_zar": _NUMBER,
        "quantity_liters": _NUMBER,
    }
    if with_margins:
        properties["margin_percent"] = _NULLABLE_NUMBER
        properties["profit_zar"] = _NULLABLE_NUMBER
    return _closed(properties)


def _fuels(with_margins: bool) -> dict[str, Any]:
    return _closed({key: _fuel_line(with_margins) for key in FUEL_KEYS})


_SHOP_LINES = {
    "type": "array",
    "items": _closed(
        {
            "category": {"type": "string"},
            "total_revenue_zar": _NUMBER,
            "quantity_units": _NUMBER,
        }
    ),
}

REPORT_SCHEMA: dict[str, Any] = _closed(
    {
        "period": _closed(
            {
                "month": {"type": "integer", "minimum": 1, "maximum": 12},
                "year": {"type": "integer", "minimum": 2000},
            }
        ),
        "fuels": _fuels(with_margins=True),
        "shop_lines": _SHOP_LINES,
        "forecast": {
            "anyOf": [
                _closed(
                    {
                        "method": {"type": "string"},
                        "assumptions": {"type": "string"},
                        "fuels": _fuels(with_margins=False),
                        "shop_lines": _SHOP_LINES,
                    }
                ),
                {"type": "null"},
            ]
        },
        "notes": {"type": "string"},
        "advice": {"type": "array", "items": {"type": "string"}},
    }
)
