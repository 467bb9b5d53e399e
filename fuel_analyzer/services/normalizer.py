import copy
import logging
from typing import Any

from fuel_analyzer.api.v1.schemas import FUEL_KEYS

logger = logging.getLogger(__name__)

# Misspelled field names seen in model output, per fuel key: bad -> canonical.
_FIELD_TYPOS: dict[str, dict[str, str]] = {
    "diesel_ex": {"quantity_litres": "quantity_liters"},
    "vpower_95": {"quantity_litres": "quantity_liters"},
    "vpower_diesel": {
        "quantity_lers": "quantity_liters",
        "quantity_litres": "quantity_liters",
    },
}

EXCLUDED_CATEGORIES = frozenset({"Airtime", "Cosmetics", ""})
CATEGORY_RENAMES: dict[str, str] = {"Deli Onsite": "Deli onsite prepared"}

_FUEL_NUMBERS = ("total_revenue_zar", "quantity_liters")


def correct_field_typos(fuels: dict[str, Any]) -> dict[str, Any]:
    corrected = dict(fuels)
    for fuel_key, typos in _FIELD_TYPOS.items():
        line = corrected.get(fuel_key)
        if not isinstance(line, dict):
            continue
        line = dict(line)
        for bad, canonical in typos.items():
            if bad not in line:
                continue
            value = line.pop(bad)
            if line.get(canonical) is None:
                line[canonical] = value
            logger.info(
                "Corrected misspelled fuel field",
                extra={"fuel": fuel_key, "field": bad, "canonical": canonical},
            )
        corrected[fuel_key] = line
    return corrected


def normalize_categories(shop_lines: Any) -> list[dict[str, Any]]:
    """Drop excluded categories and apply renames, preserving order."""
    if not isinstance(shop_lines, list):
        return []
    normalized: list[dict[str, Any]] = []
    for line in shop_lines:
        if not isinstance(line, dict):
            continue
        category = str(line.get("category") or "").strip()
        if category in EXCLUDED_CATEGORIES:
            continue
        normalized.append({**line, "category": CATEGORY_RENAMES.get(category, category)})
    return normalized


def complete_fuels(fuels: Any) -> tuple[dict[str, Any], list[str]]:
    """Return exactly the three fuel lines, zero-filling gaps, plus notes."""
    source = fuels if isinstance(fuels, dict) else {}
    unknown = sorted(set(source) - set(FUEL_KEYS))
    if unknown:
        logger.warning("Dropping unknown fuel keys", extra={"fuel_keys": unknown})

    completed: dict[str, Any] = {}
    notes: list[str] = []
    for key in FUEL_KEYS:
        line = source.get(key)
        if not isinstance(line, dict):
            completed[key] = {
                "total_revenue_zar": 0,
                "quantity_liters": 0,
                "margin_percent": None,
                "profit_zar": None,
            }
            notes.append(f"{key}: not found in report, defaulted to 0.")
            continue
        line = dict(line)
        missing = [field for field in _FUEL_NUMBERS if line.get(field) is None]
        for field in missing:
            line[field] = 0
        if missing:
            notes.append(f"{key}: {', '.join(missing)} missing, defaulted to 0.")
        line.setdefault("margin_percent", None)
        line.setdefault("profit_zar", None)
        completed[key] = line
    return completed, notes


def _normalize_forecast(forecast: Any) -> Any:
    if not isinstance(forecast, dict):
        return None
    fuels = forecast.get("fuels")
    return {
        **forecast,
        "fuels": {
            k: v for k, v in (fuels if isinstance(fuels, dict) else {}).items()
            if k in FUEL_KEYS
        },
        "shop_lines": normalize_categories(forecast.get("shop_lines")),
    }


class ReportNormalizer:
    """Deterministic clean-up of a model candidate; never mutates its input."""

    def normalize(self, candidate: dict[str, Any]) -> dict[str, Any]:
        data = copy.deepcopy(candidate)
        fuels = data.get("fuels")
        if isinstance(fuels, dict):
            fuels = correct_field_typos(fuels)
        data["fuels"], fill_notes = complete_fuels(fuels)
        data["shop_lines"] = normalize_categories(data.get("shop_lines"))
        data["forecast"] = _normalize_forecast(data.get("forecast"))
        data["notes"] = self._merge_notes(data.get("notes"), fill_notes)
        advice = data.get("advice")
        data["advice"] = (
            [str(item) for item in advice if item] if isinstance(advice, list) else []
        )
        return data

    @staticmethod
    def _merge_notes(notes: Any, additions: list[str]) -> str:
        parts = [str(notes).strip()] if notes else []
        parts.extend(note for note in additions if note not in parts)
        return " ".join(part for part in parts if part)
