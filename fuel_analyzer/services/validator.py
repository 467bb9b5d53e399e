import json
import logging
from datetime import date, datetime
from typing import Any

from dateutil import parser as dateutil_parser
from pydantic import ValidationError

from fuel_analyzer.api.v1.schemas import FUEL_KEYS, ExtractedReport
from fuel_analyzer.core.errors import InvalidModelOutput

logger = logging.getLogger(__name__)

# Pump prices in ZAR per litre have sat well inside this band for years; a
# value outside it usually means revenue and litres were read from different
# columns.
_PLAUSIBLE_PRICE_PER_LITER = (5.0, 60.0)


def _coerce_month(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    stripped = value.strip()
    if stripped.isdigit():
        return int(stripped)
    try:
        return dateutil_parser.parse(stripped, default=datetime(2000, 1, 1)).month
    except (ValueError, OverflowError):
        return value


def _coerce_period(period: Any) -> Any:
    """Accept "August 2025"-style strings and month names from the model."""
    if isinstance(period, str):
        try:
            parsed = dateutil_parser.parse(period, default=datetime(1900, 1, 1))
        except (ValueError, OverflowError):
            return period
        return {"month": parsed.month, "year": parsed.year}
    if isinstance(period, dict):
        return {**period, "month": _coerce_month(period.get("month"))}
    return period


class ReportValidator:
    def validate(
        self, normalized: dict[str, Any], raw: str | None = None
    ) -> ExtractedReport:
        """Build the typed report from a normalized record.

        ``raw`` is the model text the record came from; it is attached to
        InvalidModelOutput instead of the normalized record when given.
        """
        data = dict(normalized)
        data["period"] = _coerce_period(data.get("period"))
        # Derived fields are always recomputed downstream.
        data.pop("ui_metrics", None)
        data.pop("summary", None)
        report = self._coerce(data, raw)
        self._check_price_per_liter(report)
        self._check_period(report)
        return report

    def _coerce(self, data: dict[str, Any], raw: str | None) -> ExtractedReport:
        try:
            return ExtractedReport.model_validate(data)
        except ValidationError as exc:
            errors = [
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            ]
            raise InvalidModelOutput(
                "Model output does not match the report schema",
                raw=raw if raw is not None else json.dumps(data, default=str),
                errors=errors,
            ) from exc

    def _check_price_per_liter(self, report: ExtractedReport) -> None:
        low, high = _PLAUSIBLE_PRICE_PER_LITER
        for key in FUEL_KEYS:
            line = getattr(report.fuels, key)
            if line.quantity_liters <= 0 or line.total_revenue_zar <= 0:
                continue
            price = line.total_revenue_zar / line.quantity_liters
            if not low <= price <= high:
                logger.warning(
                    "Implausible price per litre for %s: R%.2f", key, price
                )

    def _check_period(self, report: ExtractedReport) -> None:
        today = date.today()
        if (report.period.year, report.period.month) > (today.year, today.month):
            logger.warning(
                "Report period %02d/%d is in the future",
                report.period.month,
                report.period.year,
            )
