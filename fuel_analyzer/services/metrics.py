"""Margin, profit and dashboard KPIs derived from a validated report.

Everything here is pure: the same report and price map always give the same
figures. Margins reported by the model are never trusted; they are recomputed
from caller-supplied prices or set to null.
"""

from fuel_analyzer.api.v1.schemas import (
    FUEL_KEYS,
    ExtractedReport,
    FuelLine,
    FuelPriceInput,
    FuelPrices,
    KPIs,
    MetricChanges,
    UIMetrics,
)


def compute_fuel_metrics(
    line: FuelLine, price: FuelPriceInput | None
) -> tuple[float | None, float | None]:
    """Return (margin_percent, profit_zar) for one fuel line."""
    if price is None:
        return None, None
    denominator = price.selling_price_per_liter or 1
    margin_percent = (
        (price.selling_price_per_liter - price.cost_price_per_liter) / denominator * 100
    )
    profit_zar = line.total_revenue_zar * margin_percent / 100
    return margin_percent, profit_zar


def compute_ui_metrics(report: ExtractedReport) -> UIMetrics:
    fuel_lines = [getattr(report.fuels, key) for key in FUEL_KEYS]
    fuel_revenue = sum(line.total_revenue_zar for line in fuel_lines)
    fuel_liters = sum(line.quantity_liters for line in fuel_lines)
    fuel_profit = sum(line.profit_zar or 0 for line in fuel_lines)
    shop_revenue = sum(line.total_revenue_zar for line in report.shop_lines)

    total_volume = fuel_liters
    shop_fuel_ratio = shop_revenue / total_volume if total_volume > 0 else 0.0

    return UIMetrics(
        total_revenue=fuel_revenue + shop_revenue,
        # Shop cost data never appears in the reports, so only fuel profit counts.
        total_profit=fuel_profit,
        total_volume=total_volume,
        shop_revenue=shop_revenue,
        shop_fuel_ratio=shop_fuel_ratio,
        fuel_margin=fuel_profit,
        shop_profit=None,
        changes=MetricChanges(),
        kpis=KPIs(
            fuel_margins_rand=fuel_profit,
            shop_fuel_ratio_kpi=shop_fuel_ratio,
        ),
    )


def format_summary(metrics: UIMetrics) -> str:
    return (
        f"Revenue R{metrics.total_revenue:.0f}, "
        f"Volume {metrics.total_volume:.0f} L, "
        f"Shop/L R{metrics.shop_fuel_ratio:.2f}."
    )


class MetricsEngine:
    def apply(
        self, report: ExtractedReport, fuel_prices: FuelPrices | None = None
    ) -> ExtractedReport:
        prices = fuel_prices or FuelPrices()
        fuel_updates = {}
        for key in FUEL_KEYS:
            line: FuelLine = getattr(report.fuels, key)
            margin_percent, profit_zar = compute_fuel_metrics(
                line, getattr(prices, key)
            )
            fuel_updates[key] = line.model_copy(
                update={"margin_percent": margin_percent, "profit_zar": profit_zar}
            )
        priced = report.model_copy(
            update={"fuels": report.fuels.model_copy(update=fuel_updates)}
        )
        metrics = compute_ui_metrics(priced)
        return priced.model_copy(
            update={"ui_metrics": metrics, "summary": format_summary(metrics)}
        )
