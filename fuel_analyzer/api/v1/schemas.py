from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

FuelKey = Literal["diesel_ex", "vpower_95", "vpower_diesel"]
FUEL_KEYS: tuple[FuelKey, ...] = ("diesel_ex", "vpower_95", "vpower_diesel")


class ReportPeriod(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000)


class FuelLine(BaseModel):
    total_revenue_zar: float = Field(ge=0)
    quantity_liters: float = Field(ge=0)
    margin_percent: float | None = None
    profit_zar: float | None = None


class FuelLines(BaseModel):
    diesel_ex: FuelLine
    vpower_95: FuelLine
    vpower_diesel: FuelLine


class ShopLine(BaseModel):
    category: str
    total_revenue_zar: float = Field(ge=0)
    quantity_units: float = Field(ge=0)


class ForecastFuelLine(BaseModel):
    total_revenue_zar: float = Field(ge=0)
    quantity_liters: float = Field(ge=0)


class ForecastBlock(BaseModel):
    method: str
    assumptions: str = ""
    fuels: dict[FuelKey, ForecastFuelLine] = Field(default_factory=dict)
    shop_lines: list[ShopLine] = Field(default_factory=list)


class MetricChanges(BaseModel):
    revenue_change: float | None = None
    profit_change: float | None = None
    volume_change: float | None = None
    margin_change: float | None = None


class KPIs(BaseModel):
    revenue_growth_rate: float | None = None
    shop_profit_margin: float | None = None
    fuel_margins_rand: float | None = None
    shop_fuel_ratio_kpi: float | None = None


class UIMetrics(BaseModel):
    total_revenue: float
    total_profit: float
    total_volume: float
    shop_revenue: float
    shop_fuel_ratio: float
    fuel_margin: float
    shop_profit: float | None = None
    changes: MetricChanges | None = None
    kpis: KPIs | None = None


class ExtractedReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    period: ReportPeriod
    fuels: FuelLines
    shop_lines: list[ShopLine] = Field(default_factory=list)
    forecast: ForecastBlock | None = None
    notes: str = ""
    advice: list[str] = Field(default_factory=list)
    ui_metrics: UIMetrics | None = None
    summary: str | None = None


class FuelPriceInput(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    cost_price_per_liter: float
    selling_price_per_liter: float


class FuelPrices(BaseModel):
    model_config = ConfigDict(extra="forbid")

    diesel_ex: FuelPriceInput | None = None
    vpower_95: FuelPriceInput | None = None
    vpower_diesel: FuelPriceInput | None = None


class ReportSource(BaseModel):
    bucket: str
    path: str


class StorageAnalysisRequest(BaseModel):
    path: str | None = None
    fuel_prices: FuelPrices | None = None


class TextAnalysisRequest(BaseModel):
    text: str
    fuel_prices: FuelPrices | None = None
