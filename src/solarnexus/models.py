"""Data models for tariffs, energy data, savings and SDG impact."""

from dataclasses import asdict, dataclass, field, fields, is_dataclass
from datetime import date, datetime
from typing import Any, Iterator, Literal

from .errors import InvalidEnergyDataError

Season = Literal["summer", "winter"]
Priority = Literal["high", "medium", "low"]
Trend = Literal["improving", "stable", "declining"]

# Rate periods in the order they are matched against a time of day
PERIOD_ORDER = ("peak", "standard", "off_peak")


@dataclass
class TariffRates:
    """Price per kWh for each rate period."""

    peak: float
    standard: float
    off_peak: float
    feed_in: float

    def rate_for(self, period: str) -> float:
        return getattr(self, period)

    def scaled(self, adjustment: "MunicipalityAdjustment") -> "TariffRates":
        """Return new rates with each key multiplied by its adjustment."""
        return TariffRates(
            peak=self.peak * adjustment.peak,
            standard=self.standard * adjustment.standard,
            off_peak=self.off_peak * adjustment.off_peak,
            feed_in=self.feed_in * adjustment.feed_in,
        )

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "TariffRates":
        """Build rates from a mapping with snake_case or camelCase keys."""
        rates = cls(
            peak=float(data["peak"]),
            standard=float(data["standard"]),
            off_peak=float(_pick(data, "off_peak", "offPeak")),
            feed_in=float(_pick(data, "feed_in", "feedIn")),
        )
        for f in fields(rates):
            if getattr(rates, f.name) < 0:
                raise ValueError(f"Tariff rate '{f.name}' must not be negative")
        return rates


@dataclass
class TimePeriod:
    """A time-of-day range. Wraps past midnight when start > end."""

    start: str  # HH:MM format
    end: str  # HH:MM format


@dataclass
class TimePeriods:
    """Time ranges for each rate period (feed-in has none)."""

    peak: list[TimePeriod] = field(default_factory=list)
    standard: list[TimePeriod] = field(default_factory=list)
    off_peak: list[TimePeriod] = field(default_factory=list)

    def items(self) -> Iterator[tuple[str, list[TimePeriod]]]:
        """Yield (period, ranges) in matching order: peak, standard, off_peak."""
        for period in PERIOD_ORDER:
            yield period, getattr(self, period)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "TimePeriods":
        def ranges(key: str, alt: str | None = None) -> list[TimePeriod]:
            raw = data.get(key) or (data.get(alt) if alt else None) or []
            return [TimePeriod(start=r["start"], end=r["end"]) for r in raw]

        return cls(
            peak=ranges("peak"),
            standard=ranges("standard"),
            off_peak=ranges("off_peak", "offPeak"),
        )


@dataclass
class SeasonalMultipliers:
    """Rate multipliers for one season. Feed-in is never adjusted."""

    peak: float = 1.0
    standard: float = 1.0
    off_peak: float = 1.0

    def multiplier_for(self, period: str) -> float:
        return getattr(self, period, 1.0)

    def mean(self) -> float:
        return (self.peak + self.standard + self.off_peak) / 3


@dataclass
class SeasonalAdjustments:
    summer: SeasonalMultipliers
    winter: SeasonalMultipliers

    def for_season(self, season: Season) -> SeasonalMultipliers:
        return getattr(self, season)


@dataclass
class MunicipalityAdjustment:
    """Per-key rate multipliers for a municipality."""

    peak: float = 1.0
    standard: float = 1.0
    off_peak: float = 1.0
    feed_in: float = 1.0


@dataclass
class DailyTotals:
    """Aggregate energy figures for a day (kWh)."""

    grid_consumption: float = 0.0
    solar_usage: float = 0.0
    feed_in: float = 0.0
    solar_generation: float = 0.0
    peak_usage: float = 0.0
    off_peak_usage: float = 0.0
    standard_usage: float = 0.0


@dataclass
class HourlyRecord:
    """Energy figures for one hour (kWh)."""

    time: str  # HH:MM format
    grid_consumption: float = 0.0
    solar_usage: float = 0.0
    feed_in: float = 0.0


@dataclass
class HourlyRecords:
    """An ordered day of hourly records, with the daily totals alongside."""

    records: list[HourlyRecord]
    totals: DailyTotals = field(default_factory=DailyTotals)


EnergyData = DailyTotals | HourlyRecords

_DAILY_KEYS = {
    "grid_consumption": "gridConsumption",
    "solar_usage": "solarUsage",
    "feed_in": "feedIn",
    "solar_generation": "solarGeneration",
    "peak_usage": "peakUsage",
    "off_peak_usage": "offPeakUsage",
    "standard_usage": "standardUsage",
}


def _pick(data: dict[str, Any], key: str, alt: str, default: Any = None) -> Any:
    if key in data:
        return data[key]
    if alt in data:
        return data[alt]
    if default is None:
        raise KeyError(key)
    return default


def _number(value: Any, name: str) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise InvalidEnergyDataError(f"'{name}' is not a number: {value!r}") from e


def parse_energy_data(data: "dict[str, Any] | EnergyData") -> EnergyData:
    """Resolve raw energy data into daily totals or hourly records.

    Hourly records are used when `hourlyData` (or `hourly_data`) is a
    non-empty list; otherwise the mapping is read as daily totals. Missing
    figures default to 0. Accepts camelCase or snake_case keys.
    """
    if isinstance(data, (DailyTotals, HourlyRecords)):
        return data
    if not isinstance(data, dict):
        raise InvalidEnergyDataError(f"Energy data must be a mapping, got {type(data).__name__}")

    totals = DailyTotals(
        **{
            key: _number(_pick(data, key, camel, 0), key)
            for key, camel in _DAILY_KEYS.items()
        }
    )

    hourly = data.get("hourlyData", data.get("hourly_data"))
    if isinstance(hourly, list) and hourly:
        records = []
        for entry in hourly:
            if not isinstance(entry, dict) or "time" not in entry:
                raise InvalidEnergyDataError(f"Hourly entry has no time: {entry!r}")
            records.append(
                HourlyRecord(
                    time=str(entry["time"]),
                    grid_consumption=_number(
                        _pick(entry, "grid_consumption", "gridConsumption", 0), "gridConsumption"
                    ),
                    solar_usage=_number(_pick(entry, "solar_usage", "solarUsage", 0), "solarUsage"),
                    feed_in=_number(_pick(entry, "feed_in", "feedIn", 0), "feedIn"),
                )
            )
        return HourlyRecords(records=records, totals=totals)

    return totals


@dataclass
class SavingsCalculation:
    """Cost and savings breakdown. Monetary values are rounded to cents."""

    total_grid_cost: float
    total_solar_savings: float
    total_feed_in_earnings: float
    net_savings: float
    total_benefit: float
    savings_percentage: float
    season: Season
    currency: str
    period: str | None = None


@dataclass
class UsageRecommendation:
    type: str
    title: str
    description: str
    potential_saving: float
    priority: Priority


@dataclass
class Site:
    """A solar installation belonging to an organization."""

    id: str
    name: str
    capacity: float  # kW
    organization_id: str | None = None
    is_active: bool = True
    address: str | None = None
    municipality: str | None = None
    solax_client_id: str | None = None
    solax_client_secret: str | None = None
    solax_plant_id: str | None = None

    @property
    def has_integration_credentials(self) -> bool:
        return bool(self.solax_client_id and self.solax_client_secret and self.solax_plant_id)


@dataclass
class Organization:
    id: str
    name: str
    is_active: bool = True
    sites: list[Site] = field(default_factory=list)


@dataclass
class SiteEnergy:
    """Energy totals for a site over a window (kWh)."""

    total_generation: float = 0.0
    total_consumption: float = 0.0
    hourly_data: list[HourlyRecord] = field(default_factory=list)


@dataclass
class SDGMetric:
    goal: int
    target: str
    indicator: str
    value: float
    unit: str
    trend: Trend
    last_updated: datetime


@dataclass
class SDGSummary:
    primary_goals: list[int]
    total_co2_avoided: float  # kg
    renewable_energy_generated: float  # kWh
    jobs_supported: int
    communities_impacted: int


@dataclass
class SDGImpact:
    organization_id: str
    organization_name: str
    total_sites: int
    total_capacity: float
    metrics: list[SDGMetric]
    summary: SDGSummary


@dataclass
class TrendFigure:
    current: float
    previous: float
    change: float  # percent


@dataclass
class SDGTrends:
    energy_generation: TrendFigure
    co2_avoided: TrendFigure
    capacity: TrendFigure


@dataclass
class SDGReport:
    period_start: datetime
    period_end: datetime
    impact: SDGImpact
    trends: SDGTrends
    recommendations: list[str]


@dataclass
class GoalScore:
    goal: int
    score: float  # 0-100
    description: str


@dataclass
class AlignmentScore:
    overall_score: int
    goal_scores: list[GoalScore]
    strengths: list[str]
    improvements: list[str]


@dataclass
class SDGComparison:
    organizations: list[SDGImpact]
    aggregated: dict[str, float]


@dataclass
class EnvironmentalImpact:
    """Headline environmental equivalents for a generation total."""

    total_solar_generation: float
    co2_reduction: float  # kg
    trees_equivalent: float
    homes_equivalent: float
    sdg_goals: dict[str, dict[str, Any]]


@dataclass
class UsageAnalysis:
    """Split of a day's consumption between solar and grid (kWh, percent)."""

    solar_generation: float
    solar_usage: float
    grid_usage: float
    grid_feed_in: float
    total_consumption: float
    solar_percentage: float
    grid_percentage: float


@dataclass
class DailyReading:
    """One day of energy totals for a site."""

    site_id: str
    date: date
    generation_kwh: float
    consumption_kwh: float = 0.0
    feed_in_kwh: float = 0.0
    source: str | None = None


def _serialize(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return _serialize(asdict(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


def to_dict(obj: Any) -> Any:
    """Convert a result dataclass (or list of them) to JSON-serializable data."""
    return _serialize(obj)
