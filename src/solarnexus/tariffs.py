"""Tariff loading and time-of-use savings calculation."""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, time
from pathlib import Path
from typing import Any

import yaml

from .errors import InvalidTimeError
from .models import (
    DailyTotals,
    EnergyData,
    HourlyRecords,
    MunicipalityAdjustment,
    SavingsCalculation,
    Season,
    SeasonalAdjustments,
    SeasonalMultipliers,
    TariffRates,
    TimePeriod,
    TimePeriods,
    UsageRecommendation,
    parse_energy_data,
)
from .rounding import round_money

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "data" / "tariffs.yaml"

SUMMER_MONTHS = {10, 11, 12, 1, 2, 3}
FALLBACK_PERIOD = "standard"

PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


@dataclass
class TariffConfig:
    """Rates, time periods and adjustments for one deployment."""

    rates: TariffRates
    time_periods: TimePeriods
    seasonal_adjustments: SeasonalAdjustments
    municipalities: dict[str, MunicipalityAdjustment] = field(default_factory=dict)
    currency: str = "ZAR"
    system_lifetime_years: int = 25


def load_tariff_config(config_path: Path | None = None) -> TariffConfig:
    """Load tariff configuration from a YAML file."""
    path = config_path or DEFAULT_CONFIG_PATH
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    seasons = data.get("seasonal_adjustments", {})
    municipalities = {
        slug.lower(): MunicipalityAdjustment(**values)
        for slug, values in (data.get("municipalities") or {}).items()
    }

    return TariffConfig(
        rates=TariffRates.from_mapping(data["rates"]),
        time_periods=TimePeriods.from_mapping(data.get("time_periods", {})),
        seasonal_adjustments=SeasonalAdjustments(
            summer=SeasonalMultipliers(**seasons.get("summer", {})),
            winter=SeasonalMultipliers(**seasons.get("winter", {})),
        ),
        municipalities=municipalities,
        currency=data.get("currency", "ZAR"),
        system_lifetime_years=int(data.get("system_lifetime_years", 25)),
    )


def get_current_season(date: datetime) -> Season:
    """Southern-hemisphere season for a date: October to March is summer."""
    return "summer" if date.month in SUMMER_MONTHS else "winter"


def time_to_minutes(time_str: str) -> int:
    """Convert an HH:MM string to minutes since midnight."""
    match = _TIME_PATTERN.match(time_str.strip()) if isinstance(time_str, str) else None
    if not match:
        raise InvalidTimeError(f"Expected HH:MM time, got {time_str!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidTimeError(f"Time out of range: {time_str!r}")
    return hours * 60 + minutes


def time_in_range(check_time: str, start: str, end: str) -> bool:
    """Check if a time falls within [start, end) (handles overnight ranges)."""
    minutes = time_to_minutes(check_time)
    start_minutes = time_to_minutes(start)
    end_minutes = time_to_minutes(end)

    if start_minutes <= end_minutes:
        return start_minutes <= minutes < end_minutes
    else:
        # Overnight range (e.g., 22:00 to 06:00)
        return minutes >= start_minutes or minutes < end_minutes


def resolve_rates(rates: TariffRates | dict[str, Any]) -> TariffRates:
    """Accept rates as a TariffRates or a plain mapping."""
    if isinstance(rates, TariffRates):
        return rates
    try:
        return TariffRates.from_mapping(rates)
    except (KeyError, TypeError) as e:
        raise ValueError(f"Tariff rates need peak, standard, off_peak and feed_in: {rates!r}") from e


def resolve_time_periods(time_periods: TimePeriods | dict[str, Any] | None) -> TimePeriods | None:
    """Accept time periods as a TimePeriods or a plain mapping.

    A mapping that cannot be read yields no periods, so lookups fall back
    to 'standard'.
    """
    if time_periods is None or isinstance(time_periods, TimePeriods):
        return time_periods
    try:
        return TimePeriods.from_mapping(time_periods)
    except (AttributeError, KeyError, TypeError):
        logger.warning("Ignoring malformed time periods: %r", time_periods)
        return TimePeriods()


def get_tariff_period(
    check_time: str | time | datetime, time_periods: TimePeriods | dict[str, Any] | None
) -> str:
    """Return the first rate period whose ranges contain the time.

    Periods are tried in the order peak, standard, off_peak, and ranges in
    the order given. Falls back to 'standard' when nothing matches. A range
    with a malformed bound never matches; a malformed check_time raises.
    """
    if isinstance(check_time, (time, datetime)):
        check_time = check_time.strftime("%H:%M")
    time_to_minutes(check_time)

    time_periods = resolve_time_periods(time_periods)
    if not time_periods:
        return FALLBACK_PERIOD

    for period, ranges in time_periods.items():
        for r in ranges:
            try:
                matched = time_in_range(check_time, r.start, r.end)
            except InvalidTimeError:
                logger.warning("Ignoring malformed %s range %s-%s", period, r.start, r.end)
                continue
            if matched:
                return period

    return FALLBACK_PERIOD


def _describe_ranges(ranges: list[TimePeriod]) -> str:
    return ", ".join(f"{r.start}-{r.end}" for r in ranges)


class TariffEngine:
    """Time-of-use cost and savings calculations.

    The clock is only consulted for the season; pass a fixed clock to make
    results reproducible.
    """

    def __init__(
        self,
        config: TariffConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config or load_tariff_config()
        self.clock = clock

    @property
    def default_rates(self) -> TariffRates:
        return self.config.rates

    @property
    def default_time_periods(self) -> TimePeriods:
        return self.config.time_periods

    def get_current_season(self, date: datetime | None = None) -> Season:
        return get_current_season(date or self.clock())

    def get_tariff_period(
        self,
        check_time: str | time | datetime,
        time_periods: TimePeriods | dict[str, Any] | None = None,
    ) -> str:
        return get_tariff_period(check_time, time_periods or self.default_time_periods)

    def get_municipality_adjustments(self, municipality: str) -> MunicipalityAdjustment:
        """Rate multipliers for a municipality slug (all 1.0 if unknown)."""
        return self.config.municipalities.get(municipality.lower(), MunicipalityAdjustment())

    def get_municipal_rates(self, address: str | None, municipality: str | None = None) -> TariffRates:
        """Default rates adjusted for a municipality.

        Never raises: on any error the default rates are returned.
        """
        try:
            rates = replace(self.default_rates)
            if municipality:
                rates = rates.scaled(self.get_municipality_adjustments(municipality))

            logger.info(
                "Retrieved municipal rates for %s (municipality=%s): %s", address, municipality, rates
            )
            return rates
        except Exception:
            logger.exception("Failed to get municipal rates for %s, using defaults", address)
            return replace(self.default_rates)

    def calculate_savings(
        self,
        energy_data: EnergyData | dict[str, Any],
        rates: TariffRates | dict[str, Any],
        time_periods: TimePeriods | dict[str, Any] | None = None,
    ) -> SavingsCalculation:
        """Calculate grid cost, solar savings and feed-in earnings.

        Hourly records are priced per hour at the seasonally adjusted rate of
        their tariff period. Daily totals are priced at a single blended rate:
        the mean of the three consumption rates times the mean seasonal
        multiplier. Feed-in is always paid at the unadjusted feed-in rate.
        """
        data = parse_energy_data(energy_data)
        rates = resolve_rates(rates)
        time_periods = resolve_time_periods(time_periods) or self.default_time_periods

        season = self.get_current_season()
        seasonal = self.config.seasonal_adjustments.for_season(season)

        total_grid_cost = 0.0
        total_solar_savings = 0.0
        total_feed_in_earnings = 0.0

        if isinstance(data, HourlyRecords):
            for record in data.records:
                period = get_tariff_period(record.time, time_periods)
                rate = rates.rate_for(period) * seasonal.multiplier_for(period)

                total_grid_cost += record.grid_consumption * rate
                total_solar_savings += record.solar_usage * rate
                total_feed_in_earnings += record.feed_in * rates.feed_in
        else:
            avg_rate = (rates.peak + rates.standard + rates.off_peak) / 3
            seasonal_avg_rate = avg_rate * seasonal.mean()

            total_grid_cost = data.grid_consumption * seasonal_avg_rate
            total_solar_savings = data.solar_usage * seasonal_avg_rate
            total_feed_in_earnings = data.feed_in * rates.feed_in

        net_savings = total_solar_savings + total_feed_in_earnings
        # Kept separate from net savings for future benefit components
        total_benefit = net_savings

        denominator = total_grid_cost + net_savings
        savings_percentage = net_savings / denominator * 100 if denominator else 0.0

        return SavingsCalculation(
            total_grid_cost=round_money(total_grid_cost),
            total_solar_savings=round_money(total_solar_savings),
            total_feed_in_earnings=round_money(total_feed_in_earnings),
            net_savings=round_money(net_savings),
            total_benefit=round_money(total_benefit),
            savings_percentage=round_money(savings_percentage),
            season=season,
            currency=self.config.currency,
        )

    def get_period_multiplier(self, period: str) -> int:
        multipliers = {
            "day": 1,
            "week": 7,
            "month": 30,
            "year": 365,
            "lifetime": 365 * self.config.system_lifetime_years,
        }
        if period not in multipliers:
            raise ValueError(f"Unknown period {period!r}, expected one of {', '.join(multipliers)}")
        return multipliers[period]

    def calculate_period_savings(
        self,
        site_id: str,
        energy_data: EnergyData | dict[str, Any],
        address: str | None,
        period: str = "day",
        municipality: str | None = None,
    ) -> SavingsCalculation:
        """Extrapolate a day's savings to a week, month, year or system lifetime."""
        multiplier = self.get_period_multiplier(period)
        rates = self.get_municipal_rates(address, municipality)
        savings = self.calculate_savings(energy_data, rates)

        period_savings = replace(
            savings,
            period=period,
            total_grid_cost=round_money(savings.total_grid_cost * multiplier),
            total_solar_savings=round_money(savings.total_solar_savings * multiplier),
            total_feed_in_earnings=round_money(savings.total_feed_in_earnings * multiplier),
            net_savings=round_money(savings.net_savings * multiplier),
            total_benefit=round_money(savings.total_benefit * multiplier),
        )

        logger.info("Calculated %s savings for site %s: %s", period, site_id, period_savings)
        return period_savings

    def get_usage_recommendations(
        self,
        energy_data: EnergyData | dict[str, Any],
        rates: TariffRates | dict[str, Any],
        time_periods: TimePeriods | dict[str, Any] | None = None,
    ) -> list[UsageRecommendation]:
        """Rule-based suggestions for lowering cost, highest priority first.

        Never raises: on any error an empty list is returned.
        """
        try:
            data = parse_energy_data(energy_data)
            totals: DailyTotals = data.totals if isinstance(data, HourlyRecords) else data
            rates = resolve_rates(rates)
            time_periods = resolve_time_periods(time_periods) or self.default_time_periods

            recommendations = []

            total_usage = totals.peak_usage + totals.off_peak_usage + totals.standard_usage

            if totals.peak_usage > total_usage * 0.3:
                off_peak_hours = _describe_ranges(time_periods.off_peak) or "off-peak hours"
                recommendations.append(
                    UsageRecommendation(
                        type="peak_reduction",
                        title="Reduce Peak Hour Usage",
                        description=(
                            "Consider shifting high-energy activities to off-peak hours "
                            f"({off_peak_hours}) to lower electricity costs."
                        ),
                        potential_saving=totals.peak_usage * 0.3 * (rates.peak - rates.off_peak),
                        priority="high",
                    )
                )

            if totals.solar_generation > totals.solar_usage * 1.5:
                recommendations.append(
                    UsageRecommendation(
                        type="solar_optimization",
                        title="Optimize Solar Usage",
                        description=(
                            "You're generating more solar power than you're using. Consider "
                            "running appliances during peak solar hours (10:00-15:00)."
                        ),
                        potential_saving=(totals.solar_generation - totals.solar_usage)
                        * 0.5
                        * rates.standard,
                        priority="medium",
                    )
                )

            if totals.feed_in < totals.solar_generation * 0.1:
                recommendations.append(
                    UsageRecommendation(
                        type="battery_storage",
                        title="Consider Battery Storage",
                        description=(
                            "Adding battery storage could help you use more of your solar "
                            "power during peak rate periods."
                        ),
                        potential_saving=totals.solar_generation * 0.2 * (rates.peak - rates.feed_in),
                        priority="medium",
                    )
                )

            # sorted() is stable, so equal priorities keep rule order
            return sorted(recommendations, key=lambda r: PRIORITY_RANK[r.priority], reverse=True)
        except Exception:
            logger.exception("Failed to get usage recommendations")
            return []
