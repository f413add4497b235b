"""UN Sustainable Development Goal impact tracking.

Turns per-site generation totals into SDG indicators, period-over-period
reports and an alignment score for an organization. Organization and
energy data come from injected collaborators; nothing here is persisted.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

from .errors import NotFoundError
from .models import (
    AlignmentScore,
    EnvironmentalImpact,
    GoalScore,
    Organization,
    SDGComparison,
    SDGImpact,
    SDGMetric,
    SDGReport,
    SDGSummary,
    SDGTrends,
    Site,
    SiteEnergy,
    TrendFigure,
)
from .rounding import round_half_up, round_money

logger = logging.getLogger(__name__)

# South African grid emission factor, kg CO2 per kWh
GRID_EMISSION_FACTOR = 0.5
JOBS_PER_KW = 0.1
IMPACT_WINDOW_DAYS = 365

# Affordable Clean Energy, Climate Action, Sustainable Cities, Economic Growth
PRIMARY_GOALS = [7, 13, 11, 8]

STRENGTH_THRESHOLD = 80
IMPROVEMENT_THRESHOLD = 60

# Headline equivalents for a generation total
CO2_REDUCTION_PER_KWH = 0.4
KWH_PER_TREE = 2000
KWH_PER_HOME = 10000


class DataStore(Protocol):
    async def get_organization(self, organization_id: str) -> Organization | None:
        ...


class EnergyDataSource(Protocol):
    async def get_energy_data(self, site: Site, start: datetime, end: datetime) -> SiteEnergy:
        ...


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def _percent_change(current: float, previous: float) -> float:
    return (current - previous) / previous * 100 if previous > 0 else 0.0


def _clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


def calculate_environmental_impact(total_generation: float) -> EnvironmentalImpact:
    """Summarise a generation total as CO2, tree and household equivalents."""
    co2_reduction = round_money(total_generation * CO2_REDUCTION_PER_KWH)
    homes = round_money(total_generation / KWH_PER_HOME)

    return EnvironmentalImpact(
        total_solar_generation=total_generation,
        co2_reduction=co2_reduction,
        trees_equivalent=round_money(total_generation / KWH_PER_TREE),
        homes_equivalent=homes,
        sdg_goals={
            "goal7": {"description": "Clean energy generated", "value": total_generation, "unit": "kWh"},
            "goal13": {"description": "CO2 emissions avoided", "value": co2_reduction, "unit": "kg CO2"},
            "goal11": {"description": "Homes powered by clean energy", "value": homes, "unit": "homes"},
        },
    )


class SDGTrackingService:
    """SDG impact calculations for organizations.

    Sites without integration credentials are skipped when
    `require_credentials` is set, and a site whose energy fetch fails
    contributes nothing. Both are logged rather than raised.
    """

    def __init__(
        self,
        store: DataStore,
        energy_source: EnergyDataSource,
        clock: Callable[[], datetime] = datetime.now,
        emission_factor: float = GRID_EMISSION_FACTOR,
        require_credentials: bool = True,
    ):
        self.store = store
        self.energy_source = energy_source
        self.clock = clock
        self.emission_factor = emission_factor
        self.require_credentials = require_credentials

    async def _get_organization(self, organization_id: str) -> Organization:
        organization = await self.store.get_organization(organization_id)
        if organization is None:
            raise NotFoundError(f"Organization not found: {organization_id}")
        return organization

    async def _total_generation(self, sites: list[Site], start: datetime, end: datetime) -> float:
        """Sum generation across sites over [start, end), skipping unavailable ones."""
        total = 0.0
        for site in sites:
            if self.require_credentials and not site.has_integration_credentials:
                logger.info("Skipping site %s: no integration credentials", site.id)
                continue

            try:
                energy = await self.energy_source.get_energy_data(site, start, end)
            except Exception as e:
                logger.warning(
                    "Failed to get energy data for site %s (%s to %s): %s",
                    site.id, start.date(), end.date(), e,
                )
                continue

            total += energy.total_generation or 0.0
        return total

    async def calculate_sdg_impact(self, organization_id: str) -> SDGImpact:
        """SDG impact of an organization's active sites over the last 12 months."""
        organization = await self._get_organization(organization_id)
        sites = [site for site in organization.sites if site.is_active]
        total_capacity = sum(site.capacity for site in sites)

        end = self.clock()
        start = end - timedelta(days=IMPACT_WINDOW_DAYS)

        total_generation = await self._total_generation(sites, start, end)
        total_co2_avoided = total_generation * self.emission_factor

        metrics = self.calculate_sdg_metrics(
            total_capacity, total_generation, total_co2_avoided, len(sites)
        )

        return SDGImpact(
            organization_id=organization_id,
            organization_name=organization.name,
            total_sites=len(sites),
            total_capacity=total_capacity,
            metrics=metrics,
            summary=SDGSummary(
                primary_goals=list(PRIMARY_GOALS),
                total_co2_avoided=total_co2_avoided,
                renewable_energy_generated=total_generation,
                jobs_supported=int(round_half_up(total_capacity * JOBS_PER_KW)),
                # One community per site
                communities_impacted=len(sites),
            ),
        )

    def calculate_sdg_metrics(
        self,
        total_capacity: float,
        total_generation: float,
        total_co2_avoided: float,
        site_count: int,
    ) -> list[SDGMetric]:
        """Build the eight SDG indicators. Values are not rounded."""
        now = self.clock()

        def metric(goal, target, indicator, value, unit, trend="improving") -> SDGMetric:
            return SDGMetric(
                goal=goal,
                target=target,
                indicator=indicator,
                value=value,
                unit=unit,
                trend=trend,
                last_updated=now,
            )

        return [
            # SDG 7: Affordable and Clean Energy
            metric(7, "7.2", "Renewable energy share in total final energy consumption",
                   total_generation, "kWh"),
            metric(7, "7.1", "Access to electricity", total_capacity, "kW installed capacity"),
            # SDG 13: Climate Action
            metric(13, "13.2", "CO2 emissions avoided", total_co2_avoided, "kg CO2 equivalent"),
            metric(13, "13.3", "Climate change mitigation capacity",
                   total_co2_avoided / 1000, "tonnes CO2 avoided"),
            # SDG 11: Sustainable Cities and Communities
            metric(11, "11.6", "Reduce environmental impact of cities",
                   _ratio(total_co2_avoided, site_count), "kg CO2 avoided per site"),
            # SDG 8: Decent Work and Economic Growth
            metric(8, "8.2", "Economic productivity through diversification",
                   round_half_up(total_capacity * JOBS_PER_KW), "jobs supported"),
            # SDG 9: Industry, Innovation and Infrastructure
            metric(9, "9.4", "Clean and environmentally sound technologies",
                   total_capacity, "kW clean energy infrastructure"),
            # SDG 12: Responsible Consumption and Production
            metric(12, "12.2", "Sustainable management of natural resources",
                   _ratio(total_generation, total_capacity), "kWh/kW efficiency ratio",
                   trend="improving" if total_generation > 0 else "stable"),
        ]

    async def get_sdg_comparison(self, organization_ids: list[str]) -> SDGComparison:
        """Impact for several organizations, calculated concurrently.

        Results follow the order of `organization_ids`. Any failure fails the
        whole comparison and cancels the calculations still running.
        """
        tasks = [asyncio.create_task(self.calculate_sdg_impact(org_id)) for org_id in organization_ids]
        try:
            impacts = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error("SDG comparison failed for organizations %s", organization_ids)
            raise

        aggregated = {
            "total_capacity": sum(i.total_capacity for i in impacts),
            "total_generation": sum(i.summary.renewable_energy_generated for i in impacts),
            "total_co2_avoided": sum(i.summary.total_co2_avoided for i in impacts),
            "total_jobs_supported": sum(i.summary.jobs_supported for i in impacts),
            "total_communities_impacted": sum(i.summary.communities_impacted for i in impacts),
        }

        return SDGComparison(organizations=list(impacts), aggregated=aggregated)

    async def generate_sdg_report(
        self, organization_id: str, start_date: datetime, end_date: datetime
    ) -> SDGReport:
        """Impact report with trends against the preceding period of equal length.

        The current figures come from calculate_sdg_impact and so always
        cover the trailing 12 months, whatever start_date and end_date say.
        Only the comparison period is derived from the arguments.
        """
        current = await self.calculate_sdg_impact(organization_id)

        period_length = end_date - start_date
        previous_start = start_date - period_length
        previous_end = start_date

        organization = await self._get_organization(organization_id)
        sites = [site for site in organization.sites if site.is_active]

        previous_generation = await self._total_generation(sites, previous_start, previous_end)
        previous_co2_avoided = previous_generation * self.emission_factor

        trends = SDGTrends(
            energy_generation=TrendFigure(
                current=current.summary.renewable_energy_generated,
                previous=previous_generation,
                change=_percent_change(current.summary.renewable_energy_generated, previous_generation),
            ),
            co2_avoided=TrendFigure(
                current=current.summary.total_co2_avoided,
                previous=previous_co2_avoided,
                change=_percent_change(current.summary.total_co2_avoided, previous_co2_avoided),
            ),
            # Capacity is treated as unchanged between periods
            capacity=TrendFigure(
                current=current.total_capacity,
                previous=current.total_capacity,
                change=0.0,
            ),
        )

        return SDGReport(
            period_start=start_date,
            period_end=end_date,
            impact=current,
            trends=trends,
            recommendations=self.generate_recommendations(current, trends),
        )

    def generate_recommendations(self, impact: SDGImpact, trends: SDGTrends) -> list[str]:
        recommendations = []

        if trends.energy_generation.change < 5:
            recommendations.append(
                "Consider expanding solar capacity or optimizing existing systems to increase "
                "renewable energy generation (SDG 7)"
            )

        if impact.summary.total_co2_avoided < impact.total_capacity * 1000:
            recommendations.append(
                "Maximize CO2 impact by ensuring optimal system performance and consider "
                "additional climate mitigation measures (SDG 13)"
            )

        if impact.summary.jobs_supported < impact.total_capacity * 0.15:
            recommendations.append(
                "Explore opportunities to create more local jobs through maintenance, training, "
                "and community programs (SDG 8)"
            )

        if impact.summary.communities_impacted < impact.total_sites:
            recommendations.append(
                "Develop community engagement programs to maximize local benefits and sustainable "
                "development impact (SDG 11)"
            )

        recommendations.append(
            "Consider implementing smart grid technologies and energy storage to enhance "
            "infrastructure resilience (SDG 9)"
        )

        return recommendations

    async def get_sdg_alignment_score(self, organization_id: str) -> AlignmentScore:
        """Score six goals from 0 to 100 and pick out strengths and gaps.

        Goals scoring 60 to 79 count as adequate and are listed in neither.
        """
        impact = await self.calculate_sdg_impact(organization_id)
        capacity = impact.total_capacity
        summary = impact.summary

        goal_scores = [
            GoalScore(7, _clamp_score(_ratio(summary.renewable_energy_generated, capacity * 1500) * 100),
                      "Affordable and Clean Energy"),
            GoalScore(8, _clamp_score(_ratio(summary.jobs_supported, capacity * 0.2) * 100),
                      "Decent Work and Economic Growth"),
            # Infrastructure scale: 20 points per MW installed
            GoalScore(9, _clamp_score(capacity / 1000 * 20), "Industry, Innovation and Infrastructure"),
            GoalScore(11, _clamp_score(_ratio(summary.communities_impacted, impact.total_sites) * 100),
                      "Sustainable Cities and Communities"),
            GoalScore(12, _clamp_score(_ratio(summary.renewable_energy_generated, capacity * 1200) * 100),
                      "Responsible Consumption and Production"),
            GoalScore(13, _clamp_score(_ratio(summary.total_co2_avoided, capacity * 1000) * 100),
                      "Climate Action"),
        ]

        overall = sum(g.score for g in goal_scores) / len(goal_scores)

        return AlignmentScore(
            overall_score=int(round_half_up(overall)),
            goal_scores=goal_scores,
            strengths=[
                f"Strong performance in {g.description} (SDG {g.goal})"
                for g in goal_scores
                if g.score >= STRENGTH_THRESHOLD
            ],
            improvements=[
                f"Opportunity to improve {g.description} (SDG {g.goal})"
                for g in goal_scores
                if g.score < IMPROVEMENT_THRESHOLD
            ],
        )
