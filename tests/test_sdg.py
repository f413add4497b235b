"""Tests for SDG impact tracking."""

import asyncio
from datetime import datetime, timedelta

import pytest

from solarnexus.errors import NotFoundError
from solarnexus.models import Organization, Site, SiteEnergy
from solarnexus.sdg import SDGTrackingService, calculate_environmental_impact

NOW = datetime(2026, 6, 30, 12, 0)


class FakeStore:
    def __init__(self, *organizations):
        self.organizations = {org.id: org for org in organizations}

    async def get_organization(self, organization_id):
        return self.organizations.get(organization_id)


class FakeEnergySource:
    """Returns fixed generation per site, optionally delayed or failing.

    `generation` is either a site_id -> kWh mapping or a callable taking
    (site, start, end).
    """

    def __init__(self, generation, delays=None, failing=()):
        self.generation = generation
        self.delays = delays or {}
        self.failing = set(failing)
        self.calls = []
        self.cancelled = []

    async def get_energy_data(self, site, start, end):
        self.calls.append((site.id, start, end))
        try:
            await asyncio.sleep(self.delays.get(site.id, 0))
        except asyncio.CancelledError:
            self.cancelled.append(site.id)
            raise
        if site.id in self.failing:
            raise RuntimeError("inverter API unavailable")
        if callable(self.generation):
            return SiteEnergy(total_generation=self.generation(site, start, end))
        return SiteEnergy(total_generation=self.generation.get(site.id, 0.0))


def make_site(site_id, capacity, credentials=True, is_active=True):
    if credentials:
        return Site(
            id=site_id,
            name=f"Site {site_id}",
            capacity=capacity,
            is_active=is_active,
            solax_client_id="client",
            solax_client_secret="secret",
            solax_plant_id=f"plant-{site_id}",
        )
    return Site(id=site_id, name=f"Site {site_id}", capacity=capacity, is_active=is_active)


def make_service(store, source, **kwargs):
    return SDGTrackingService(store, source, clock=lambda: NOW, **kwargs)


def test_calculate_sdg_impact():
    org = Organization("org-1", "Acme Solar", sites=[make_site("a", 10), make_site("b", 20)])
    source = FakeEnergySource({"a": 1000.0, "b": 2000.0})
    impact = asyncio.run(make_service(FakeStore(org), source).calculate_sdg_impact("org-1"))

    assert impact.organization_name == "Acme Solar"
    assert impact.total_sites == 2
    assert impact.total_capacity == 30
    assert impact.summary.renewable_energy_generated == 3000.0
    assert impact.summary.total_co2_avoided == 1500.0
    assert impact.summary.jobs_supported == 3
    assert impact.summary.communities_impacted == 2
    assert impact.summary.primary_goals == [7, 13, 11, 8]


def test_impact_window_is_trailing_year():
    org = Organization("org-1", "Acme Solar", sites=[make_site("a", 10)])
    source = FakeEnergySource({"a": 500.0})
    asyncio.run(make_service(FakeStore(org), source).calculate_sdg_impact("org-1"))

    assert source.calls == [("a", NOW - timedelta(days=365), NOW)]


def test_sites_without_credentials_are_skipped():
    org = Organization(
        "org-1",
        "Acme Solar",
        sites=[make_site("a", 10), make_site("b", 10, credentials=False), make_site("c", 10)],
    )
    source = FakeEnergySource({"a": 100.0, "b": 999.0, "c": 300.0})
    impact = asyncio.run(make_service(FakeStore(org), source).calculate_sdg_impact("org-1"))

    assert impact.summary.renewable_energy_generated == 400.0
    assert [call[0] for call in source.calls] == ["a", "c"]
    # Capacity and communities still count every active site
    assert impact.total_capacity == 30
    assert impact.summary.communities_impacted == 3


def test_credentials_not_required_for_local_data():
    org = Organization("org-1", "Acme Solar", sites=[make_site("a", 10, credentials=False)])
    source = FakeEnergySource({"a": 100.0})
    service = make_service(FakeStore(org), source, require_credentials=False)
    impact = asyncio.run(service.calculate_sdg_impact("org-1"))

    assert impact.summary.renewable_energy_generated == 100.0


def test_failed_site_fetch_is_skipped():
    org = Organization("org-1", "Acme Solar", sites=[make_site("a", 10), make_site("b", 10)])
    source = FakeEnergySource({"a": 100.0, "b": 200.0}, failing={"a"})
    impact = asyncio.run(make_service(FakeStore(org), source).calculate_sdg_impact("org-1"))

    assert impact.summary.renewable_energy_generated == 200.0


def test_inactive_sites_are_ignored():
    org = Organization(
        "org-1", "Acme Solar", sites=[make_site("a", 10), make_site("b", 50, is_active=False)]
    )
    source = FakeEnergySource({"a": 100.0, "b": 200.0})
    impact = asyncio.run(make_service(FakeStore(org), source).calculate_sdg_impact("org-1"))

    assert impact.total_sites == 1
    assert impact.total_capacity == 10
    assert impact.summary.renewable_energy_generated == 100.0


def test_unknown_organization_raises():
    service = make_service(FakeStore(), FakeEnergySource({}))
    with pytest.raises(NotFoundError, match="missing"):
        asyncio.run(service.calculate_sdg_impact("missing"))


def test_jobs_round_half_up():
    org = Organization("org-1", "Acme Solar", sites=[make_site("a", 25)])
    impact = asyncio.run(
        make_service(FakeStore(org), FakeEnergySource({})).calculate_sdg_impact("org-1")
    )
    assert impact.summary.jobs_supported == 3


def test_sdg_metrics():
    service = make_service(FakeStore(), FakeEnergySource({}))
    metrics = service.calculate_sdg_metrics(
        total_capacity=30, total_generation=3000, total_co2_avoided=1500, site_count=2
    )

    assert [m.target for m in metrics] == ["7.2", "7.1", "13.2", "13.3", "11.6", "8.2", "9.4", "12.2"]
    assert [m.goal for m in metrics] == [7, 7, 13, 13, 11, 8, 9, 12]
    values = {m.target: m.value for m in metrics}
    assert values["7.2"] == 3000
    assert values["13.3"] == 1.5
    assert values["11.6"] == 750
    assert values["8.2"] == 3
    assert values["12.2"] == 100
    assert all(m.last_updated == NOW for m in metrics)
    assert all(m.trend == "improving" for m in metrics)


def test_sdg_metrics_without_sites():
    service = make_service(FakeStore(), FakeEnergySource({}))
    metrics = service.calculate_sdg_metrics(0, 0, 0, 0)

    assert all(m.value == 0 for m in metrics)
    assert metrics[-1].trend == "stable"


def test_comparison_preserves_order():
    orgs = [
        Organization("org-a", "A", sites=[make_site("a", 10)]),
        Organization("org-b", "B", sites=[make_site("b", 20)]),
        Organization("org-c", "C", sites=[make_site("c", 30)]),
    ]
    # Later organizations finish first
    source = FakeEnergySource(
        {"a": 100.0, "b": 200.0, "c": 300.0}, delays={"a": 0.05, "b": 0.02, "c": 0.0}
    )
    comparison = asyncio.run(
        make_service(FakeStore(*orgs), source).get_sdg_comparison(["org-a", "org-b", "org-c"])
    )

    assert [i.organization_id for i in comparison.organizations] == ["org-a", "org-b", "org-c"]
    assert comparison.aggregated["total_capacity"] == 60
    assert comparison.aggregated["total_generation"] == 600.0
    assert comparison.aggregated["total_co2_avoided"] == 300.0
    assert comparison.aggregated["total_jobs_supported"] == 6
    assert comparison.aggregated["total_communities_impacted"] == 3


def test_comparison_fails_when_any_organization_fails():
    org = Organization("org-a", "A", sites=[make_site("a", 10)])
    service = make_service(FakeStore(org), FakeEnergySource({"a": 100.0}, delays={"a": 0.05}))

    with pytest.raises(NotFoundError):
        asyncio.run(service.get_sdg_comparison(["org-a", "org-missing"]))


def test_comparison_failure_cancels_running_calculations():
    org = Organization("org-a", "A", sites=[make_site("a", 10)])
    source = FakeEnergySource({"a": 100.0}, delays={"a": 5})
    service = make_service(FakeStore(org), source)

    async def run():
        with pytest.raises(NotFoundError):
            await service.get_sdg_comparison(["org-a", "org-missing"])
        # Cancellation has finished by the time the error surfaces
        return list(source.cancelled)

    assert asyncio.run(run()) == ["a"]


def test_comparison_of_nothing():
    comparison = asyncio.run(
        make_service(FakeStore(), FakeEnergySource({})).get_sdg_comparison([])
    )
    assert comparison.organizations == []
    assert comparison.aggregated["total_generation"] == 0


def test_generate_sdg_report():
    start = datetime(2026, 1, 1)
    end = datetime(2026, 4, 1)
    previous_start = start - (end - start)

    def generation(site, window_start, window_end):
        return 1200.0 if window_end == NOW else 1000.0

    org = Organization("org-1", "Acme Solar", sites=[make_site("a", 10)])
    source = FakeEnergySource(generation)
    report = asyncio.run(make_service(FakeStore(org), source).generate_sdg_report("org-1", start, end))

    assert report.period_start == start
    assert report.period_end == end
    assert ("a", previous_start, start) in source.calls

    assert report.trends.energy_generation.current == 1200.0
    assert report.trends.energy_generation.previous == 1000.0
    assert report.trends.energy_generation.change == pytest.approx(20.0)
    assert report.trends.co2_avoided.previous == 500.0
    assert report.trends.co2_avoided.change == pytest.approx(20.0)
    assert report.trends.capacity.current == report.trends.capacity.previous == 10
    assert report.trends.capacity.change == 0

    # Growth is healthy; CO2, jobs and the standing infrastructure advice remain
    assert len(report.recommendations) == 3
    assert "(SDG 13)" in report.recommendations[0]
    assert "(SDG 8)" in report.recommendations[1]
    assert "(SDG 9)" in report.recommendations[-1]


def test_report_without_previous_generation():
    org = Organization("org-1", "Acme Solar", sites=[make_site("a", 10)])

    def generation(site, window_start, window_end):
        return 800.0 if window_end == NOW else 0.0

    report = asyncio.run(
        make_service(FakeStore(org), FakeEnergySource(generation)).generate_sdg_report(
            "org-1", datetime(2026, 1, 1), datetime(2026, 2, 1)
        )
    )

    assert report.trends.energy_generation.change == 0
    assert report.trends.co2_avoided.change == 0
    assert "(SDG 7)" in report.recommendations[0]


def test_alignment_score():
    org = Organization("org-1", "Acme Solar", sites=[make_site("a", 1000)])
    source = FakeEnergySource({"a": 1_500_000.0})
    score = asyncio.run(make_service(FakeStore(org), source).get_sdg_alignment_score("org-1"))

    scores = {g.goal: g.score for g in score.goal_scores}
    assert scores[7] == pytest.approx(100)
    assert scores[8] == pytest.approx(50)
    assert scores[9] == pytest.approx(20)
    assert scores[11] == pytest.approx(100)
    assert scores[12] == 100
    assert scores[13] == pytest.approx(75)
    assert score.overall_score == 74

    assert [s for s in score.strengths if "SDG 7)" in s]
    assert [s for s in score.strengths if "SDG 11)" in s]
    assert [s for s in score.strengths if "SDG 12)" in s]
    assert len(score.strengths) == 3
    assert len(score.improvements) == 2
    # 75 is adequate: neither a strength nor an improvement
    assert not [s for s in score.strengths + score.improvements if "SDG 13)" in s]


def test_alignment_scores_are_clamped():
    org = Organization("org-1", "Mega Solar", sites=[make_site("a", 10_000_000)])
    source = FakeEnergySource({"a": 1e12})
    score = asyncio.run(make_service(FakeStore(org), source).get_sdg_alignment_score("org-1"))

    assert all(0 <= g.score <= 100 for g in score.goal_scores)
    assert 0 <= score.overall_score <= 100


def test_alignment_without_capacity():
    org = Organization("org-1", "Empty Org")
    score = asyncio.run(
        make_service(FakeStore(org), FakeEnergySource({})).get_sdg_alignment_score("org-1")
    )

    assert all(g.score == 0 for g in score.goal_scores)
    assert score.overall_score == 0
    assert score.strengths == []
    assert len(score.improvements) == 6


def test_environmental_impact():
    impact = calculate_environmental_impact(10_000)

    assert impact.co2_reduction == 4000.0
    assert impact.trees_equivalent == 5.0
    assert impact.homes_equivalent == 1.0
    assert impact.sdg_goals["goal13"]["value"] == 4000.0
    assert impact.sdg_goals["goal7"]["unit"] == "kWh"
