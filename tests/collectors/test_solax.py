"""Tests for the SolaX Cloud collector."""

import asyncio
import json
from datetime import date, datetime

import httpx
import pytest

from solarnexus.collectors import solax
from solarnexus.errors import SolaxError
from solarnexus.models import Site


SITE = Site(
    id="site-1",
    name="Warehouse Roof",
    capacity=50,
    solax_client_id="client",
    solax_client_secret="secret",
    solax_plant_id="plant-1",
)

HISTORY = [
    {"date": "2026-03-01", "yieldEnergy": 100.5, "consumeEnergy": 40.0, "feedinEnergy": 10.0},
    {"date": "2026-03-02 00:00:00", "yieldEnergy": 120.0, "consumeEnergy": 50.0},
    {"yieldEnergy": 999.0},
]


class FakeSolax:
    """Records requests and answers like the SolaX open API."""

    def __init__(self, history=None, error_code=None, status_code=200):
        self.history = history if history is not None else HISTORY
        self.error_code = error_code
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"message": "server error"})

        if request.url.path == "/openapi/auth/get_token":
            body = json.loads(request.content)
            assert body["grant_type"] == "CICS"
            return httpx.Response(
                200,
                json={"code": 10000, "result": {"access_token": "token-123", "expires_in": 600}},
            )

        assert request.headers["Authorization"] == "Bearer token-123"
        if self.error_code:
            return httpx.Response(200, json={"code": self.error_code, "message": "plant not found"})
        if request.url.path == "/openapi/v2/plant/energy_data":
            return httpx.Response(200, json={"code": 10000, "result": {"records": self.history}})
        return httpx.Response(200, json={"code": 10000, "result": {"plantId": "plant-1"}})

    def paths(self):
        return [r.url.path for r in self.requests]


def make_client(handler, token_cache=None):
    return solax.SolaxClient(
        base_url="https://solax.test",
        token_cache=token_cache,
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


def test_token_is_cached():
    """Two requests with the same credentials authenticate once."""
    api = FakeSolax()
    client = make_client(api)

    async def run():
        await client.get_plant_info("client", "secret")
        await client.get_plant_realtime_data("client", "secret", "plant-1")

    asyncio.run(run())

    assert api.paths().count("/openapi/auth/get_token") == 1
    assert len(api.requests) == 3


def test_alarm_and_device_info():
    api = FakeSolax()
    client = make_client(api)

    async def run():
        await client.get_alarm_info("client", "secret", "plant-1", page_no=2)
        return await client.get_device_info("client", "secret", "Warehouse Roof")

    result = asyncio.run(run())

    assert result == {"plantId": "plant-1"}
    alarm_request, device_request = api.requests[-2:]
    assert alarm_request.url.path == "/openapi/v2/plant/alarm_info"
    assert alarm_request.url.params["plantId"] == "plant-1"
    assert alarm_request.url.params["pageNo"] == "2"
    assert device_request.url.path == "/openapi/v2/device/page_device_info"
    assert device_request.url.params["plantName"] == "Warehouse Roof"
    assert device_request.url.params["businessType"] == "4"
    assert device_request.url.params["deviceType"] == "1"


def test_expired_token_is_refreshed():
    now = [1000.0]
    cache = solax.TokenCache(clock=lambda: now[0])
    api = FakeSolax()
    client = make_client(api, token_cache=cache)

    asyncio.run(client.get_plant_info("client", "secret"))
    now[0] += 601
    asyncio.run(client.get_plant_info("client", "secret"))

    assert api.paths().count("/openapi/auth/get_token") == 2


def test_tokens_are_per_credential_pair():
    cache = solax.TokenCache(clock=lambda: 0.0)
    cache.put("client", "secret", "token-a", 60)

    assert cache.get("client", "secret") == "token-a"
    assert cache.get("client", "other-secret") is None
    cache.clear()
    assert cache.get("client", "secret") is None


def test_api_error_code_raises():
    client = make_client(FakeSolax(error_code=10400))
    with pytest.raises(SolaxError, match="plant not found"):
        asyncio.run(client.get_plant_realtime_data("client", "secret", "plant-1"))


def test_http_error_raises():
    client = make_client(FakeSolax(status_code=500))
    with pytest.raises(SolaxError):
        asyncio.run(client.get_token("client", "secret"))


def test_parse_history():
    readings = solax.parse_history("site-1", HISTORY)

    assert len(readings) == 2
    assert readings[0].date == date(2026, 3, 1)
    assert readings[0].generation_kwh == 100.5
    assert readings[0].feed_in_kwh == 10.0
    assert readings[0].source == "solax"
    assert readings[1].date == date(2026, 3, 2)
    assert readings[1].feed_in_kwh == 0.0


def test_energy_source_sums_history():
    api = FakeSolax()
    source = solax.SolaxEnergySource(make_client(api))
    energy = asyncio.run(
        source.get_energy_data(SITE, datetime(2026, 3, 1), datetime(2026, 3, 3))
    )

    assert energy.total_generation == 220.5
    assert energy.total_consumption == 90.0

    history_request = api.requests[-1]
    assert history_request.url.params["plantId"] == "plant-1"
    assert history_request.url.params["startDate"] == "2026-03-01"
    assert history_request.url.params["endDate"] == "2026-03-03"


def test_site_without_credentials_raises():
    source = solax.SolaxEnergySource(make_client(FakeSolax()))
    site = Site(id="site-2", name="Office", capacity=10)
    with pytest.raises(SolaxError, match="site-2"):
        asyncio.run(source.get_energy_data(site, datetime(2026, 3, 1), datetime(2026, 3, 3)))


def test_calculate_solar_vs_grid():
    usage = solax.calculate_solar_vs_grid(
        {"yieldtoday": 20.0, "consumeEnergyToday": 10.0, "feedinEnergyToday": 5.0}
    )

    assert usage.total_consumption == 25.0
    assert usage.solar_usage == 15.0
    assert usage.grid_usage == 10.0
    assert usage.solar_percentage == 60.0
    assert usage.grid_percentage == 40.0

    totals = solax.daily_totals_from_usage(usage)
    assert totals.grid_consumption == 10.0
    assert totals.solar_usage == 15.0
    assert totals.feed_in == 5.0
    assert totals.solar_generation == 20.0


def test_solar_vs_grid_without_data():
    usage = solax.calculate_solar_vs_grid({})
    assert usage.total_consumption == 0
    assert usage.solar_percentage == 0
