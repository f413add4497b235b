"""SolaX Cloud API data collector.

Fetches plant, realtime and historical energy data from the SolaX Cloud
open API. Each site carries its own client credentials; access tokens are
cached per credential pair until they expire.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import httpx

from .. import config
from ..errors import SolaxError
from ..models import DailyReading, DailyTotals, Site, SiteEnergy, UsageAnalysis
from ..rounding import round_money

logger = logging.getLogger(__name__)

SOURCE_NAME = "solax"
SUCCESS_CODE = 10000
DEFAULT_TOKEN_LIFETIME = 3600  # seconds


@dataclass
class CachedToken:
    token: str
    expires_at: float  # epoch seconds


class TokenCache:
    """Access tokens keyed by (client_id, client_secret)."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._tokens: dict[tuple[str, str], CachedToken] = {}

    def get(self, client_id: str, client_secret: str) -> str | None:
        cached = self._tokens.get((client_id, client_secret))
        if cached and cached.expires_at > self.clock():
            return cached.token
        return None

    def put(self, client_id: str, client_secret: str, token: str, expires_in: float) -> None:
        self._tokens[(client_id, client_secret)] = CachedToken(
            token=token, expires_at=self.clock() + expires_in
        )

    def clear(self) -> None:
        self._tokens.clear()


class SolaxClient:
    """Async client for the SolaX Cloud open API.

    Args:
        base_url: API root (defaults to SOLAX_BASE_URL)
        token_cache: Shared token cache; a private one is created if omitted
        timeout: Request timeout in seconds (defaults to SOLAX_TIMEOUT)
        transport: Optional httpx transport, used in tests
    """

    def __init__(
        self,
        base_url: str | None = None,
        token_cache: TokenCache | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or config.get_solax_base_url()).rstrip("/")
        self.token_cache = token_cache or TokenCache()
        self.timeout = timeout if timeout is not None else config.get_solax_timeout()
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    @staticmethod
    def _unwrap(response: httpx.Response) -> Any:
        response.raise_for_status()
        data = response.json()
        if data.get("code") != SUCCESS_CODE:
            raise SolaxError(f"SolaX API error: {data.get('message') or data}")
        return data.get("result")

    async def get_token(self, client_id: str, client_secret: str) -> str:
        """Get an access token, reusing a cached one until it expires."""
        token = self.token_cache.get(client_id, client_secret)
        if token:
            return token

        try:
            async with self._client() as client:
                response = await client.post(
                    "/openapi/auth/get_token",
                    json={
                        "client_id": client_id,
                        "client_secret": client_secret,
                        "grant_type": "CICS",
                    },
                )
                result = self._unwrap(response)
        except httpx.HTTPError as e:
            raise SolaxError(f"Failed to get SolaX access token: {e}") from e

        token = result["access_token"]
        expires_in = result.get("expires_in") or DEFAULT_TOKEN_LIFETIME
        self.token_cache.put(client_id, client_secret, token, expires_in)

        logger.info("SolaX access token obtained for client %s", client_id)
        return token

    async def _get(self, path: str, client_id: str, client_secret: str, params: dict[str, Any]) -> Any:
        token = await self.get_token(client_id, client_secret)
        try:
            async with self._client() as client:
                response = await client.get(
                    path,
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )
                return self._unwrap(response)
        except httpx.HTTPError as e:
            raise SolaxError(f"SolaX request to {path} failed: {e}") from e

    async def get_plant_info(self, client_id: str, client_secret: str, page_no: int = 1) -> Any:
        return await self._get(
            "/openapi/v2/plant/page_plant_info",
            client_id,
            client_secret,
            {"pageNo": page_no, "businessType": "1"},
        )

    async def get_device_info(
        self,
        client_id: str,
        client_secret: str,
        plant_name: str,
        page_no: int = 1,
        device_type: str = "1",
    ) -> Any:
        """Page through a plant's devices. device_type 1 is inverters."""
        return await self._get(
            "/openapi/v2/device/page_device_info",
            client_id,
            client_secret,
            {
                "plantName": plant_name,
                "pageNo": page_no,
                "businessType": "4",
                "deviceType": device_type,
            },
        )

    async def get_plant_realtime_data(self, client_id: str, client_secret: str, plant_id: str) -> dict:
        return await self._get(
            "/openapi/v2/plant/realtime_data",
            client_id,
            client_secret,
            {"plantId": plant_id, "businessType": "1"},
        )

    async def get_historical_energy_data(
        self,
        client_id: str,
        client_secret: str,
        plant_id: str,
        start_date: str,
        end_date: str,
        time_type: str = "day",
    ) -> list[dict[str, Any]]:
        """Fetch energy history between two YYYY-MM-DD dates.

        time_type is one of 'day', 'month' or 'year'.
        """
        result = await self._get(
            "/openapi/v2/plant/energy_data",
            client_id,
            client_secret,
            {
                "plantId": plant_id,
                "startDate": start_date,
                "endDate": end_date,
                "timeType": time_type,
                "businessType": "1",
            },
        )
        if isinstance(result, dict):
            # Paged responses wrap the rows
            result = result.get("records") or result.get("data") or []
        return result or []

    async def get_alarm_info(
        self, client_id: str, client_secret: str, plant_id: str, page_no: int = 1
    ) -> Any:
        return await self._get(
            "/openapi/v2/plant/alarm_info",
            client_id,
            client_secret,
            {"plantId": plant_id, "pageNo": page_no, "businessType": "1"},
        )


def _credentials(site: Site) -> tuple[str, str, str]:
    if not site.has_integration_credentials:
        raise SolaxError(f"Site {site.id} has no SolaX credentials")
    return site.solax_client_id, site.solax_client_secret, site.solax_plant_id


def parse_history(site_id: str, rows: list[dict[str, Any]]) -> list[DailyReading]:
    """Convert SolaX daily history rows into daily readings."""
    readings = []
    for row in rows:
        try:
            day = date.fromisoformat(str(row["date"])[:10])
        except (KeyError, ValueError):
            logger.warning("Skipping SolaX history row without a valid date: %s", row)
            continue
        readings.append(
            DailyReading(
                site_id=site_id,
                date=day,
                generation_kwh=float(row.get("yieldEnergy") or 0),
                consumption_kwh=float(row.get("consumeEnergy") or 0),
                feed_in_kwh=float(row.get("feedinEnergy") or 0),
                source=SOURCE_NAME,
            )
        )
    return readings


async def fetch_daily_readings(
    client: SolaxClient, site: Site, start: datetime, end: datetime
) -> list[DailyReading]:
    """Fetch a site's daily history from SolaX Cloud."""
    client_id, client_secret, plant_id = _credentials(site)
    rows = await client.get_historical_energy_data(
        client_id, client_secret, plant_id, start.date().isoformat(), end.date().isoformat()
    )
    return parse_history(site.id, rows)


class SolaxEnergySource:
    """Site generation totals read live from SolaX Cloud."""

    def __init__(self, client: SolaxClient | None = None):
        self.client = client or SolaxClient()

    async def get_energy_data(self, site: Site, start: datetime, end: datetime) -> SiteEnergy:
        readings = await fetch_daily_readings(self.client, site, start, end)
        return SiteEnergy(
            total_generation=sum(r.generation_kwh for r in readings),
            total_consumption=sum(r.consumption_kwh for r in readings),
        )


def calculate_solar_vs_grid(realtime: dict[str, Any]) -> UsageAnalysis:
    """Split today's consumption into solar and grid shares from realtime data."""
    solar_generation = float(realtime.get("yieldtoday") or 0)
    grid_consumption = float(realtime.get("consumeEnergyToday") or 0)
    grid_feed_in = float(realtime.get("feedinEnergyToday") or 0)

    total_consumption = grid_consumption + solar_generation - grid_feed_in
    solar_usage = max(0.0, solar_generation - grid_feed_in)
    grid_usage = max(0.0, grid_consumption)

    solar_percentage = solar_usage / total_consumption * 100 if total_consumption > 0 else 0
    grid_percentage = grid_usage / total_consumption * 100 if total_consumption > 0 else 0

    return UsageAnalysis(
        solar_generation=solar_generation,
        solar_usage=solar_usage,
        grid_usage=grid_usage,
        grid_feed_in=grid_feed_in,
        total_consumption=total_consumption,
        solar_percentage=round_money(solar_percentage),
        grid_percentage=round_money(grid_percentage),
    )


def daily_totals_from_usage(usage: UsageAnalysis) -> DailyTotals:
    """Daily totals for the savings engine from a usage split."""
    return DailyTotals(
        grid_consumption=usage.grid_usage,
        solar_usage=usage.solar_usage,
        feed_in=usage.grid_feed_in,
        solar_generation=usage.solar_generation,
    )
