"""
Search backend collaborator: request bodies and the async HTTP client.

The backend owns storage and aggregation; this module only builds the query
body for a window and hands back the raw aggregation JSON.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

import config
from bucketing import GROUPED_BAR, select_bucket_size
from clock import Clock, system_clock, to_epoch_ms
from granularity import GranularityLike, resolve_granularity, day
from labels import window_end
from schemas import SearchBody

logger = logging.getLogger(__name__)


class SearchBackendError(Exception):
    """The search backend could not be reached or answered with an error."""


def local_time_zone() -> str:
    """IANA name of the configured zone, UTC when it is not a known zone."""
    try:
        return ZoneInfo(config.TIME_ZONE).key
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown time zone %r, using UTC", config.TIME_ZONE)
        return "UTC"


def avg_total_body(start: datetime, end: datetime, device_id: Optional[str] = None) -> SearchBody:
    """Average/total query over [start, end] with a bucket size fitted to its length."""
    start_ms = to_epoch_ms(start)
    end_ms = to_epoch_ms(end)
    return SearchBody(
        type="avgTotal",
        startDate=start_ms,
        endDate=end_ms,
        timeZone=local_time_zone(),
        bucketSize=select_bucket_size(end_ms - start_ms, "avgTotal"),
        deviceId=device_id,
    )


def overview_body(
    start: datetime,
    granularity: GranularityLike,
    chart_mode: Optional[str] = None,
    site_id: Optional[str] = None,
    device_id: Optional[str] = None,
    clock: Clock = system_clock,
) -> SearchBody:
    """
    Query body for the chart window starting at ``start``.

    The end is clamped to now, ``daylight`` is set exactly for DAY windows and
    grouped bar charts use the coarse bucket column for a full granularity.
    """
    gran = resolve_granularity(granularity)
    body = avg_total_body(start, window_end(start, gran, clock), device_id)
    body.siteId = site_id
    body.daylight = gran is day
    if chart_mode == GROUPED_BAR:
        body.bucketSize = select_bucket_size(gran.ms, GROUPED_BAR)
    return body


def device_name_map(devices: Optional[Iterable[Any]]) -> Dict[str, str]:
    """Device id -> display name (``name``, else ``deviceName``)."""
    names = {}
    for device in devices or []:
        if not isinstance(device, dict) or device.get("id") is None:
            continue
        name = device.get("name")
        if name is None:
            name = device.get("deviceName")
        names[str(device["id"])] = name or ""
    return names


class HttpSearchBackend:
    """Async client for the dashboard search API."""

    def __init__(
        self,
        base_url: str = config.SEARCH_API_URL,
        timeout: float = config.SEARCH_API_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def post(self, path: str, body: SearchBody) -> Any:
        client = await self._get_client()
        try:
            resp = await client.post(f"/{path}", json=body.model_dump())
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as exc:
            logger.error("Search request to %s failed: %s", path, exc)
            raise SearchBackendError(f"search request to {path} failed: {exc}") from exc
        except ValueError as exc:
            logger.error("Search response from %s is not JSON: %s", path, exc)
            raise SearchBackendError(f"search response from {path} is not JSON") from exc

    async def time_series(self, body: SearchBody) -> Tuple[Any, Dict[str, str]]:
        """
        Fetch the raw aggregation for a chart window.

        Returns:
            tuple: (raw aggregation response, series id -> display name map)
        """
        if body.siteId:
            data = await self.post(f"sites/{body.siteId}", body)
            data = data if isinstance(data, dict) else {}
            return data.get("timeSeries"), device_name_map(data.get("devices"))

        data = await self.post("overview", body)
        if isinstance(data, dict) and "timeSeries" in data:
            return data["timeSeries"], device_name_map(data.get("devices"))
        return data, {}

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
