"""Proxy for real-time departures from the ViaggiaTreno timetable service."""
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

import httpx

import config
from errors import UpstreamError
from logger import get_logger

logger = get_logger(__name__)


def parse_time(raw: Optional[str]) -> datetime:
    """Accepts epoch milliseconds or an ISO string; anything else means now."""
    now = datetime.now(timezone.utc)
    if not raw:
        return now
    try:
        return datetime.fromtimestamp(int(raw) / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        pass
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return now
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(when: datetime) -> str:
    # ViaggiaTreno expects a JS Date.toString() style string: Mon Dec 02 2024 15:35:00 GMT+0100
    return when.strftime("%a %b %d %Y %H:%M:%S GMT%z")


def departures_url(station_id: str, when: datetime) -> str:
    return f"{config.TRAIN_API_URL}/partenze/{quote(station_id)}/{quote(format_timestamp(when))}"


async def fetch_departures(station_id: str, when: Optional[datetime] = None,
                           client: Optional[httpx.AsyncClient] = None):
    url = departures_url(station_id, when or datetime.now(timezone.utc))
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=config.TRAIN_API_TIMEOUT)
    try:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Train departures for {station_id} failed: {e}")
        raise UpstreamError("Failed to fetch real-time train data")
    finally:
        if owns_client:
            await client.aclose()
