"""Mapbox forward-geocoding client.

API docs: https://docs.mapbox.com/api/search/geocoding-v5/
Queries are constrained to country=US, limit=1. Each feature carries a
center [lng, lat] and an administrative context used to backfill
city/state. Retries 429 (honoring Retry-After) and 5xx with exponential
backoff; anything else raises GeocodingError.

Usage:
    geo = MapboxGeocoder(settings.mapbox_token)
    features = await geo.forward("CHICAGO, IL")
    features = await geo.forward("60601", types="postcode")
"""

import asyncio
import logging
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from ..config import settings
from ..exceptions import GeocodingError
from ..utils.retry import retry_after_seconds

log = logging.getLogger("loadhunter.mapbox")

MAPBOX_BASE = "https://api.mapbox.com/geocoding/v5/mapbox.places"
MAX_RETRIES = 3
BACKOFF_BASE = 2


@dataclass(frozen=True)
class GeocodeFeature:
    latitude: float
    longitude: float
    city: str | None = None
    state: str | None = None
    place_name: str | None = None


def _state_from(item: dict) -> str | None:
    short = item.get("short_code") or ""
    if short.upper().startswith("US-"):
        return short[3:].upper()
    return None


def parse_feature(feature: dict) -> GeocodeFeature | None:
    center = feature.get("center") or []
    if len(center) < 2:
        return None
    city = feature.get("text") if str(feature.get("id", "")).startswith("place.") else None
    state = _state_from(feature) if str(feature.get("id", "")).startswith("region.") else None
    for item in feature.get("context") or []:
        item_id = str(item.get("id", ""))
        if item_id.startswith("place.") and not city:
            city = item.get("text")
        elif item_id.startswith("region.") and not state:
            state = _state_from(item)
    return GeocodeFeature(
        latitude=float(center[1]),
        longitude=float(center[0]),
        city=city,
        state=state,
        place_name=feature.get("place_name"),
    )


class MapboxGeocoder:
    """Thin Mapbox wrapper with retry. One instance per process is enough."""

    def __init__(self, access_token: str | None = None, timeout: int = 15):
        self.token = access_token if access_token is not None else settings.mapbox_token
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.token)

    async def forward(self, query: str, types: str | None = None) -> list[GeocodeFeature]:
        """Ranked features for query. [] when nothing matched."""
        if not self.configured:
            raise GeocodingError("mapbox_token_missing")
        url = f"{MAPBOX_BASE}/{quote(query, safe='')}.json"
        params = {"access_token": self.token, "country": "US", "limit": "1"}
        if types:
            params["types"] = types
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            data = await self._request_with_retry(client, url, params)
        try:
            features = [parse_feature(f) for f in data.get("features") or []]
        except (AttributeError, TypeError, ValueError) as e:
            raise GeocodingError(f"mapbox_bad_payload: {e}")
        return [f for f in features if f is not None]

    async def _request_with_retry(self, client: httpx.AsyncClient, url: str, params: dict) -> dict:
        last_error: Exception | None = None

        for attempt in range(MAX_RETRIES + 1):
            try:
                resp = await client.get(url, params=params)

                if resp.status_code == 200:
                    try:
                        return resp.json()
                    except ValueError:
                        raise GeocodingError("mapbox_bad_json")

                if resp.status_code == 429:
                    wait = retry_after_seconds(resp.headers.get("Retry-After"), BACKOFF_BASE ** (attempt + 1))
                    log.warning(f"Mapbox 429 — retry in {wait}s (attempt {attempt + 1})")
                    await asyncio.sleep(wait)
                    continue

                if resp.status_code >= 500:
                    wait = BACKOFF_BASE ** (attempt + 1)
                    log.warning(f"Mapbox {resp.status_code} — retry in {wait}s (attempt {attempt + 1})")
                    await asyncio.sleep(wait)
                    continue

                log.error(f"Mapbox {resp.status_code}: {resp.text[:300]}")
                raise GeocodingError(f"mapbox_http_{resp.status_code}")

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_error = e
                wait = BACKOFF_BASE ** (attempt + 1)
                log.warning(f"Mapbox connection error — retry in {wait}s: {e}")
                await asyncio.sleep(wait)

        log.error(f"Mapbox request failed after {MAX_RETRIES} retries")
        raise GeocodingError(f"mapbox_retries_exhausted: {last_error}")
