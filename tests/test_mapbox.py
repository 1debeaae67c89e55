"""
test_mapbox.py — Tests for connectors/mapbox.py

Mocks httpx to test parsing and retry logic without hitting Mapbox.

Called by: pytest
Depends on: loadhunter/connectors/mapbox.py
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from loadhunter.connectors.mapbox import MapboxGeocoder, parse_feature
from loadhunter.exceptions import GeocodingError

PLACE = {
    "id": "place.123",
    "text": "Chicago",
    "place_name": "Chicago, Illinois, United States",
    "center": [-87.6298, 41.8781],
    "context": [
        {"id": "region.1", "text": "Illinois", "short_code": "US-IL"},
        {"id": "country.1", "text": "United States", "short_code": "us"},
    ],
}

POSTCODE = {
    "id": "postcode.9",
    "text": "64101",
    "center": [-94.6, 39.1],
    "context": [
        {"id": "place.5", "text": "Kansas City"},
        {"id": "region.2", "short_code": "US-MO"},
    ],
}


def _resp(status: int, json_data: dict | None = None, headers: dict | None = None):
    r = MagicMock()
    r.status_code = status
    r.json.return_value = json_data or {}
    r.headers = headers or {}
    r.text = ""
    return r


def test_parse_place_feature():
    f = parse_feature(PLACE)
    assert (f.latitude, f.longitude) == (41.8781, -87.6298)
    assert (f.city, f.state) == ("Chicago", "IL")


def test_parse_postcode_uses_context():
    f = parse_feature(POSTCODE)
    assert (f.city, f.state) == ("Kansas City", "MO")


def test_parse_feature_without_center():
    assert parse_feature({"id": "place.1"}) is None


@pytest.mark.asyncio
async def test_missing_token_raises():
    with pytest.raises(GeocodingError):
        await MapboxGeocoder(access_token="").forward("CHICAGO, IL")


@pytest.mark.asyncio
async def test_forward_sends_us_limit_one():
    geo = MapboxGeocoder(access_token="pk.test")
    with patch("httpx.AsyncClient.get", new_callable=AsyncMock,
               return_value=_resp(200, {"features": [PLACE]})) as mock_get:
        features = await geo.forward("CHICAGO, IL")
    assert features[0].city == "Chicago"
    url = mock_get.call_args.args[0]
    params = mock_get.call_args.kwargs["params"]
    assert url.endswith("/CHICAGO%2C%20IL.json")
    assert params["country"] == "US"
    assert params["limit"] == "1"
    assert "types" not in params


@pytest.mark.asyncio
async def test_retries_on_429_then_succeeds():
    geo = MapboxGeocoder(access_token="pk.test")
    responses = [_resp(429, headers={"Retry-After": "0"}), _resp(200, {"features": [PLACE]})]
    with patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=responses), \
         patch("loadhunter.connectors.mapbox.asyncio.sleep", new_callable=AsyncMock) as sleep:
        features = await geo.forward("CHICAGO, IL")
    assert len(features) == 1
    sleep.assert_awaited_once_with(0)


@pytest.mark.asyncio
async def test_client_error_not_retried():
    geo = MapboxGeocoder(access_token="pk.test")
    with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=_resp(401)) as mock_get:
        with pytest.raises(GeocodingError, match="mapbox_http_401"):
            await geo.forward("CHICAGO, IL")
    assert mock_get.await_count == 1


@pytest.mark.asyncio
async def test_connection_errors_exhaust_retries():
    geo = MapboxGeocoder(access_token="pk.test")
    with patch("httpx.AsyncClient.get", new_callable=AsyncMock,
               side_effect=httpx.ConnectError("refused")) as mock_get, \
         patch("loadhunter.connectors.mapbox.asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(GeocodingError, match="retries_exhausted"):
            await geo.forward("CHICAGO, IL")
    assert mock_get.await_count == 4


@pytest.mark.asyncio
async def test_http_date_retry_after_does_not_crash():
    geo = MapboxGeocoder(access_token="pk.test")
    responses = [
        _resp(429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}),
        _resp(200, {"features": [PLACE]}),
    ]
    with patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=responses), \
         patch("loadhunter.connectors.mapbox.asyncio.sleep", new_callable=AsyncMock) as sleep:
        features = await geo.forward("CHICAGO, IL")
    assert len(features) == 1
    sleep.assert_awaited_once_with(0)


@pytest.mark.asyncio
async def test_unparseable_retry_after_uses_backoff():
    geo = MapboxGeocoder(access_token="pk.test")
    responses = [_resp(429, headers={"Retry-After": "later"}), _resp(200, {"features": [PLACE]})]
    with patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=responses), \
         patch("loadhunter.connectors.mapbox.asyncio.sleep", new_callable=AsyncMock) as sleep:
        await geo.forward("CHICAGO, IL")
    sleep.assert_awaited_once_with(2)


@pytest.mark.asyncio
async def test_non_json_200_raises_geocoding_error():
    geo = MapboxGeocoder(access_token="pk.test")
    r = _resp(200)
    r.json.side_effect = ValueError("Expecting value")
    with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=r):
        with pytest.raises(GeocodingError, match="mapbox_bad_json"):
            await geo.forward("CHICAGO, IL")


@pytest.mark.asyncio
async def test_malformed_features_raise_geocoding_error():
    geo = MapboxGeocoder(access_token="pk.test")
    with patch("httpx.AsyncClient.get", new_callable=AsyncMock,
               return_value=_resp(200, {"features": ["not-a-feature"]})):
        with pytest.raises(GeocodingError, match="mapbox_bad_payload"):
            await geo.forward("CHICAGO, IL")
