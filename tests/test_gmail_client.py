"""
test_gmail_client.py — Tests for utils/gmail_client.py

MIME body extraction, header parsing, unread listing and the retry
wrapper. HTTP is served by httpx.MockTransport; nothing leaves the process.

Called by: pytest
Depends on: loadhunter/utils/gmail_client.py
"""

import base64
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from loadhunter.exceptions import MailProviderError
from loadhunter.utils import gmail_client
from loadhunter.utils.gmail_client import (
    GmailClient, decode_base64url, extract_bodies, parse_inbound_message, parse_sender,
)


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


# ── Decoding ─────────────────────────────────────────────────────────


def test_decode_base64url_handles_missing_padding():
    assert decode_base64url(_b64("Pick-Up: Chicago, IL")) == "Pick-Up: Chicago, IL"
    assert decode_base64url(None) == ""


def test_extract_bodies_walks_nested_parts():
    payload = {
        "mimeType": "multipart/mixed",
        "parts": [
            {"mimeType": "multipart/alternative", "parts": [
                {"mimeType": "text/plain", "body": {"data": _b64("plain body")}},
                {"mimeType": "text/html", "body": {"data": _b64("<p>html body</p>")}},
            ]},
            {"mimeType": "application/pdf", "body": {"attachmentId": "a1"}},
        ],
    }
    assert extract_bodies(payload) == ("<p>html body</p>", "plain body")


def test_top_level_html_body():
    payload = {"mimeType": "text/html", "body": {"data": _b64("<b>hi</b>")}}
    assert extract_bodies(payload) == ("<b>hi</b>", "")


def test_parse_sender():
    assert parse_sender("Hot Loads <HotLoads@Sylectus.com>") == ("Hot Loads", "hotloads@sylectus.com")
    assert parse_sender("ops@fullcircletms.com") == (None, "ops@fullcircletms.com")


def test_parse_inbound_message():
    raw = {
        "id": "abc",
        "threadId": "t1",
        "internalDate": "1765700000000",
        "payload": {
            "mimeType": "text/plain",
            "headers": [
                {"name": "from", "value": "Dispatch <ops@fctms.com>"},
                {"name": "SUBJECT", "value": "Load Available: IL - TX"},
            ],
            "body": {"data": _b64("bid yes to this load")},
        },
    }
    msg = parse_inbound_message(raw)
    assert msg.message_id == "abc"
    assert msg.thread_id == "t1"
    assert msg.sender_email == "ops@fctms.com"
    assert msg.subject == "Load Available: IL - TX"
    assert msg.body_text == "bid yes to this load"
    assert msg.received_at == datetime.fromtimestamp(1765700000, tz=timezone.utc)


# ── Listing ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_unread_pages_and_returns_oldest_first():
    pages = [
        {"messages": [{"id": "m4"}, {"id": "m3"}], "nextPageToken": "p2"},
        {"messages": [{"id": "m2"}, {"id": "m1"}]},
    ]
    gc = GmailClient("token")
    with patch.object(GmailClient, "_request_with_retry", AsyncMock(side_effect=pages)) as req:
        ids = await gc.list_unread(max_messages=10)
    assert ids == ["m1", "m2", "m3", "m4"]
    assert req.await_args_list[1].kwargs["params"]["pageToken"] == "p2"


@pytest.mark.asyncio
async def test_list_unread_caps_at_max_messages():
    page = {"messages": [{"id": "m3"}, {"id": "m2"}, {"id": "m1"}], "nextPageToken": "more"}
    gc = GmailClient("token")
    with patch.object(GmailClient, "_request_with_retry", AsyncMock(return_value=page)):
        ids = await gc.list_unread(max_messages=2)
    assert ids == ["m2", "m3"]


# ── Retry wrapper ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_retries_5xx_then_succeeds():
    responses = iter([httpx.Response(503), httpx.Response(200, json={"id": "m1"})])
    transport = httpx.MockTransport(lambda request: next(responses))
    gc = GmailClient("token")
    with patch("loadhunter.utils.gmail_client.asyncio.sleep", new=AsyncMock()) as sleep:
        async with httpx.AsyncClient(transport=transport) as http:
            data = await gc._request_with_retry(http, "GET", "https://gmail.test/messages/m1")
    assert data == {"id": "m1"}
    sleep.assert_awaited_once_with(2)


@pytest.mark.asyncio
async def test_429_honors_retry_after():
    responses = iter([httpx.Response(429, headers={"Retry-After": "7"}), httpx.Response(200, json={})])
    transport = httpx.MockTransport(lambda request: next(responses))
    gc = GmailClient("token")
    with patch("loadhunter.utils.gmail_client.asyncio.sleep", new=AsyncMock()) as sleep:
        async with httpx.AsyncClient(transport=transport) as http:
            await gc._request_with_retry(http, "GET", "https://gmail.test/messages")
    sleep.assert_awaited_once_with(7)


@pytest.mark.asyncio
async def test_client_error_raises_without_retry():
    transport = httpx.MockTransport(lambda request: httpx.Response(404, text="not found"))
    gc = GmailClient("token")
    with patch("loadhunter.utils.gmail_client.asyncio.sleep", new=AsyncMock()) as sleep:
        async with httpx.AsyncClient(transport=transport) as http:
            with pytest.raises(MailProviderError) as exc:
                await gc._request_with_retry(http, "GET", "https://gmail.test/messages/gone")
    assert exc.value.status_code == 404
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_connection_errors_exhaust_retries():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    gc = GmailClient("token")
    with patch("loadhunter.utils.gmail_client.asyncio.sleep", new=AsyncMock()) as sleep:
        async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as http:
            with pytest.raises(MailProviderError):
                await gc._request_with_retry(http, "GET", "https://gmail.test/messages")
    assert sleep.await_count == 4


@pytest.mark.asyncio
async def test_bearer_token_sent():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={})

    gc = GmailClient("secret-token")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        await gc._request_with_retry(http, "GET", "https://gmail.test/messages")
    assert seen["auth"] == "Bearer secret-token"


@pytest.mark.asyncio
async def test_429_with_http_date_retry_after():
    responses = iter([
        httpx.Response(429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}),
        httpx.Response(200, json={"ok": True}),
    ])
    transport = httpx.MockTransport(lambda request: next(responses))
    gc = GmailClient("token")
    with patch("loadhunter.utils.gmail_client.asyncio.sleep", new=AsyncMock()) as sleep:
        async with httpx.AsyncClient(transport=transport) as http:
            data = await gc._request_with_retry(http, "GET", "https://gmail.test/messages")
    assert data == {"ok": True}
    # A date in the past means retry now
    sleep.assert_awaited_once_with(0)


@pytest.mark.asyncio
async def test_non_json_success_raises_mail_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy</html>"))
    gc = GmailClient("token")
    async with httpx.AsyncClient(transport=transport) as http:
        with pytest.raises(MailProviderError, match="gmail_bad_json"):
            await gc._request_with_retry(http, "GET", "https://gmail.test/messages")


# ── Mark read ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_mark_read_removes_unread_label():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "m1", "labelIds": ["INBOX"]})

    real = httpx.AsyncClient
    transport = httpx.MockTransport(handler)
    with patch.object(gmail_client.httpx, "AsyncClient", lambda **kw: real(transport=transport, **kw)):
        data = await GmailClient("token").mark_read("m1")
    assert seen["method"] == "POST"
    assert seen["path"].endswith("/messages/m1/modify")
    assert seen["body"] == {"removeLabelIds": ["UNREAD"]}
    assert data["labelIds"] == ["INBOX"]


@pytest.mark.asyncio
async def test_mark_read_empty_body_is_ok():
    real = httpx.AsyncClient
    transport = httpx.MockTransport(lambda request: httpx.Response(204))
    with patch.object(gmail_client.httpx, "AsyncClient", lambda **kw: real(transport=transport, **kw)):
        assert await GmailClient("token").mark_read("m1") == {}
