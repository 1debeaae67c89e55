"""Gmail API client — retry wrapper, unread listing, MIME body decoding.

Retries 429 (honoring Retry-After) and 5xx with exponential backoff, and
connection errors the same way. Other client errors raise MailProviderError.

Usage:
    from loadhunter.utils.gmail_client import GmailClient, parse_inbound_message
    gc = GmailClient(access_token)
    ids = await gc.list_unread(max_messages=50)
    raw = await gc.get_message(ids[0])
    msg = parse_inbound_message(raw)
    await gc.mark_read(ids[0])
"""
import asyncio
import base64
import binascii
import logging
from datetime import datetime, timezone
from email.utils import parseaddr

import httpx

from ..exceptions import MailProviderError
from ..schemas.shipment import InboundMessage
from .retry import retry_after_seconds

log = logging.getLogger("loadhunter.gmail")

GMAIL_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"

MAX_RETRIES = 3
BACKOFF_BASE = 2  # seconds, exponential: 2, 4, 8


class GmailClient:
    """Thin wrapper around the Gmail REST API for one mailbox."""

    def __init__(self, access_token: str, timeout: int = 30):
        self.token = access_token
        self.timeout = timeout
        self._base_headers = {"Authorization": f"Bearer {access_token}"}

    async def get_json(self, path: str, params: dict | None = None) -> dict:
        url = path if path.startswith("http") else f"{GMAIL_BASE}{path}"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._request_with_retry(client, "GET", url, params=params)

    async def list_unread(self, max_messages: int = 50) -> list[str]:
        """Unread INBOX message ids, oldest first, at most max_messages."""
        ids: list[str] = []
        params = {"labelIds": "INBOX", "q": "is:unread", "maxResults": str(min(max_messages, 500))}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while len(ids) < max_messages:
                data = await self._request_with_retry(client, "GET", f"{GMAIL_BASE}/messages", params=params)
                ids.extend(m["id"] for m in data.get("messages") or [] if m.get("id"))
                page_token = data.get("nextPageToken")
                if not page_token:
                    break
                params = {**params, "pageToken": page_token}
        # Gmail lists newest first; process in receipt order
        return list(reversed(ids[:max_messages]))

    async def get_message(self, message_id: str) -> dict:
        return await self.get_json(f"/messages/{message_id}", params={"format": "full"})

    async def mark_read(self, message_id: str) -> dict:
        """Drop the UNREAD label so the message leaves the unread listing."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._request_with_retry(
                client, "POST", f"{GMAIL_BASE}/messages/{message_id}/modify",
                json_data={"removeLabelIds": ["UNREAD"]},
            )

    # ── Internal retry logic ────────────────────────────────────────

    async def _request_with_retry(self, client: httpx.AsyncClient, method: str, url: str,
                                  params: dict | None = None, json_data: dict | None = None) -> dict:
        last_error: Exception | None = None

        for attempt in range(MAX_RETRIES + 1):
            try:
                if method == "POST":
                    resp = await client.post(url, params=params, json=json_data, headers=self._base_headers)
                else:
                    resp = await client.get(url, params=params, headers=self._base_headers)

                if 200 <= resp.status_code < 300:
                    if not resp.content:
                        return {}
                    try:
                        return resp.json()
                    except ValueError:
                        raise MailProviderError(f"gmail_bad_json status={resp.status_code}", resp.status_code)

                if resp.status_code == 429:
                    wait = retry_after_seconds(resp.headers.get("Retry-After"), BACKOFF_BASE ** (attempt + 1))
                    log.warning(f"Gmail 429 — retry in {wait}s (attempt {attempt + 1})")
                    await asyncio.sleep(wait)
                    continue

                if resp.status_code >= 500:
                    wait = BACKOFF_BASE ** (attempt + 1)
                    log.warning(f"Gmail {resp.status_code} — retry in {wait}s (attempt {attempt + 1})")
                    await asyncio.sleep(wait)
                    continue

                log.error(f"Gmail {resp.status_code}: {resp.text[:300]}")
                raise MailProviderError(f"gmail_http_{resp.status_code}", resp.status_code)

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_error = e
                wait = BACKOFF_BASE ** (attempt + 1)
                log.warning(f"Gmail connection error — retry in {wait}s: {e}")
                await asyncio.sleep(wait)

        log.error(f"Gmail request failed after {MAX_RETRIES} retries: {url}")
        raise MailProviderError(f"gmail_retries_exhausted: {last_error}")


# ── Payload decoding ────────────────────────────────────────────────


def decode_base64url(data: str | None) -> str:
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        log.debug("gmail_body_decode_failed")
        return ""


def _walk_parts(part: dict):
    yield part
    for child in part.get("parts") or []:
        yield from _walk_parts(child)


def extract_bodies(payload: dict) -> tuple[str, str]:
    """(html, text) for a Gmail message payload.

    A top-level body wins; otherwise all text/plain parts are concatenated,
    and likewise the text/html parts.
    """
    top = decode_base64url((payload.get("body") or {}).get("data"))
    if top:
        if (payload.get("mimeType") or "").lower() == "text/html":
            return top, ""
        return "", top

    html_parts, text_parts = [], []
    for part in _walk_parts(payload):
        mime = (part.get("mimeType") or "").lower()
        data = (part.get("body") or {}).get("data")
        if mime == "text/plain":
            text_parts.append(decode_base64url(data))
        elif mime == "text/html":
            html_parts.append(decode_base64url(data))
    return "\n".join(p for p in html_parts if p), "\n".join(p for p in text_parts if p)


def get_header(payload: dict, name: str) -> str:
    wanted = name.lower()
    for header in payload.get("headers") or []:
        if (header.get("name") or "").lower() == wanted:
            return header.get("value") or ""
    return ""


def parse_sender(value: str) -> tuple[str | None, str]:
    """'Name <addr>' → (name or None, lowercased address)."""
    name, addr = parseaddr(value or "")
    return (name.strip() or None), addr.strip().lower()


def parse_inbound_message(raw: dict) -> InboundMessage:
    payload = raw.get("payload") or {}
    html, text = extract_bodies(payload)
    sender_name, sender_email = parse_sender(get_header(payload, "From"))
    received_at = None
    if raw.get("internalDate"):
        try:
            received_at = datetime.fromtimestamp(int(raw["internalDate"]) / 1000, tz=timezone.utc)
        except (TypeError, ValueError):
            log.debug(f"gmail_bad_internal_date id={raw.get('id')}")
    return InboundMessage(
        message_id=raw["id"],
        thread_id=raw.get("threadId"),
        sender_email=sender_email,
        sender_name=sender_name,
        subject=get_header(payload, "Subject"),
        received_at=received_at,
        body_html=html,
        body_text=text,
    )
