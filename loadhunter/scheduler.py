"""Background scheduler — mailbox polling.

Runs on a tick loop (poll_interval_minutes). Each tick runs one run_batch
per active mailbox, with a per-mailbox timeout. Gmail tokens are refreshed
lazily when a batch asks for a client and the token expires within 5 min.

Can run inside the API process (main.py lifespan) or standalone:
    python -m loadhunter.scheduler
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import httpx

log = logging.getLogger("loadhunter.scheduler")

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
MAILBOX_RUN_TIMEOUT = 300


def _utc(dt):
    """Make a naive datetime UTC-aware (no-op if already aware)."""
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


# ── Token Management ────────────────────────────────────────────────────


async def get_valid_token(conn, db) -> str | None:
    """Valid Gmail access token for a MailboxConnection, refreshing when near expiry."""
    if conn.access_token and conn.token_expires_at:
        if datetime.now(timezone.utc) < _utc(conn.token_expires_at) - timedelta(minutes=5):
            return conn.access_token
    return await refresh_mailbox_token(conn, db)


async def refresh_mailbox_token(conn, db) -> str | None:
    """Refresh one mailbox's Google token. Returns the new access token or None."""
    from .config import settings

    if not conn.refresh_token:
        return None

    result = await _refresh_access_token(
        conn.refresh_token, settings.gmail_client_id, settings.gmail_client_secret
    )
    if not result:
        conn.last_error = "Token refresh failed"
        db.commit()
        log.warning(f"token_refresh_failed mailbox={conn.mailbox}")
        return None

    access_token, expires_in = result
    conn.access_token = access_token
    conn.token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    conn.last_error = None
    db.commit()
    log.info(f"token_refreshed mailbox={conn.mailbox}")
    return access_token


async def _refresh_access_token(
    refresh_token: str, client_id: str, client_secret: str
) -> tuple[str, int] | None:
    """Exchange a refresh token at Google's token endpoint.

    Returns (access_token, expires_in_seconds) or None on failure.
    """
    async with httpx.AsyncClient(timeout=15) as client:
        try:
            r = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
            if r.status_code != 200:
                log.warning(f"Token refresh failed: {r.status_code} — {r.text[:200]}")
                return None
            tokens = r.json()
            if not tokens.get("access_token"):
                return None
            return tokens["access_token"], int(tokens.get("expires_in") or 3600)
        except (httpx.HTTPError, ValueError) as e:
            log.warning(f"Token refresh error: {e}")
            return None


# ── Polling ─────────────────────────────────────────────────────────────


async def poll_all_mailboxes(service, session_factory) -> dict[str, str]:
    """One pass over every active mailbox. Returns mailbox → short status."""
    from .models import MailboxConnection

    db = session_factory()
    try:
        mailboxes = [
            m.mailbox
            for m in db.query(MailboxConnection).filter(MailboxConnection.is_active.is_(True)).all()
        ]
    finally:
        db.close()

    if not mailboxes:
        log.debug("Scheduler tick: no active mailboxes")
        return {}

    results: dict[str, str] = {}
    for mailbox in mailboxes:
        try:
            summary = await asyncio.wait_for(service.run_batch(mailbox), timeout=MAILBOX_RUN_TIMEOUT)
            results[mailbox] = (
                f"aborted:{summary.abort_reason}" if summary.aborted else f"inserted:{summary.inserted}"
            )
        except asyncio.TimeoutError:
            log.error(f"mailbox_poll_failed reason=timeout mailbox={mailbox} timeout={MAILBOX_RUN_TIMEOUT}")
            results[mailbox] = "timeout"
        except Exception as e:
            log.error(f"mailbox_poll_failed reason=unexpected mailbox={mailbox} error={e!r}")
            results[mailbox] = "error"
    return results


async def run_forever(service, session_factory, interval_minutes: int | None = None):
    """Tick loop. Never returns; tick errors are logged and the loop continues."""
    from .config import settings

    interval = (interval_minutes or settings.poll_interval_minutes) * 60
    log.info(f"Scheduler started — polling every {interval // 60} min")
    while True:
        try:
            await poll_all_mailboxes(service, session_factory)
        except Exception as e:
            log.error(f"Scheduler tick error: {e}")
        await asyncio.sleep(interval)


def build_service(session_factory, background=None):
    """Wire the ingestion service from settings."""
    from .connectors.mapbox import MapboxGeocoder
    from .rate_limit import RateLimiter
    from .services.geocode_cache import GeocodeCache
    from .services.load_ingestion import LoadIngestionService

    cache = GeocodeCache(
        MapboxGeocoder(), RateLimiter(), background=background, session_factory=session_factory
    )
    return LoadIngestionService(session_factory, cache, background=background)


async def _main():
    from .database import SessionLocal
    from .logging_config import setup_logging
    from .services.background import BackgroundQueue

    setup_logging()
    background = BackgroundQueue()
    background.start()
    try:
        await run_forever(build_service(SessionLocal, background), SessionLocal)
    finally:
        await background.stop()


if __name__ == "__main__":
    asyncio.run(_main())
