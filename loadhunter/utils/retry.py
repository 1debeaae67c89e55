"""Shared backoff helpers for the Gmail and Mapbox clients."""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime


def retry_after_seconds(value: str | None, default: int) -> int:
    """Retry-After as seconds. Accepts delta-seconds or an HTTP-date; default otherwise."""
    if not value:
        return default
    try:
        return max(0, int(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0, int((when - datetime.now(timezone.utc)).total_seconds()))
