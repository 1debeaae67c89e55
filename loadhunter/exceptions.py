"""Exception hierarchy for the ingestion pipeline.

Only fatal-to-run and fatal-to-message conditions are raised. Degraded
outcomes (a field failed to parse, a geocode miss) are represented as
None values, never as exceptions.
"""


class LoadHunterError(Exception):
    """Base class for all pipeline errors."""


class TenantResolutionError(LoadHunterError):
    """Mailbox could not be attributed to exactly one tenant. Aborts the run."""

    def __init__(self, mailbox: str, reason: str):
        self.mailbox = mailbox
        self.reason = reason
        super().__init__(f"tenant_resolution_failed mailbox={mailbox} reason={reason}")


class MailProviderError(LoadHunterError):
    """The mail provider returned an unusable response."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class GeocodingError(LoadHunterError):
    """The geocoding provider failed. Callers treat this as a miss."""


class RateLimitExceeded(LoadHunterError):
    """A per-caller rate limit or the daily geocode budget was exhausted."""

    def __init__(self, key: str, limit: str):
        self.key = key
        self.limit = limit
        super().__init__(f"rate_limited key={key} limit={limit}")


class ShipmentNotFound(LoadHunterError):
    def __init__(self, shipment_id: int):
        self.shipment_id = shipment_id
        super().__init__(f"shipment {shipment_id} not found")
