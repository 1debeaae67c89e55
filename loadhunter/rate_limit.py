"""Per-caller rate limiter for the geocoding miss path.

Wraps the `limits` moving-window strategy with in-memory storage. State is
process-local and resets on restart; the geocode cache and its daily budget
are the durable cost control, this only smooths bursts.

An instance is built once per process (see main.py / scheduler.py) and
passed explicitly to GeocodeCache. Nothing here is module-level state.
"""

from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from loguru import logger

from .config import settings


class RateLimiter:
    def __init__(self, limit: str | None = None, namespace: str = "geocode"):
        self.limit_string = limit or settings.geocode_rate_limit
        self.namespace = namespace
        self._item = parse(self.limit_string)
        self._storage = MemoryStorage()
        self._strategy = MovingWindowRateLimiter(self._storage)

    def hit(self, key: str) -> bool:
        """Consume one slot for key. False when the window is already full."""
        allowed = self._strategy.hit(self._item, self.namespace, key or "unknown")
        if not allowed:
            logger.warning(f"rate_limited namespace={self.namespace} key={key} limit={self.limit_string}")
        return allowed

    def remaining(self, key: str) -> int:
        stats = self._strategy.get_window_stats(self._item, self.namespace, key or "unknown")
        return stats.remaining

    def reset(self) -> None:
        self._storage.reset()
