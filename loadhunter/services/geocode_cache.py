"""
services/geocode_cache.py — Cost-controlled "CITY, STATE" → coordinates lookup

The cache, not the rate limiter, is the durable spend control: every
distinct location is paid for once and then served from geocode_cache.

Business Rules:
- Key: "CITY, STATE" uppercased, whitespace collapsed, periods/commas inside
  parts removed, trailing USA / US / UNITED STATES stripped
- Hit: hit_count + 1 in SQL, best-effort (never blocks or fails the lookup)
- Miss: per-caller rate limit, then the daily new-location budget, then one
  provider call; the result is upserted on the unique key (stampede-safe)
- Provider failure / empty result / refused by limiter or budget → None,
  nothing cached

Called by: services/load_ingestion.py, routers/geocode.py
Depends on: connectors/mapbox.py, rate_limit.py, models (GeocodeCacheEntry)
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from ..config import settings
from ..connectors.mapbox import MapboxGeocoder
from ..exceptions import GeocodingError
from ..models import GeocodeCacheEntry
from ..rate_limit import RateLimiter

log = logging.getLogger("loadhunter.geocode_cache")

_COUNTRY_SUFFIX = re.compile(r"(?:(?:,\s*|\s+)(?:UNITED STATES|USA|US))+$")


def _normalize_part(value: str | None) -> str:
    value = re.sub(r"[.,]", "", (value or "").upper())
    return re.sub(r"\s+", " ", value).strip()


def normalize_location_key(city: str | None, state: str | None) -> str | None:
    """Canonical cache key. None when there is nothing to look up."""
    city_part, state_part = _normalize_part(city), _normalize_part(state)
    key = f"{city_part}, {state_part}" if city_part and state_part else city_part or state_part
    key = _COUNTRY_SUFFIX.sub("", key).strip(" ,")
    return key or None


@dataclass(frozen=True)
class GeocodeResult:
    location_key: str
    latitude: float
    longitude: float
    city: str | None
    state: str | None
    cached: bool


def _start_of_day(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class GeocodeCache:
    def __init__(self, geocoder: MapboxGeocoder, limiter: RateLimiter,
                 daily_budget: int | None = None, background=None, session_factory=None):
        self.geocoder = geocoder
        self.limiter = limiter
        self.daily_budget = settings.geocode_daily_budget if daily_budget is None else daily_budget
        self.background = background
        self.session_factory = session_factory

    # ── Lookup ───────────────────────────────────────────────────────

    async def lookup(self, db: Session, city: str | None, state: str | None,
                     caller: str = "pipeline") -> GeocodeResult | None:
        key = normalize_location_key(city, state)
        if not key:
            return None

        entry = db.query(GeocodeCacheEntry).filter(GeocodeCacheEntry.location_key == key).first()
        if entry:
            self._record_hit(db, entry.id)
            return GeocodeResult(key, entry.latitude, entry.longitude, entry.city, entry.state, cached=True)

        if not self._may_spend(db, caller, key):
            return None

        try:
            features = await self.geocoder.forward(key)
        except GeocodingError as e:
            log.warning(f"geocode_provider_failed key={key} error={e}")
            return None
        if not features:
            log.info(f"geocode_no_result key={key}")
            return None

        top = features[0]
        result_city = top.city or (city.strip() if city else None)
        result_state = top.state or (state.strip().upper() if state else None)
        self._persist(db, key, top.latitude, top.longitude, result_city, result_state)
        return GeocodeResult(key, top.latitude, top.longitude, result_city, result_state, cached=False)

    async def lookup_postal(self, db: Session, postal_code: str | None,
                            caller: str = "pipeline") -> tuple[str, str] | None:
        """Postal code → (city, state) from the provider's administrative context."""
        postal = re.sub(r"\D", "", postal_code or "")[:5]
        if len(postal) != 5:
            return None
        if not self._may_spend(db, caller, postal):
            return None
        try:
            features = await self.geocoder.forward(postal, types="postcode")
        except GeocodingError as e:
            log.warning(f"postal_lookup_failed postal={postal} error={e}")
            return None
        for feature in features:
            if feature.city and feature.state:
                return feature.city, feature.state
        log.info(f"postal_lookup_no_result postal={postal}")
        return None

    # ── Spend gates ──────────────────────────────────────────────────

    def _may_spend(self, db: Session, caller: str, key: str) -> bool:
        if not self.limiter.hit(caller):
            log.warning(f"geocode_skipped reason=rate_limited caller={caller} key={key}")
            return False
        created_today = self.created_today(db)
        if created_today >= self.daily_budget:
            log.warning(
                f"geocode_skipped reason=daily_budget_exhausted key={key} "
                f"created_today={created_today} budget={self.daily_budget}"
            )
            return False
        return True

    def created_today(self, db: Session) -> int:
        return (
            db.query(func.count(GeocodeCacheEntry.id))
            .filter(GeocodeCacheEntry.created_at >= _start_of_day())
            .scalar()
        ) or 0

    # ── Writes ───────────────────────────────────────────────────────

    def _persist(self, db: Session, key: str, lat: float, lng: float,
                 city: str | None, state: str | None) -> None:
        now = datetime.now(timezone.utc)
        insert = pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert
        stmt = insert(GeocodeCacheEntry).values(
            location_key=key,
            latitude=lat,
            longitude=lng,
            city=city,
            state=state,
            hit_count=1,
            month_created=now.strftime("%Y-%m"),
            created_at=now,
        )
        # A concurrent miss already stored this key: count ours as a hit
        stmt = stmt.on_conflict_do_update(
            index_elements=["location_key"],
            set_={"hit_count": GeocodeCacheEntry.hit_count + 1},
        )
        try:
            db.execute(stmt)
            db.commit()
        except Exception as e:
            db.rollback()
            log.warning(f"geocode_cache_write_failed key={key} error={e}")

    def _record_hit(self, db: Session, entry_id: int) -> None:
        if self.background is not None and self.session_factory is not None:
            if self.background.try_submit(f"geocode_hit:{entry_id}", self._increment_in_new_session, entry_id):
                return
        increment_hit_count(db, entry_id)

    def _increment_in_new_session(self, entry_id: int) -> None:
        db = self.session_factory()
        try:
            increment_hit_count(db, entry_id)
        finally:
            db.close()


def increment_hit_count(db: Session, entry_id: int) -> None:
    """Atomic hit_count + 1. Failures are logged and swallowed."""
    try:
        db.query(GeocodeCacheEntry).filter(GeocodeCacheEntry.id == entry_id).update(
            {GeocodeCacheEntry.hit_count: GeocodeCacheEntry.hit_count + 1},
            synchronize_session=False,
        )
        db.commit()
    except Exception as e:
        db.rollback()
        log.debug(f"geocode_hit_count_failed id={entry_id} error={e}")
