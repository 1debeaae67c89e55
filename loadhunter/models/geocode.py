"""Geocode cache — durable cost control for the paid geocoding API."""

from sqlalchemy import Column, Float, Index, Integer, String

from .base import Base, UTCDateTime, utcnow


class GeocodeCacheEntry(Base):
    """Coordinates for one normalized "CITY, STATE" key. Never deleted here."""

    __tablename__ = "geocode_cache"
    id = Column(Integer, primary_key=True)
    location_key = Column(String(255), nullable=False, unique=True)
    city = Column(String(150))
    state = Column(String(10))
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    hit_count = Column(Integer, nullable=False, default=1)
    month_created = Column(String(7), nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_geocode_cache_created", "created_at"),
    )
