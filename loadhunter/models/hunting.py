"""Hunt plans (fleet search criteria) and the matches produced against them."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from .base import Base, UTCDateTime, utcnow


class HuntPlan(Base):
    """Read-only to the pipeline; owned by fleet management.

    vehicle_sizes holds a JSON list of accepted tags. Older rows carry a
    bare string, which the matcher treats as a one-element list.
    """

    __tablename__ = "hunt_plans"
    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), nullable=False)
    vehicle_id = Column(String(64))
    name = Column(String(255))
    enabled = Column(Boolean, default=True, nullable=False)
    center_lat = Column(Float)
    center_lng = Column(Float)
    pickup_radius_miles = Column(Float, default=200)
    vehicle_sizes = Column(JSON)
    max_payload_lbs = Column(Float)
    floor_shipment_id = Column(Integer)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("ix_hunt_plans_tenant_enabled", "tenant_id", "enabled"),
    )


class LoadHuntMatch(Base):
    __tablename__ = "load_hunt_matches"
    id = Column(Integer, primary_key=True)
    shipment_id = Column(
        Integer, ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False
    )
    hunt_plan_id = Column(
        Integer, ForeignKey("hunt_plans.id", ondelete="CASCADE"), nullable=False
    )
    tenant_id = Column(String(64), nullable=False)
    vehicle_id = Column(String(64))
    distance_miles = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    match_status = Column(String(20), default="active", nullable=False)
    matched_at = Column(UTCDateTime, default=utcnow)

    shipment = relationship("ShipmentRecord")
    hunt_plan = relationship("HuntPlan")

    __table_args__ = (
        Index("ix_load_hunt_matches_pair", "shipment_id", "hunt_plan_id", unique=True),
        Index("ix_load_hunt_matches_tenant_status", "tenant_id", "match_status"),
    )
