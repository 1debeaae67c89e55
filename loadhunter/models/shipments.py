"""Shipment records extracted from inbound load emails."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import validates

from .base import Base, UTCDateTime, utcnow

SHIPMENT_STATUSES = ("new", "missed", "skipped")


class ShipmentRecord(Base):
    """One freight posting. id is the ordinal used by hunt floor cutoffs."""

    __tablename__ = "shipments"
    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String(255), nullable=False, unique=True)
    thread_id = Column(String(255))
    tenant_id = Column(String(64), nullable=False)
    dialect = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="new")

    # Message envelope
    sender_email = Column(String(255))
    sender_name = Column(String(255))
    subject = Column(Text)
    body_text = Column(Text)
    body_html = Column(Text)
    received_at = Column(UTCDateTime)

    # Route
    vehicle_type = Column(String(100))
    order_number = Column(String(100))
    order_number_secondary = Column(String(100))
    origin_city = Column(String(150))
    origin_state = Column(String(10))
    origin_postal = Column(String(20))
    destination_city = Column(String(150))
    destination_state = Column(String(10))
    destination_postal = Column(String(20))
    stops = Column(JSON, default=list)
    stop_count = Column(Integer)
    has_multiple_stops = Column(Boolean, default=False)
    pickup_date = Column(String(50))
    pickup_time = Column(String(50))
    delivery_date = Column(String(50))
    delivery_time = Column(String(50))

    # Freight
    loaded_miles = Column(Integer)
    weight = Column(Float)
    pieces = Column(Integer)
    dimensions = Column(String(100))
    posted_rate = Column(Float)
    dock_level = Column(Boolean)
    hazmat = Column(Boolean)
    team_required = Column(Boolean)
    stackable = Column(Boolean)
    notes = Column(Text)

    # Broker
    customer_name = Column(String(255))
    broker_company = Column(String(255))
    broker_name = Column(String(255))
    broker_email = Column(String(255))
    broker_phone = Column(String(50))
    broker_fax = Column(String(50))
    mc_number = Column(String(20))

    # Timing
    posted_at = Column(UTCDateTime)
    expires_at = Column(UTCDateTime)

    # Geocoding
    pickup_lat = Column(Float)
    pickup_lng = Column(Float)
    geocoding_status = Column(String(20), default="pending")
    geocoding_error = Column(String(50))

    has_issues = Column(Boolean, default=False, nullable=False)
    issue_notes = Column(Text)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_shipments_tenant_created", "tenant_id", "created_at"),
        Index("ix_shipments_tenant_status", "tenant_id", "status"),
    )

    @validates("tenant_id")
    def _tenant_is_immutable(self, key, value):
        current = self.__dict__.get("tenant_id")
        if current is not None and value != current:
            raise ValueError(f"tenant_id is immutable (shipment {self.id})")
        return value

    @validates("status")
    def _status_is_known(self, key, value):
        if value not in SHIPMENT_STATUSES:
            raise ValueError(f"unknown shipment status: {value}")
        return value

    @property
    def has_pickup_coordinates(self) -> bool:
        return self.pickup_lat is not None and self.pickup_lng is not None
