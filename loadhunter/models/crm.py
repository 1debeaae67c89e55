"""CRM models — broker customers created lazily by ingestion."""

from sqlalchemy import Column, Index, Integer, String, Text

from .base import Base, UTCDateTime, utcnow


class Customer(Base):
    """Tenant-scoped broker/customer. name_key is the lowercased name."""

    __tablename__ = "customers"
    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    name_key = Column(String(255), nullable=False)
    contact_name = Column(String(255))
    email = Column(String(255))
    phone = Column(String(50))
    mc_number = Column(String(20))
    notes = Column(Text)
    status = Column(String(20), default="active", nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_customers_tenant_name_key", "tenant_id", "name_key", unique=True),
    )
