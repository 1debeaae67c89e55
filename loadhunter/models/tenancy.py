"""Tenancy models — mailbox connections and per-tenant integrations."""

from sqlalchemy import JSON, Boolean, Column, Index, Integer, String, Text

from .base import Base, UTCDateTime, utcnow


class MailboxConnection(Base):
    """A polled mailbox, its OAuth tokens, and its owning tenant.

    tenant_id is the stored mailbox→tenant mapping. NULL means the mailbox
    is connected but not yet assigned; resolution then falls through to
    integration settings.
    """

    __tablename__ = "mailbox_connections"
    id = Column(Integer, primary_key=True)
    mailbox = Column(String(255), nullable=False, unique=True)
    tenant_id = Column(String(64))
    access_token = Column(Text)
    refresh_token = Column(Text)
    token_expires_at = Column(UTCDateTime)
    is_active = Column(Boolean, default=True, nullable=False)
    last_polled_at = Column(UTCDateTime)
    last_error = Column(Text)
    created_at = Column(UTCDateTime, default=utcnow)


class TenantIntegration(Base):
    __tablename__ = "tenant_integrations"
    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(64), nullable=False)
    provider = Column(String(50), nullable=False)
    is_enabled = Column(Boolean, default=True, nullable=False)
    settings = Column(JSON, default=dict)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("ix_tenant_integrations_provider", "provider", "is_enabled"),
        Index("ix_tenant_integrations_tenant_provider", "tenant_id", "provider", unique=True),
    )
