"""Ingestion pipeline models — parser hints and the audit trail."""

from sqlalchemy import JSON, Boolean, Column, Index, Integer, String, Text

from .base import Base, UTCDateTime, utcnow


class ParserHint(Base):
    """Persisted pattern override for one field of one dialect.

    pattern is tried case-insensitively against the combined body. When it
    does not compile, context_before/context_after delimit the value instead.
    """

    __tablename__ = "parser_hints"
    id = Column(Integer, primary_key=True)
    dialect = Column(String(50), nullable=False)
    field_name = Column(String(100), nullable=False)
    pattern = Column(Text, nullable=False)
    context_before = Column(Text)
    context_after = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("ix_parser_hints_dialect_active", "dialect", "is_active"),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True)
    action = Column(String(100), nullable=False)
    mailbox = Column(String(255))
    tenant_id = Column(String(64))
    reason = Column(String(255))
    details = Column(JSON)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("ix_audit_logs_action_created", "action", "created_at"),
    )
