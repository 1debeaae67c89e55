"""
schemas/shipment.py — Typed shapes flowing through the ingestion pipeline

InboundMessage is what the mail provider hands us, ShipmentFields is what
a dialect parser returns, and IngestionRunSummary is what a batch run
reports back.

Business Rules:
- Every ShipmentFields attribute is optional; a parse that matches nothing
  is a valid (if poorly enriched) result
- Merges are field-by-field and only fill fields that are still unset
- Numeric fields accept loose text ("1,250 lbs", "$1,200.00") and coerce it
- Assignment is validated, so hint values are coerced the same way

Called by: parsers/*, services/parser_hints.py, services/load_ingestion.py
Depends on: pydantic
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

_NUMERIC_JUNK = re.compile(r"[^\d.\-]")


def _loose_number(v: Any) -> Any:
    if isinstance(v, str):
        cleaned = _NUMERIC_JUNK.sub("", v)
        if not cleaned or cleaned in {".", "-"}:
            return None
        return cleaned
    return v


# ── Inbound ──────────────────────────────────────────────────────────


class InboundMessage(BaseModel):
    message_id: str
    thread_id: str | None = None
    sender_email: str = ""
    sender_name: str | None = None
    subject: str = ""
    received_at: datetime | None = None
    body_html: str = ""
    body_text: str = ""


# ── Parsed fields ────────────────────────────────────────────────────


class Stop(BaseModel):
    sequence: int
    stop_type: Literal["pickup", "delivery"]
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    scheduled_at: str | None = None
    timezone: str | None = None


class ShipmentFields(BaseModel):
    """Partial shipment produced by one extraction pass."""

    model_config = ConfigDict(validate_assignment=True)

    vehicle_type: str | None = None
    order_number: str | None = None
    order_number_secondary: str | None = None

    origin_city: str | None = None
    origin_state: str | None = None
    origin_postal: str | None = None
    destination_city: str | None = None
    destination_state: str | None = None
    destination_postal: str | None = None
    stops: list[Stop] | None = None
    stop_count: int | None = None
    has_multiple_stops: bool | None = None
    pickup_date: str | None = None
    pickup_time: str | None = None
    delivery_date: str | None = None
    delivery_time: str | None = None

    loaded_miles: int | None = None
    weight: float | None = None
    pieces: int | None = None
    dimensions: str | None = None
    posted_rate: float | None = None
    dock_level: bool | None = None
    hazmat: bool | None = None
    team_required: bool | None = None
    stackable: bool | None = None
    notes: str | None = None

    customer_name: str | None = None
    broker_company: str | None = None
    broker_name: str | None = None
    broker_email: str | None = None
    broker_phone: str | None = None
    broker_fax: str | None = None
    mc_number: str | None = None

    posted_at: datetime | None = None
    expires_at: datetime | None = None

    @field_validator("weight", "posted_rate", mode="before")
    @classmethod
    def _coerce_float(cls, v):
        return _loose_number(v)

    @field_validator("loaded_miles", "pieces", "stop_count", mode="before")
    @classmethod
    def _coerce_int(cls, v):
        v = _loose_number(v)
        if isinstance(v, str):
            return int(float(v))
        if isinstance(v, float):
            return int(v)
        return v

    @field_validator("origin_state", "destination_state", mode="before")
    @classmethod
    def _upper_state(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or None
        return v

    def is_unset(self, name: str) -> bool:
        value = getattr(self, name)
        return value is None or value == "" or value == []

    def set_if_unset(self, name: str, value: Any) -> bool:
        """Assign only when the field is empty and value is not. Returns True if set."""
        if value is None or value == "" or not self.is_unset(name):
            return False
        setattr(self, name, value)
        return True

    def merge_missing(self, other: ShipmentFields) -> ShipmentFields:
        """Return a copy with unset fields filled from other."""
        merged = self.model_copy(deep=True)
        for name in type(self).model_fields:
            merged.set_if_unset(name, getattr(other, name))
        return merged

    def populated(self) -> dict[str, Any]:
        return {
            k: v for k, v in self.model_dump(exclude_none=True).items()
            if v != "" and v != []
        }


# ── Run reporting ────────────────────────────────────────────────────


class MessageOutcome(BaseModel):
    message_id: str
    outcome: Literal["inserted", "duplicate", "failed"]
    shipment_id: int | None = None
    dialect: str | None = None
    reason: str | None = None


class IngestionRunSummary(BaseModel):
    mailbox: str
    tenant_id: str | None = None
    aborted: bool = False
    abort_reason: str | None = None
    listed: int = 0
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    outcomes: list[MessageOutcome] = Field(default_factory=list)

    def record(self, outcome: MessageOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.outcome == "inserted":
            self.inserted += 1
        elif outcome.outcome == "duplicate":
            self.duplicates += 1
        else:
            self.failed += 1
