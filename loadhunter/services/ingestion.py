"""
services/ingestion.py — Dedup gate and shipment insert

Business Rules:
- A provider message id is ingested at most once, across all tenants
- Existence check first; the unique constraint on message_id catches a
  concurrent duplicate, which is reported as "duplicate", never an error
- Other insert errors roll back and propagate to the batch loop
- Expiration failsafe: posted_at defaults to the received time; a missing
  or non-positive window gets the dialect grace; an already-past expiry is
  pushed to now + grace
- Issue flags mark records a dispatcher should look at by hand

Called by: services/load_ingestion.py
Depends on: models (ShipmentRecord), parsers (EXPIRATION_GRACE_MINUTES)
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models import ShipmentRecord
from ..parsers import EXPIRATION_GRACE_MINUTES
from ..schemas.shipment import InboundMessage, ShipmentFields
from .geocode_cache import GeocodeResult

log = logging.getLogger("loadhunter.ingestion")

DEFAULT_GRACE_MINUTES = 30


def already_ingested(db: Session, message_id: str) -> bool:
    return (
        db.query(ShipmentRecord.id).filter(ShipmentRecord.message_id == message_id).first()
        is not None
    )


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def apply_expiration_failsafe(fields: ShipmentFields, dialect: str,
                              received_at: datetime | None, now: datetime | None = None) -> None:
    """Guarantee posted_at and a future expires_at on fields (in place)."""
    now = now or datetime.now(timezone.utc)
    grace = timedelta(minutes=EXPIRATION_GRACE_MINUTES.get(dialect, DEFAULT_GRACE_MINUTES))

    posted = _aware(fields.posted_at) or _aware(received_at) or now
    expires = _aware(fields.expires_at)

    if expires is None or expires <= posted:
        expires = posted + grace
    if expires <= now:
        log.debug(f"expiration_failsafe dialect={dialect} expired={expires.isoformat()}")
        expires = now + grace

    fields.posted_at = posted
    fields.expires_at = expires


def issue_notes(fields: ShipmentFields, dialect: str, geocoded: bool) -> list[str]:
    notes = []
    if dialect == "sylectus" and fields.is_unset("broker_email"):
        notes.append("Missing broker email")
    if fields.is_unset("origin_city") and fields.is_unset("origin_state"):
        notes.append("Missing origin")
    if fields.is_unset("vehicle_type"):
        notes.append("Missing vehicle type")
    if not geocoded:
        notes.append("Geocoding failed")
    return notes


def geocoding_columns(fields: ShipmentFields, geocode: GeocodeResult | None) -> dict:
    if geocode is not None:
        return {
            "pickup_lat": geocode.latitude,
            "pickup_lng": geocode.longitude,
            "geocoding_status": "success",
            "geocoding_error": None,
        }
    error = "no_origin" if fields.is_unset("origin_city") and fields.is_unset("origin_state") else "no_result"
    return {"pickup_lat": None, "pickup_lng": None, "geocoding_status": "failed", "geocoding_error": error}


def parsed_columns(fields: ShipmentFields) -> dict:
    """ShipmentFields → ShipmentRecord column values (stops as plain JSON)."""
    values = fields.model_dump(exclude={"stops"})
    values["stops"] = [s.model_dump() for s in fields.stops] if fields.stops else []
    return values


def insert_shipment(db: Session, tenant_id: str, message: InboundMessage, dialect: str,
                    fields: ShipmentFields, geocode: GeocodeResult | None) -> tuple[ShipmentRecord | None, str]:
    """Insert one shipment in status new. Returns (record, "inserted") or (None, "duplicate")."""
    if already_ingested(db, message.message_id):
        return None, "duplicate"

    notes = issue_notes(fields, dialect, geocode is not None)
    body_text = (message.body_text or "")[: settings.body_text_max_chars]

    record = ShipmentRecord(
        message_id=message.message_id,
        thread_id=message.thread_id,
        tenant_id=tenant_id,
        dialect=dialect,
        status="new",
        sender_email=message.sender_email,
        sender_name=message.sender_name,
        subject=message.subject,
        body_text=body_text,
        body_html=message.body_html or None,
        received_at=message.received_at,
        has_issues=bool(notes),
        issue_notes="; ".join(notes) or None,
        **parsed_columns(fields),
        **geocoding_columns(fields, geocode),
    )
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if already_ingested(db, message.message_id):
            log.info(f"shipment_duplicate_race message_id={message.message_id}")
            return None, "duplicate"
        raise
    except Exception:
        db.rollback()
        raise
    db.refresh(record)
    log.info(
        f"shipment_inserted id={record.id} tenant={tenant_id} dialect={dialect} "
        f"message_id={message.message_id} issues={len(notes)}"
    )
    return record, "inserted"
