"""
services/parser_hints.py — Fill fields the dialect parser missed from stored hints

Hints absorb upstream format drift without a deploy, so nothing here may
ever raise into the pipeline.

Business Rules:
- Only active hints for the message's dialect are loaded
- A field that already has a value is never overwritten
- Pattern is case-insensitive; value = first capture group, else whole match
- Malformed pattern → escaped context_before(...)context_after match instead
- posted_at / expires_at hint values are "date time [TZ]" text, stored as UTC
- Unknown field names, type coercion errors and DB errors are skipped

Called by: services/load_ingestion.py
Depends on: models (ParserHint), schemas/shipment.py (ShipmentFields)
"""

import logging
import re

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..models import ParserHint
from ..schemas.shipment import ShipmentFields
from ..utils.timezones import parse_timestamp

log = logging.getLogger("loadhunter.parser_hints")

# Structured fields a single regex value cannot express
_UNHINTABLE = {"stops"}

# Hint values for these are "date time [TZ]" text, converted to UTC
_TIMESTAMP_FIELDS = {"posted_at", "expires_at"}


def load_hints(db: Session, dialect: str) -> list[ParserHint]:
    try:
        return (
            db.query(ParserHint)
            .filter(ParserHint.dialect == dialect, ParserHint.is_active.is_(True))
            .order_by(ParserHint.id)
            .all()
        )
    except Exception as e:
        log.warning(f"parser_hints_load_failed dialect={dialect} error={e}")
        return []


def _hint_value(hint: ParserHint, haystack: str) -> str | None:
    try:
        m = re.search(hint.pattern, haystack, re.IGNORECASE)
    except re.error as e:
        log.debug(f"parser_hint_bad_pattern id={hint.id} field={hint.field_name} error={e}")
        if not (hint.context_before or hint.context_after):
            return None
        fallback = (
            re.escape(hint.context_before or "") + r"([\s\S]*?)" + re.escape(hint.context_after or "")
        )
        m = re.search(fallback, haystack, re.IGNORECASE)
        if not m or not m.group(1):
            return None
        return m.group(1).strip() or None
    if not m:
        return None
    value = m.group(1) if m.groups() and m.group(1) else m.group(0)
    return value.strip() or None


def apply_parser_hints(db: Session, dialect: str, fields: ShipmentFields,
                       body_html: str = "", body_text: str = "",
                       hints: list[ParserHint] | None = None) -> list[str]:
    """Apply hints in place. Returns the names of fields that were filled."""
    if hints is None:
        hints = load_hints(db, dialect)
    if not hints:
        return []

    haystack = f"{body_html or ''}\n{body_text or ''}"
    filled = []
    for hint in hints:
        name = hint.field_name
        if name in _UNHINTABLE or name not in ShipmentFields.model_fields:
            log.debug(f"parser_hint_unknown_field id={hint.id} field={name}")
            continue
        if not fields.is_unset(name):
            continue
        try:
            value = _hint_value(hint, haystack)
            if value is not None and name in _TIMESTAMP_FIELDS:
                value = parse_timestamp(value)
            if value is not None and fields.set_if_unset(name, value):
                filled.append(name)
                log.info(f"parser_hint_applied dialect={dialect} field={name} hint={hint.id}")
        except (ValidationError, ValueError, TypeError, re.error) as e:
            log.debug(f"parser_hint_skipped id={hint.id} field={name} error={e}")
    return filled
