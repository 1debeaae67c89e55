"""
parsers/fullcircle.py — Full Circle TMS private-network posting parser

Subject: "Large Straight from Kansas City, MO to Ozark, MO - Premium - Truck
Load : 188 mi, 440 lbs - Posted by Imperative Logistics LLC jhood@dthx.net
- Private Network". Older senders use "Load Available: MO - MO".
Body: an HTML stop table, "This posting expires:" stamp, totals block,
a "please contact:" block carrying the MC number, and red-styled notes.

Business Rules:
- Stop table is authoritative for origin/destination, overriding the subject
- Labelled body totals win over the subject's "mi, lbs" figures
- Broker company/MC come from the HTML contact block before the text one
- Vehicle classes are normalized (SPRINTER VAN → SPRINTER, ...)
- Pure function: no I/O, never raises

Called by: parsers/__init__.py (registry), services/load_ingestion.py
Depends on: parsers/common.py, utils/extraction.py
"""

import re

from ..schemas.shipment import ShipmentFields
from ..utils.extraction import ParseContext, Strategy, digits, first_match, regex_strategy
from . import common
from .common import EMAIL_RE

DIALECT = "fullcircle"

_SUBJECT_VEHICLE = re.compile(r"^\s*([A-Za-z][A-Za-z ]*?)\s+from\s+", re.IGNORECASE)
_SUBJECT_TOTALS = re.compile(r":\s*([\d,]+)\s*mi,\s*([\d,]+)\s*lbs", re.IGNORECASE)
_SUBJECT_POSTED_BY = re.compile(r"Posted by\s+(.+?)\s+(" + EMAIL_RE + r")", re.IGNORECASE)
_SUBJECT_STATES = re.compile(r"Load Available:\s*([A-Z]{2})\s*-\s*([A-Z]{2})", re.IGNORECASE)
_DIMENSION_ROW = re.compile(
    r"Stops\s+Pieces\s+Weight[\s\S]*?\d+\s+to\s+\d+\s+(\d+)\s+([\d,]+)\s*lbs?\s+"
    r"(\d+)\s*in\s+(\d+)\s*in\s+(\d+)\s*in\s+(Yes|No)",
    re.IGNORECASE,
)


def _subject_group(ctx: ParseContext, idx: int, pattern: re.Pattern):
    m = pattern.search(ctx.subject)
    return m.group(idx).strip() if m else None


def _dimension_row(ctx: ParseContext) -> dict | None:
    m = _DIMENSION_ROW.search(ctx.flat)
    if not m:
        return None
    return {
        "pieces": m.group(1),
        "weight": digits(m.group(2)),
        "dimensions": f"{m.group(3)}x{m.group(4)}x{m.group(5)}",
        "stackable": m.group(6).lower() == "yes",
    }


def _dim(key: str):
    def _run(ctx: ParseContext):
        row = _dimension_row(ctx)
        return row.get(key) if row else None
    return _run


# ── Field strategy lists ─────────────────────────────────────────────

VEHICLE = [
    regex_strategy("vehicle_class_label",
                   r"(?:Requested Vehicle Class|We call this vehicle class)\s*:\s*([^\n]+)",
                   transform=common.normalize_vehicle),
    Strategy("subject_prefix", lambda ctx: common.normalize_vehicle(
        _subject_group(ctx, 1, _SUBJECT_VEHICLE))),
]

ORDER_NUMBER = [
    regex_strategy("order_number_label", r"ORDER\s*NUMBER\s*:?\s*(\d+)"),
    regex_strategy("posting_bid_link", r"posting/(\d+)/bid", source="raw"),
]

ORDER_NUMBER_SECONDARY = [
    regex_strategy("order_number_or", r"ORDER\s*NUMBER\s*:?\s*\d+\s+or\s+(\d+)"),
]

LOADED_MILES = [
    regex_strategy("distance_label", r"\bDistance\s*:\s*([\d,]+)\s*mi", transform=digits),
    Strategy("subject_mi", lambda ctx: digits(_subject_group(ctx, 1, _SUBJECT_TOTALS) or "")),
    regex_strategy("miles_unlabelled", r"\b([\d,]+)\s*(?:mi|miles)\b", transform=digits),
]

WEIGHT = [
    regex_strategy("total_weight", r"Total\s+Weight\s*:?\s*([\d,]+)", transform=digits),
    Strategy("subject_lbs", lambda ctx: digits(_subject_group(ctx, 2, _SUBJECT_TOTALS) or "")),
    Strategy("dimension_row", _dim("weight")),
    regex_strategy("weight_unlabelled", r"\b([\d,]+)\s*lbs?\b", transform=digits),
]

PIECES = [
    regex_strategy("total_pieces", r"Total\s+Pieces\s*:?\s*(\d+)"),
    Strategy("dimension_row", _dim("pieces")),
]

DIMENSIONS = [
    Strategy("dimension_row", _dim("dimensions")),
    regex_strategy("dimensions_label", r"\bDimensions?\s*:\s*([^\n]+)", transform=common.trim_dimensions),
]

STACKABLE = [Strategy("dimension_row", _dim("stackable")), *common.STACKABLE]

POSTED_RATE = [
    regex_strategy("rate_label", r"\b(?:Rate|Pay|Offer)\s*:\s*\$?\s*([\d,]+(?:\.\d{2})?)", transform=digits),
    regex_strategy("dollar_amount", r"\$\s*([\d,]+\.\d{2})", transform=digits),
]

BROKER_EMAIL = [
    Strategy("subject_posted_by", lambda ctx: _subject_group(ctx, 2, _SUBJECT_POSTED_BY)),
    *common.BROKER_EMAIL_BODY,
]

BROKER_NAME = [
    regex_strategy("load_posted_by", r"Load\s+posted\s+by\s*:\s*([^\n]+)"),
]

BROKER_PHONE = [common.phone_strategy("phone_label", r"\bPhone")]
BROKER_FAX = [common.phone_strategy("fax_label", r"\bFax")]

NOTES = [
    Strategy("red_text", common.red_text_notes),
    regex_strategy("notes_label", r"(?:Notes?|Special Instructions?)\s*:\s*([^\n<]+)", source="raw"),
]


def parse(subject: str, body_html: str = "", body_text: str = "") -> ShipmentFields:
    """Extract a ShipmentFields from one Full Circle TMS message."""
    ctx = common.make_context(subject, body_html, body_text)
    fields = ShipmentFields()

    def take(name: str, strategies) -> None:
        value, _ = first_match(strategies, ctx)
        fields.set_if_unset(name, value)

    stops, _ = first_match(common.STOP_TABLE, ctx)
    if stops:
        common.apply_stops(fields, stops)
    else:
        route, _ = first_match([Strategy("subject_route", common.subject_route)], ctx)
        for key, value in (route or {}).items():
            fields.set_if_unset(key, value)

    take("vehicle_type", VEHICLE)
    take("order_number", ORDER_NUMBER)
    take("order_number_secondary", ORDER_NUMBER_SECONDARY)
    take("loaded_miles", LOADED_MILES)
    take("weight", WEIGHT)
    take("pieces", PIECES)
    take("dimensions", DIMENSIONS)
    take("stackable", STACKABLE)
    take("posted_rate", POSTED_RATE)
    take("dock_level", common.DOCK_LEVEL)
    take("hazmat", common.HAZMAT)
    take("team_required", common.TEAM)
    take("posted_at", common.POSTED_AT)
    take("expires_at", common.EXPIRATION)

    contact, _ = first_match([Strategy("contact_block", common.contact_block)], ctx)
    for key, value in (contact or {}).items():
        fields.set_if_unset(key, value)
    fields.set_if_unset("broker_company", _subject_group(ctx, 1, _SUBJECT_POSTED_BY))
    fields.set_if_unset("customer_name", fields.broker_company)
    take("broker_email", BROKER_EMAIL)
    take("broker_name", BROKER_NAME)
    take("broker_phone", BROKER_PHONE)
    take("broker_fax", BROKER_FAX)

    fields.set_if_unset("origin_state", _subject_group(ctx, 1, _SUBJECT_STATES))
    fields.set_if_unset("destination_state", _subject_group(ctx, 2, _SUBJECT_STATES))

    take("notes", NOTES)
    return fields
