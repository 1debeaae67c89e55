"""
parsers/sylectus.py — Sylectus hot-load broadcast parser

Subject carries the route, miles, weight, broker email and the posting
company ("VAN from Chicago, IL to Dallas, TX - Expedite : 900 miles,
1000 lbs. Posted by ACME - ACME Logistics (dispatch@acme.com)").
The HTML body carries <strong>Label: </strong>value pairs, a Pick-Up and a
Delivery section, and a notes-section div.

Business Rules:
- Subject values take precedence over body values for the same field
- Labelled HTML (<strong>) first, cleaned-text label second, unlabelled last
- Pick-Up/Delivery sections become a two-stop list
- Instruction times (ASAP, Direct, TBD, ...) are kept verbatim as the time
- Pure function: no I/O, never raises

Called by: parsers/__init__.py (registry), services/load_ingestion.py
Depends on: parsers/common.py, utils/extraction.py
"""

import re

from ..schemas.shipment import ShipmentFields, Stop
from ..utils.extraction import ParseContext, Strategy, digits, first_match, regex_strategy
from ..utils.html_text import clean_fragment
from ..utils.timezones import TZ_PATTERN
from . import common
from .common import EMAIL_RE, INSTRUCTION_TIMES

DIALECT = "sylectus"

VEHICLE_WORDS = (
    "CARGO VAN", "SPRINTER", "SMALL STRAIGHT", "LARGE STRAIGHT", "FLATBED",
    "TRACTOR", "LIFTGATE", "BOX TRUCK", "HOT SHOT", "VAN",
)

_SUBJECT_VEHICLE = re.compile(
    r"^(?:W/?\s*)?((?:CARGO\s*)?VAN|(?:SMALL|LARGE)\s*STRAIGHT|SPRINTER|TRACTOR(?:\s*FLATBED)?"
    r"|FLATBED|REEFER|LIFT\s*GATE|LIFTGATE|(?:\d+['’]?\s*)?FOOT|BOX\s*TRUCK|HOT\s*SHOT)"
    r"\s+(?:from|-)\s+",
    re.IGNORECASE,
)
_POSTED_BY = re.compile(r"Posted by ([^(]+?)\s*\(")


def _strong(label: str) -> str:
    return r"<strong>\s*" + label + r"\s*:\s*</strong>\s*([^<\n]+)"


# ── Subject ──────────────────────────────────────────────────────────


def _subject_vehicle(ctx: ParseContext):
    m = _SUBJECT_VEHICLE.match(ctx.subject.strip())
    if not m:
        return None
    return common.normalize_vehicle(re.sub(r"LIFT\s+GATE", "LIFTGATE", m.group(1), flags=re.I))


def _posted_by(ctx: ParseContext):
    """"Posted by A - B (" → customer A, company B. A leading dash means company only."""
    m = _POSTED_BY.search(ctx.subject)
    if not m:
        return None
    raw = m.group(1).strip()
    if raw.startswith("-"):
        company = raw[1:].strip()
        return {"customer_name": company, "broker_company": company} if company else None
    if " - " in raw:
        first, _, second = raw.partition(" - ")
        first, second = first.strip(), second.strip()
        return {"customer_name": first or second, "broker_company": second or first}
    return {"customer_name": raw, "broker_company": raw}


# ── Body sections ────────────────────────────────────────────────────

_SECTION_END = r"(?=\n\s*(?:Delivery|Pieces?|Weight|Dimensions?|Notes?|Posted|Expires?|Broker)\b|\Z)"
_PICKUP_SECTION = re.compile(r"(?i:\bPick-?Up\b)\s*:?([\s\S]*?)" + _SECTION_END)
_DELIVERY_SECTION = re.compile(
    r"(?i:\bDelivery\b)\s*:?([\s\S]*?)(?=\n\s*(?:Pieces?|Weight|Dimensions?|Notes?|Posted|Expires?|Broker)\b|\Z)"
)
_PLACE = re.compile(r"([A-Za-z][A-Za-z .'-]*?),\s*([A-Z]{2})(?:\s+(\d{5}))?\b")
_STATE_ZIP = re.compile(r"\b([A-Z]{2})\s+(\d{5})\b")
_WHEN = re.compile(
    r"(\d{1,2}/\d{1,2}/\d{2,4})(?:\s+(\d{1,2}:\d{2})\s*(" + TZ_PATTERN + r")?|\s+(" + INSTRUCTION_TIMES + r"))?",
    re.IGNORECASE,
)


def _section(ctx: ParseContext, pattern: re.Pattern) -> dict | None:
    m = pattern.search(ctx.clean)
    if not m:
        return None
    body = m.group(1)
    out = {}
    place = _PLACE.search(body)
    if place:
        out["city"] = place.group(1).strip()
        out["state"] = place.group(2)
        out["postal"] = place.group(3)
    if not out.get("postal"):
        sz = _STATE_ZIP.search(body)
        if sz:
            out.setdefault("state", sz.group(1))
            out["postal"] = sz.group(2)
    when = _WHEN.search(body)
    if when:
        out["date"] = when.group(1)
        if when.group(2):
            out["time"] = when.group(2) + (f" {when.group(3).upper()}" if when.group(3) else "")
            out["tz"] = (when.group(3) or "EST").upper()
        elif when.group(4):
            out["time"] = re.sub(r"\s+", " ", when.group(4).strip())
    return {k: v for k, v in out.items() if v} or None


def _notes_section(ctx: ParseContext):
    m = re.search(
        r"<div[^>]*class=['\"]notes-section['\"][^>]*>([\s\S]*?)</div>", ctx.html or ctx.text, re.I
    )
    if not m:
        return None
    parts = [clean_fragment(p) for p in re.findall(r"<p[^>]*>([\s\S]*?)</p>", m.group(1), re.I)]
    parts = [p for p in parts if p]
    return ", ".join(parts) if parts else None


def _body_vehicle(ctx: ParseContext):
    upper = ctx.flat.upper()
    for word in VEHICLE_WORDS:
        if re.search(r"\b" + word + r"\b", upper):
            return word
    return None


# ── Field strategy lists ─────────────────────────────────────────────

VEHICLE = [
    Strategy("subject_prefix", _subject_vehicle),
    Strategy("body_vehicle_scan", _body_vehicle),
]

BROKER_EMAIL = [
    regex_strategy("subject_parenthesized", r"\((" + EMAIL_RE + r")\)", source="subject"),
    regex_strategy("subject_any", r"(" + EMAIL_RE + r")", source="subject"),
    *common.BROKER_EMAIL_BODY,
    regex_strategy("body_any", r"(" + EMAIL_RE + r")", source="flat"),
]

ORDER_NUMBER = [
    regex_strategy("bid_on_order", r"Bid on Order #\s*(\d+)"),
    regex_strategy("order_hash", r"Order\s*#\s*(\d+)"),
    regex_strategy("order_number_label", r"Order\s*Number\s*:?\s*(\d+)"),
    regex_strategy("order_label", r"\bOrder\s*:?\s*#?\s*(\d+)"),
]

BROKER_NAME = [
    regex_strategy("strong_broker_name", _strong(r"Broker\s*Name"), source="raw"),
    regex_strategy("broker_name_label", r"Broker\s*Name:\s*([^\n,]+)"),
    regex_strategy("contact_label", r"\b(?:Contact|Rep|Agent)\s*:\s*([A-Za-z][A-Za-z .'-]+)"),
]

BROKER_COMPANY = [
    regex_strategy("strong_broker_company", _strong(r"Broker\s*Company"), source="raw"),
    regex_strategy("broker_company_label", r"Broker\s*Company:\s*([^\n,]+)"),
]

BROKER_PHONE = [
    regex_strategy("strong_broker_phone", _strong(r"Broker\s*Phone"), source="raw"),
    common.phone_strategy("broker_phone_label", r"Broker\s*Phone"),
    common.phone_strategy("phone_label", r"\b(?:Phone|Tel|Ph)"),
]

LOADED_MILES = [
    regex_strategy("subject_miles", r":\s*([\d,]+)\s*miles", source="subject", transform=digits),
    regex_strategy("miles_label", r"\b(?:Loaded\s*)?Miles\s*:\s*([\d,]+)", transform=digits),
    regex_strategy("miles_unlabelled", r"\b([\d,]+)\s*(?:miles|mi)\b", transform=digits),
]

WEIGHT = [
    regex_strategy("subject_lbs", r"([\d,]+)\s*lbs", source="subject", transform=digits),
    regex_strategy("strong_weight", r"<strong>\s*Weight\s*:\s*</strong>\s*([\d,]+)", source="raw",
                   transform=digits),
    regex_strategy("weight_label", r"\bWeight\s*:\s*([\d,]+)", transform=digits),
    regex_strategy("weight_unlabelled", r"\b([\d,]+)\s*lbs?\b", transform=digits),
]

PIECES = [
    regex_strategy("strong_pieces", r"<strong>\s*Pieces?\s*:\s*</strong>\s*(\d+)", source="raw"),
    regex_strategy("pieces_label", r"\bPieces?\s*:\s*(\d+)"),
    regex_strategy("pieces_unlabelled", r"\b(\d+)\s*(?:pieces|pcs|skids|pallets)\b"),
]

DIMENSIONS = [
    regex_strategy("strong_dimensions", _strong(r"Dimensions?"), source="raw",
                   transform=common.trim_dimensions),
    regex_strategy("dimensions_label", r"\bDimensions?\s*:\s*([^\n]+)", transform=common.trim_dimensions),
    regex_strategy("dimensions_unlabelled", r"\b(\d+\s*L\s*x\s*\d+\s*W\s*x\s*\d+\s*H)\b"),
]

POSTED_RATE = [
    regex_strategy("posted_amount", r"Posted\s*Amount\s*:?\s*(?:<[^>]*>\s*)*\$?\s*([\d,]+(?:\.\d{2})?)",
                   transform=digits),
    regex_strategy("rate_label", r"\b(?:Rate|Pay)\s*:\s*\$?\s*([\d,]+(?:\.\d{2})?)", transform=digits),
    regex_strategy("dollar_amount", r"\$\s*([\d,]+\.\d{2})", transform=digits),
]

NOTES = [
    Strategy("notes_section", _notes_section),
    Strategy("red_text", common.red_text_notes),
    regex_strategy("notes_label", r"\bNotes?\s*:\s*([^\n<]+)"),
]


def parse(subject: str, body_html: str = "", body_text: str = "") -> ShipmentFields:
    """Extract a ShipmentFields from one Sylectus message."""
    ctx = common.make_context(subject, body_html, body_text)
    fields = ShipmentFields()

    def take(name: str, strategies) -> None:
        value, _ = first_match(strategies, ctx)
        fields.set_if_unset(name, value)

    # Subject first: its values win over the body
    route, _ = first_match([Strategy("subject_route", common.subject_route)], ctx)
    for key, value in (route or {}).items():
        fields.set_if_unset(key, value)
    posted_by, _ = first_match([Strategy("posted_by", _posted_by)], ctx)
    for key, value in (posted_by or {}).items():
        fields.set_if_unset(key, value)

    take("vehicle_type", VEHICLE)
    take("broker_email", BROKER_EMAIL)
    take("loaded_miles", LOADED_MILES)
    take("weight", WEIGHT)

    take("order_number", ORDER_NUMBER)
    take("broker_name", BROKER_NAME)
    take("broker_company", BROKER_COMPANY)
    fields.set_if_unset("customer_name", fields.broker_company)
    take("broker_phone", BROKER_PHONE)
    take("pieces", PIECES)
    take("dimensions", DIMENSIONS)
    take("posted_rate", POSTED_RATE)
    take("stackable", common.STACKABLE)
    take("hazmat", common.HAZMAT)
    take("team_required", common.TEAM)
    take("dock_level", common.DOCK_LEVEL)
    take("posted_at", common.POSTED_AT)
    take("expires_at", common.EXPIRATION)
    take("notes", NOTES)

    _apply_sections(fields, ctx)
    return fields


def _apply_sections(fields: ShipmentFields, ctx: ParseContext) -> None:
    pickup, _ = first_match([Strategy("pickup_section", lambda c: _section(c, _PICKUP_SECTION))], ctx)
    delivery, _ = first_match([Strategy("delivery_section", lambda c: _section(c, _DELIVERY_SECTION))], ctx)
    pickup, delivery = pickup or {}, delivery or {}

    fields.set_if_unset("origin_city", pickup.get("city"))
    fields.set_if_unset("origin_state", pickup.get("state"))
    fields.set_if_unset("origin_postal", pickup.get("postal"))
    fields.set_if_unset("pickup_date", pickup.get("date"))
    fields.set_if_unset("pickup_time", pickup.get("time"))
    fields.set_if_unset("destination_city", delivery.get("city"))
    fields.set_if_unset("destination_state", delivery.get("state"))
    fields.set_if_unset("destination_postal", delivery.get("postal"))
    fields.set_if_unset("delivery_date", delivery.get("date"))
    fields.set_if_unset("delivery_time", delivery.get("time"))

    stops = []
    for seq, (kind, section, city, state) in enumerate(
        (
            ("pickup", pickup, fields.origin_city, fields.origin_state),
            ("delivery", delivery, fields.destination_city, fields.destination_state),
        ),
        start=1,
    ):
        if not (section or city):
            continue
        when = " ".join(p for p in (section.get("date"), section.get("time", "").split(" ")[0]) if p)
        stops.append(Stop(
            sequence=seq,
            stop_type=kind,
            city=city,
            state=state,
            postal_code=section.get("postal"),
            country="USA",
            scheduled_at=when or None,
            timezone=section.get("tz"),
        ))
    if stops:
        fields.set_if_unset("stops", stops)
        fields.set_if_unset("stop_count", len(stops))
        fields.set_if_unset("has_multiple_stops", False)
