"""Extraction techniques shared by every dialect parser.

Route, stop table, expiration, broker contact block, red-text notes, Yes/No
flags and vehicle-type normalization. Each technique is exposed as one or
more Strategy objects (see utils/extraction.py) so a dialect composes its
own ordered fallback lists from them.
"""

import html as html_lib
import re

from ..schemas.shipment import Stop
from ..utils.extraction import ParseContext, Strategy, regex_strategy, yes_no
from ..utils.html_text import clean_fragment, strip_tags
from ..utils.timezones import TZ_PATTERN, local_to_utc

EMAIL_RE = r"[\w.+-]+@[\w.-]+\.[A-Za-z]{2,}"
INSTRUCTION_TIMES = r"ASAP|Deliver\s*Direct|Direct|Flexible|TBD|Open|Will\s*Call"
_INSTRUCTION = re.compile(rf"^(?:{INSTRUCTION_TIMES})", re.IGNORECASE)
_DATE_INSTRUCTION = re.compile(rf"^(\d{{4}}-\d{{2}}-\d{{2}})\s+({INSTRUCTION_TIMES})", re.IGNORECASE)
_STRICT_STAMP = re.compile(rf"^(\d{{4}}-\d{{2}}-\d{{2}})\s+(\d{{2}}:\d{{2}})\s*({TZ_PATTERN})?$", re.IGNORECASE)

NOTE_BOILERPLATE = (
    "submit your bid via",
    "submitted bids must include",
    "location of your vehicle",
    "confirm all key requirements",
)

# Longest names first so "SPRINTER VAN" wins over "VAN"
VEHICLE_ALIASES = {
    "SMALL STRAIGHT TRUCK": "SMALL STRAIGHT",
    "LARGE STRAIGHT TRUCK": "LARGE STRAIGHT",
    "SPRINTER VAN": "SPRINTER",
    "CARGO VAN": "CARGO VAN",
    "LIFT GATE": "LIFTGATE",
}


def make_context(subject: str, body_html: str, body_text: str) -> ParseContext:
    subject = subject or ""
    body_html = body_html or ""
    body_text = body_text or ""
    clean = strip_tags(body_html) if body_html else strip_tags(body_text)
    return ParseContext(
        subject=subject,
        html=body_html,
        text=body_text,
        clean=clean,
        flat=re.sub(r"\s+", " ", clean).strip(),
    )


def normalize_vehicle(raw: str | None) -> str | None:
    if not raw:
        return None
    value = re.sub(r"\s+", " ", raw).strip().upper()
    for alias, canonical in VEHICLE_ALIASES.items():
        if alias in value:
            return canonical
    return value or None


# ── Route ────────────────────────────────────────────────────────────

SUBJECT_ROUTE = re.compile(
    r"(?:(?i:\bfrom)|\s-)\s+([A-Za-z .'-]+?),\s*([A-Z]{2})\s+(?i:to)\s+([A-Za-z .'-]+?),\s*([A-Z]{2})\b"
)


def subject_route(ctx: ParseContext) -> dict | None:
    """`from <city>, <ST> to <city>, <ST>` anywhere in the subject."""
    m = SUBJECT_ROUTE.search(ctx.subject)
    if not m:
        return None
    return {
        "origin_city": m.group(1).strip(),
        "origin_state": m.group(2),
        "destination_city": m.group(3).strip(),
        "destination_state": m.group(4),
    }


# ── Stop table ───────────────────────────────────────────────────────

_HTML_STOP_ROW = re.compile(
    r"<td[^>]*>\s*(\d+)\s*</td>\s*"
    r"<td[^>]*>\s*(Pick\s*Up|Delivery)\s*</td>\s*"
    r"<td[^>]*>([^<]+)</td>\s*"
    r"<td[^>]*>\s*([A-Z]{2})\s*</td>\s*"
    r"<td[^>]*>\s*([A-Z0-9 ]*)\s*</td>\s*"
    r"<td[^>]*>\s*(USA|CAN)\s*</td>\s*"
    r"<td[^>]*>([^<]+)</td>",
    re.IGNORECASE,
)

_TEXT_STOP_ROW = re.compile(
    r"(?m)^\s*(\d+)\s+((?i:Pick\s*Up|Delivery))\s+([A-Za-z .'-]+?)\s+([A-Z]{2})\s+([A-Z0-9]*)\s+(USA|CAN)\s+"
    rf"((?:\d{{4}}-\d{{2}}-\d{{2}}\s+)?(?:\d{{2}}:\d{{2}}(?:\s+(?:{TZ_PATTERN}))?|{INSTRUCTION_TIMES}))"
)


def _stop_from_cells(seq, kind, city, state, postal, country, when) -> Stop | None:
    when = clean_fragment(when)
    strict = _STRICT_STAMP.match(when)
    if strict:
        scheduled, tz = f"{strict.group(1)} {strict.group(2)}", (strict.group(3) or "EST").upper()
    elif _INSTRUCTION.match(when) or _DATE_INSTRUCTION.match(when):
        scheduled, tz = when, "EST"
    else:
        return None
    return Stop(
        sequence=int(seq),
        stop_type="pickup" if kind.lower().replace(" ", "") == "pickup" else "delivery",
        city=clean_fragment(city) or None,
        state=state.upper(),
        postal_code=(postal or "").strip() or None,
        country=country.upper(),
        scheduled_at=scheduled,
        timezone=tz,
    )


def html_stop_table(ctx: ParseContext) -> list[Stop] | None:
    stops = []
    for m in _HTML_STOP_ROW.finditer(ctx.html or ctx.text):
        stop = _stop_from_cells(*m.groups())
        if stop:
            stops.append(stop)
    return stops or None


def text_stop_table(ctx: ParseContext) -> list[Stop] | None:
    stops = []
    for m in _TEXT_STOP_ROW.finditer(ctx.text or ctx.clean):
        stop = _stop_from_cells(*m.groups())
        if stop:
            stops.append(stop)
    return stops or None


STOP_TABLE = [
    Strategy("html_stop_table", html_stop_table),
    Strategy("text_stop_table", text_stop_table),
]


def split_schedule(stop: Stop) -> tuple[str | None, str | None]:
    """Stop.scheduled_at → (date, time) the way dispatchers read them."""
    when = stop.scheduled_at or ""
    if _INSTRUCTION.match(when):
        return None, when
    parts = when.split(" ", 1)
    if len(parts) == 2 and re.match(r"^\d{2}:\d{2}$", parts[1]):
        return parts[0], f"{parts[1]} {stop.timezone or 'EST'}"
    if len(parts) == 2:
        return parts[0], parts[1]
    return parts[0] or None, None


def apply_stops(fields, stops: list[Stop]) -> None:
    """Stop table is authoritative for the route: overrides subject-derived values."""
    fields.stops = stops
    fields.stop_count = len(stops)
    fields.has_multiple_stops = len(stops) > 2

    pickup = next((s for s in stops if s.stop_type == "pickup"), None)
    if pickup:
        fields.origin_city = pickup.city
        fields.origin_state = pickup.state
        fields.origin_postal = pickup.postal_code
        fields.pickup_date, fields.pickup_time = split_schedule(pickup)

    delivery = next((s for s in stops if s.stop_type == "delivery"), None)
    if delivery:
        fields.destination_city = delivery.city
        fields.destination_state = delivery.state
        fields.destination_postal = delivery.postal_code
        fields.delivery_date, fields.delivery_time = split_schedule(delivery)


# ── Timestamps ───────────────────────────────────────────────────────

_DATE = r"(\d{4}-\d{1,2}-\d{1,2}|\d{1,2}/\d{1,2}/\d{2,4})"
_CLOCK = r"(\d{1,2}:\d{2})"


def labelled_timestamp(name: str, label: str, source: str = "clean") -> Strategy:
    """"<label> date time [AM|PM] [TZ]" converted to UTC; missing TZ means EST."""
    compiled = re.compile(
        label + r"\s*:?\s*(?:<[^>]*>\s*)*" + _DATE + r"\s+" + _CLOCK
        + r"\s*(AM|PM)?\s*(" + TZ_PATTERN + r")?",
        re.IGNORECASE,
    )

    def _run(ctx: ParseContext):
        m = compiled.search(ctx.source(source))
        if not m:
            return None
        return local_to_utc(m.group(1), m.group(2), m.group(4), m.group(3))

    return Strategy(name, _run)


EXPIRATION = [
    labelled_timestamp("posting_expires", r"This\s+posting\s+expires"),
    labelled_timestamp("expires_label", r"\bExpires?"),
    labelled_timestamp("expires_label_raw", r"\bExpires?", source="raw"),
]

POSTED_AT = [
    labelled_timestamp("load_posted", r"\bLoad\s+posted(?!\s+by)"),
    labelled_timestamp("posted_label", r"\bPosted(?!\s+(?:by|Amount))"),
]


# ── Broker contact ───────────────────────────────────────────────────

_CONTACT_HTML = re.compile(
    r"please\s+contact:[\s\S]*?<br\s*/?>\s*([^<\n(]+?)\s*\(MC#\s*(\d+)\)", re.IGNORECASE
)
_CONTACT_TEXT = re.compile(
    r"please\s+contact:\s*\n?\s*([^\n(]+?)\s*\(MC#\s*(\d+)\)", re.IGNORECASE
)
_MC_ANYWHERE = re.compile(r"\(MC#\s*(\d+)\)", re.IGNORECASE)


def _decode(value: str) -> str:
    return html_lib.unescape(value).strip()


def contact_block(ctx: ParseContext) -> dict | None:
    """Company + MC number from the "please contact" block. HTML first:
    the text alternative often drops the MC number."""
    m = _CONTACT_HTML.search(ctx.html) if ctx.html else None
    if not m:
        m = _CONTACT_TEXT.search(ctx.text or ctx.clean) or _CONTACT_TEXT.search(ctx.clean)
    if m:
        return {"broker_company": _decode(m.group(1)), "mc_number": m.group(2)}
    m = _MC_ANYWHERE.search(ctx.html or ctx.text)
    if m:
        return {"mc_number": m.group(1)}
    return None


def phone_strategy(name: str, label: str) -> Strategy:
    return regex_strategy(
        name, label + r"\s*:?\s*(\(?\d[\d\-\(\)\. ]{6,}\d)", transform=lambda v: v.strip()
    )


BROKER_EMAIL_BODY = [
    regex_strategy("mailto_link", r"mailto:(" + EMAIL_RE + r")", source="raw"),
    regex_strategy("email_label", r"\bE-?mail\s*:\s*(" + EMAIL_RE + r")"),
]


# ── Notes ────────────────────────────────────────────────────────────

_RED_BLOCK = re.compile(
    r"<(p|h4)[^>]*style\s*=\s*[\"'][^\"']*color\s*:\s*red[^\"']*[\"'][^>]*>([\s\S]*?)</\1>",
    re.IGNORECASE,
)


def _note_text(fragment: str) -> str | None:
    text = re.sub(r"^Notes?:\s*", "", clean_fragment(fragment), flags=re.IGNORECASE)
    lowered = text.lower()
    if not text or any(phrase in lowered for phrase in NOTE_BOILERPLATE):
        return None
    return text


def red_text_notes(ctx: ParseContext) -> str | None:
    """Operator warnings styled in red, boilerplate removed, joined with " | "."""
    # Document order across both tag kinds
    notes = [_note_text(m.group(2)) for m in _RED_BLOCK.finditer(ctx.html or ctx.text)]
    notes = [n for n in notes if n]
    return " | ".join(notes) if notes else None


# ── Flags ────────────────────────────────────────────────────────────

def flag_strategy(name: str, label: str) -> Strategy:
    return regex_strategy(name, label + r"[^\n:]*:\s*(Yes|No)\b", transform=yes_no)


DOCK_LEVEL = [flag_strategy("dock_level_label", r"Dock\s+Level")]
HAZMAT = [flag_strategy("hazardous_label", r"Hazardous"), flag_strategy("hazmat_label", r"Hazmat")]
TEAM = [flag_strategy("driver_team_label", r"Driver\s+TEAM"), flag_strategy("team_label", r"\bTeam\s+Required")]
STACKABLE = [flag_strategy("stackable_label", r"Stackable")]


# ── Dimensions ───────────────────────────────────────────────────────

_DIMS_VALUE = re.compile(
    r"^(\d+\s*L?\s*x\s*\d+\s*W?\s*x\s*\d+\s*H?|NO DIMENSIONS SPECIFIED)", re.IGNORECASE
)


def trim_dimensions(raw: str) -> str | None:
    """Keep just "48L x 40W x 48H"; drop trailing "Stackable:"/"Notes:" noise."""
    raw = clean_fragment(raw)
    m = _DIMS_VALUE.match(raw)
    if m:
        return m.group(1).strip()
    head = re.split(r"\s*(?:Stackable:|CSA|Notes:)", raw, flags=re.IGNORECASE)[0].strip()
    return head or None
