"""US timezone-abbreviation date parsing.

Broker emails carry wall-clock times tagged with a US abbreviation
("2025-12-14 10:51 EST", "01/30/26 11:00 PM CST"). Offsets are a static
table; no DST inference is attempted beyond what the abbreviation says.
Unparseable input returns None.
"""

import re
from datetime import datetime, timedelta, timezone

TZ_OFFSETS = {
    "EST": -5, "EDT": -4,
    "CST": -6, "CDT": -5,
    "MST": -7, "MDT": -6,
    "PST": -8, "PDT": -7,
}
DEFAULT_TZ = "EST"
TZ_PATTERN = "|".join(TZ_OFFSETS)

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})$")
_TIME = re.compile(r"^(\d{1,2}):(\d{2})$")


def _parse_date(date_str: str) -> tuple[int, int, int] | None:
    s = date_str.strip()
    m = _ISO_DATE.match(s)
    if m:
        return int(m.group(1)), int(m.group(2)), int(m.group(3))
    m = _US_DATE.match(s)
    if m:
        year = m.group(3)
        if len(year) == 2:
            year = "20" + year
        return int(year), int(m.group(1)), int(m.group(2))
    return None


def local_to_utc(date_str: str, time_str: str, tz_abbr: str | None = None,
                 meridiem: str | None = None) -> datetime | None:
    """Convert a wall-clock date/time in a US zone to an aware UTC datetime."""
    if not date_str or not time_str:
        return None
    ymd = _parse_date(date_str)
    tm = _TIME.match(time_str.strip())
    if not ymd or not tm:
        return None

    hours, minutes = int(tm.group(1)), int(tm.group(2))
    ampm = (meridiem or "").strip().upper()
    if ampm == "PM" and hours < 12:
        hours += 12
    elif ampm == "AM" and hours == 12:
        hours = 0

    offset = TZ_OFFSETS.get((tz_abbr or DEFAULT_TZ).strip().upper(), TZ_OFFSETS[DEFAULT_TZ])
    try:
        local = datetime(*ymd, hours, minutes, tzinfo=timezone(timedelta(hours=offset)))
    except ValueError:
        return None
    return local.astimezone(timezone.utc)


_STAMP = re.compile(
    r"(\d{4}-\d{1,2}-\d{1,2}|\d{1,2}/\d{1,2}/\d{2,4})\s+(\d{1,2}:\d{2})\s*(AM|PM)?\s*("
    + TZ_PATTERN + r")?",
    re.IGNORECASE,
)


def parse_timestamp(text: str) -> datetime | None:
    """Parse the first "date time [AM|PM] [TZ]" stamp found in text."""
    if not text:
        return None
    m = _STAMP.search(text)
    if not m:
        return None
    return local_to_utc(m.group(1), m.group(2), m.group(4), m.group(3))
