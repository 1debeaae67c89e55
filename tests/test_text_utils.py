"""
test_text_utils.py — Tests for utils/html_text.py, utils/timezones.py,
utils/geo.py and utils/extraction.py

Called by: pytest
Depends on: loadhunter/utils/*
"""

import re
from datetime import datetime, timezone

from loadhunter.utils.extraction import (
    ParseContext, Strategy, digits, first_match, regex_strategy, yes_no,
)
from loadhunter.utils.geo import haversine_miles
from loadhunter.utils.html_text import clean_fragment, flatten, strip_tags
from loadhunter.utils.timezones import local_to_utc, parse_timestamp


# ── html_text ────────────────────────────────────────────────────────


def test_strip_tags_keeps_line_structure():
    raw = "<p><strong>Weight: </strong>1,000</p><p>Pieces:&nbsp;3</p>"
    assert strip_tags(raw) == "Weight: 1,000\nPieces: 3"


def test_strip_tags_drops_style_blocks():
    raw = "<style>p { color: red }</style><div>Hello</div>"
    assert strip_tags(raw) == "Hello"


def test_table_cells_become_spaces():
    raw = "<tr><td>1</td><td>Pick Up</td></tr>"
    assert strip_tags(raw) == "1 Pick Up"


def test_flatten_and_clean_fragment():
    assert flatten("<p>a</p>\n<p>b</p>") == "a b"
    assert clean_fragment(" <b>Acme &amp; Sons</b> ") == "Acme & Sons"
    assert clean_fragment(None) == ""


# ── timezones ────────────────────────────────────────────────────────


def test_local_to_utc_iso_date_est():
    assert local_to_utc("2025-12-14", "10:51", "EST") == datetime(2025, 12, 14, 15, 51, tzinfo=timezone.utc)


def test_local_to_utc_us_date_with_meridiem():
    result = local_to_utc("01/30/26", "11:00", "CST", "PM")
    assert result == datetime(2026, 1, 31, 5, 0, tzinfo=timezone.utc)


def test_local_to_utc_midnight_am():
    assert local_to_utc("2026-03-01", "12:15", "PST", "AM") == datetime(2026, 3, 1, 8, 15, tzinfo=timezone.utc)


def test_local_to_utc_defaults_to_eastern():
    assert local_to_utc("2026-07-04", "08:00") == datetime(2026, 7, 4, 13, 0, tzinfo=timezone.utc)


def test_local_to_utc_unparseable_returns_none():
    assert local_to_utc("tomorrow", "08:00") is None
    assert local_to_utc("2026-02-30", "08:00", "EST") is None
    assert local_to_utc("2026-02-01", "") is None


def test_parse_timestamp_finds_first_stamp():
    text = "Posted 2026-01-05 09:30 MDT, expires later"
    assert parse_timestamp(text) == datetime(2026, 1, 5, 15, 30, tzinfo=timezone.utc)
    assert parse_timestamp("no date here") is None


# ── geo ──────────────────────────────────────────────────────────────


def test_haversine_chicago_to_dallas():
    miles = haversine_miles(41.8781, -87.6298, 32.7767, -96.7970)
    assert 790 < miles < 810


def test_haversine_same_point_is_zero():
    assert haversine_miles(40.0, -90.0, 40.0, -90.0) == 0


# ── extraction ───────────────────────────────────────────────────────


def test_first_match_skips_failing_and_empty_strategies():
    def boom(ctx):
        raise RuntimeError("bad strategy")

    strategies = [
        Strategy("boom", boom),
        Strategy("blank", lambda ctx: "   "),
        Strategy("winner", lambda ctx: "value"),
        Strategy("never", lambda ctx: "other"),
    ]
    assert first_match(strategies, ParseContext()) == ("value", "winner")


def test_first_match_none_when_nothing_matches():
    assert first_match([Strategy("none", lambda ctx: None)], ParseContext()) == (None, None)


def test_regex_strategy_reads_requested_source():
    ctx = ParseContext(subject="Order 77", html="<b>Order 88</b>", clean="Order 99")
    assert regex_strategy("s", r"Order (\d+)", source="subject")(ctx) == "77"
    assert regex_strategy("r", r"Order (\d+)", source="raw")(ctx) == "88"
    assert regex_strategy("c", r"Order (\d+)")(ctx) == "99"


def test_regex_strategy_transform():
    ctx = ParseContext(clean="Weight: 1,250 lbs")
    strategy = regex_strategy("w", r"Weight:\s*([\d,]+)", transform=digits)
    assert strategy(ctx) == "1250"


def test_yes_no_and_digits():
    assert yes_no("Yes") is True
    assert yes_no(" no ") is False
    assert yes_no("maybe") is None
    assert digits("$1,200.00") == "1200.00"
    assert digits("n/a") is None
    assert re.fullmatch(r"\d+", digits("12 345"))
