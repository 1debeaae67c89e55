"""
test_source_detector.py — Tests for services/source_detector.py

Called by: pytest
Depends on: loadhunter/services/source_detector.py
"""

import pytest

from loadhunter.services.source_detector import detect_source


@pytest.mark.parametrize("sender,dialect,reason", [
    ("Postings <noreply@fullcircletms.com>", "fullcircle", "sender_domain:fullcircletms.com"),
    ("alerts@FCTMS.com", "fullcircle", "sender_domain:fctms.com"),
    ("hotloads@sylectus.com", "sylectus", "sender_domain:sylectus.com"),
    ("loads@mail.fctms.com", "fullcircle", "sender_domain:fctms.com"),
    ("ops@fctms.com", "fullcircle", "sender_domain:fctms.com"),
])
def test_sender_domain(sender, dialect, reason):
    result = detect_source(sender, "anything")
    assert (result.dialect, result.reason) == (dialect, reason)


@pytest.mark.parametrize("sender", [
    "x@notfctms.com",
    "x@fctms.com.evil.net",
    "fctms.com@gmail.com",
    "fctms.com",
    "Sylectus Fan <fan@example.com>",
])
def test_lookalike_sender_domains_do_not_match(sender):
    assert detect_source(sender, "anything").reason == "default"


def test_subject_load_available():
    result = detect_source("broker@example.com", "Load Available: MO - KS")
    assert result.dialect == "fullcircle"
    assert result.reason == "subject:load_available"


def test_body_markers():
    html = '<a href="https://app.fullcircletms.com/posting/1/bid">Bid</a>'
    assert detect_source("x@example.com", "Load", body_html=html).reason == "body:app.fullcircletms.com"
    assert detect_source("x@example.com", "Load", body_text="Reply BID YES TO THIS LOAD").dialect == "fullcircle"
    assert detect_source("x@example.com", "Load", body_text="via www.sylectus.com").dialect == "sylectus"


def test_sender_beats_body():
    result = detect_source("hotloads@sylectus.com", "Load", body_text="fullcircletms")
    assert result.dialect == "sylectus"


def test_unmatched_uses_default_dialect():
    result = detect_source("someone@example.com", "Hello", "plain body")
    assert result.dialect == "sylectus"
    assert result.reason == "default"
