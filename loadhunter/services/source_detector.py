"""
services/source_detector.py — Classify an inbound message into one dialect

A fixed decision list, checked in priority order: sender domain, subject
markers, body markers. The first rule that matches wins; nothing matching
means the default dialect. The matching rule is returned so the caller can
log why a message was routed where it was.

Called by: services/load_ingestion.py
Depends on: config (default_dialect)
"""

import re
from dataclasses import dataclass
from email.utils import parseaddr
from typing import Callable

from ..config import settings


@dataclass(frozen=True)
class SourceDetection:
    dialect: str
    reason: str


@dataclass(frozen=True)
class _Rule:
    dialect: str
    reason: str
    test: Callable[[str, str, str], bool]


def _sender_domain(sender: str) -> str:
    _, at, domain = parseaddr(sender)[1].rpartition("@")
    return domain.strip() if at else ""


def _sender_has(*domains: str):
    """Sender domain is one of domains or a subdomain of one."""
    def test(sender, subject, body):
        domain = _sender_domain(sender)
        return bool(domain) and any(domain == d or domain.endswith("." + d) for d in domains)
    return test


def _subject_matches(pattern: str):
    compiled = re.compile(pattern, re.IGNORECASE)
    return lambda sender, subject, body: bool(compiled.search(subject))


def _body_has(*markers: str):
    return lambda sender, subject, body: any(m in body for m in markers)


RULES: tuple[_Rule, ...] = (
    # Sender domain
    _Rule("fullcircle", "sender_domain:fullcircletms.com", _sender_has("fullcircletms.com")),
    _Rule("fullcircle", "sender_domain:fctms.com", _sender_has("fctms.com")),
    _Rule("sylectus", "sender_domain:sylectus.com", _sender_has("sylectus.com")),
    # Subject markers
    _Rule("fullcircle", "subject:load_available", _subject_matches(r"^Load Available:\s+[A-Z]{2}\s+-\s+[A-Z]{2}")),
    # Body markers
    _Rule("fullcircle", "body:app.fullcircletms.com", _body_has("app.fullcircletms.com")),
    _Rule("fullcircle", "body:bid_yes_to_this_load", _body_has("bid yes to this load")),
    _Rule("fullcircle", "body:fullcircletms", _body_has("fullcircletms")),
    _Rule("sylectus", "body:sylectus.com", _body_has("sylectus.com")),
)


def detect_source(sender: str, subject: str, body_text: str = "", body_html: str = "") -> SourceDetection:
    sender_l = (sender or "").lower()
    subject = (subject or "").strip()
    body_l = f"{body_text or ''}\n{body_html or ''}".lower()

    for rule in RULES:
        if rule.test(sender_l, subject, body_l):
            return SourceDetection(rule.dialect, rule.reason)
    return SourceDetection(settings.default_dialect, "default")
