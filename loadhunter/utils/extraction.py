"""Graduated-fallback field extraction.

Each field is an ordered list of named strategies. A strategy takes the
parse context and returns a value or None. The first non-empty value wins;
a strategy that raises is logged and treated as a miss, so extraction as a
whole never raises.

Usage:
    VEHICLE = [
        Strategy("subject_prefix", lambda ctx: ...),
        regex_strategy("labelled_class", r"Vehicle Class:\\s*([^\\n]+)", source="clean"),
    ]
    value, used = first_match(VEHICLE, ctx)
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

log = logging.getLogger("loadhunter.extraction")


@dataclass
class ParseContext:
    """Everything a strategy may read. clean is tag-stripped HTML or text."""

    subject: str = ""
    html: str = ""
    text: str = ""
    clean: str = ""
    flat: str = ""
    scratch: dict = field(default_factory=dict)

    def source(self, name: str) -> str:
        if name == "raw":
            return self.html or self.text
        return getattr(self, name) or ""


@dataclass(frozen=True)
class Strategy:
    name: str
    fn: Callable[[ParseContext], Any]

    def __call__(self, ctx: ParseContext) -> Any:
        return self.fn(ctx)


def _empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip()) or value == []


def first_match(strategies: Iterable[Strategy], ctx: ParseContext) -> tuple[Any, str | None]:
    """Run strategies in order. Returns (value, strategy_name) or (None, None)."""
    for strategy in strategies:
        try:
            value = strategy(ctx)
        except Exception as e:
            log.debug(f"strategy_failed name={strategy.name} error={e}")
            continue
        if not _empty(value):
            return value, strategy.name
    return None, None


def regex_strategy(name: str, pattern: str, *, source: str = "clean", group: int = 1,
                   flags: int = re.IGNORECASE,
                   transform: Callable[[str], Any] | None = None) -> Strategy:
    """Strategy that returns one capture group of the first match in ctx.<source>."""
    compiled = re.compile(pattern, flags)

    def _run(ctx: ParseContext):
        m = compiled.search(ctx.source(source))
        if not m:
            return None
        value = (m.group(group) or "").strip()
        if not value:
            return None
        return transform(value) if transform else value

    return Strategy(name, _run)


def yes_no(value: str) -> bool | None:
    v = value.strip().lower()
    if v in ("yes", "y", "true"):
        return True
    if v in ("no", "n", "false"):
        return False
    return None


def digits(value: str) -> str | None:
    """'1,250' → '1250'. None when nothing numeric remains."""
    cleaned = re.sub(r"[^\d.]", "", value or "")
    return cleaned or None
