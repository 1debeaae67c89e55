"""HTML → text helpers for email bodies.

Block-level closers become newlines so label/value pairs stay on their own
line; everything else collapses to single spaces.
"""

import html
import re

_BLOCK_BREAK = re.compile(r"<br\s*/?>|</p>|</div>|</tr>|</h\d>|</li>", re.IGNORECASE)
_CELL_BREAK = re.compile(r"</td>|</th>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")
_STYLE_BLOCK = re.compile(r"<(style|script)[^>]*>[\s\S]*?</\1>", re.IGNORECASE)
_INLINE_WS = re.compile(r"[ \t\r\f\v\xa0]+")
_BLANK_LINES = re.compile(r"\n\s*\n+")


def strip_tags(raw: str) -> str:
    """Remove tags and decode entities, keeping line structure."""
    if not raw:
        return ""
    text = _STYLE_BLOCK.sub("", raw)
    text = _BLOCK_BREAK.sub("\n", text)
    text = _CELL_BREAK.sub(" ", text)
    text = _TAG.sub("", text)
    text = html.unescape(text)
    text = _INLINE_WS.sub(" ", text)
    lines = [line.strip() for line in text.split("\n")]
    return _BLANK_LINES.sub("\n", "\n".join(lines)).strip()


def flatten(raw: str) -> str:
    """strip_tags with all whitespace (newlines included) collapsed."""
    return re.sub(r"\s+", " ", strip_tags(raw)).strip()


def clean_fragment(raw: str) -> str:
    """Tag-free, entity-decoded, single-line text for one captured value."""
    return flatten(raw or "")
