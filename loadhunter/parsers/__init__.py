"""Dialect parser registry.

Each parser is a pure function (subject, body_html, body_text) → ShipmentFields.
"""

from typing import Callable

from ..schemas.shipment import ShipmentFields
from . import fullcircle, sylectus

Parser = Callable[[str, str, str], ShipmentFields]

PARSERS: dict[str, Parser] = {
    sylectus.DIALECT: sylectus.parse,
    fullcircle.DIALECT: fullcircle.parse,
}

DIALECTS = tuple(PARSERS)

# Minutes a load stays live when its own expiration is missing or already past
EXPIRATION_GRACE_MINUTES = {
    sylectus.DIALECT: 30,
    fullcircle.DIALECT: 40,
}


def get_parser(dialect: str) -> Parser:
    try:
        return PARSERS[dialect]
    except KeyError:
        raise ValueError(f"unknown dialect: {dialect}") from None


def parse_message(dialect: str, subject: str, body_html: str, body_text: str) -> ShipmentFields:
    return get_parser(dialect)(subject, body_html, body_text)
