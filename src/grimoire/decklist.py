"""Decklist text parsing.

A decklist has one card per line in the form::

    <quantity> <card name> (<set code>) <collector number>

Blank lines are ignored. The order of the returned entries matches the order
of the lines, and page order in the generated PDF follows it.
"""

import logging
import re
from typing import List

from grimoire.errors import ParseError
from grimoire.models import RawEntry

log = logging.getLogger(__name__)

# Card names may contain parentheses, so the name is matched lazily and the
# set code is the last parenthesised group before the collector number.
LINE_PATTERN = re.compile(r"^(\d+)\s+(.+?)\s+\(([^)]+)\)\s+([^\s]+)$")
FALLBACK_PATTERN = re.compile(r"^(\d+)\s+(.+?)\s+\(([^)]+)\)\s+(.+)$")

MULTI_FACE_SEPARATOR = "//"


def normalize_line_endings(text: str) -> str:
    """Convert Windows and old Mac line endings to ``\\n``."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def parse_line(line: str, line_number: int = 1) -> RawEntry:
    """Parse a single decklist line.

    Raises:
        ParseError: If the line matches neither the strict nor the fallback
            pattern, or the quantity is zero.

    """
    stripped = line.strip()
    match = LINE_PATTERN.match(stripped) or FALLBACK_PATTERN.match(stripped)
    if match is None:
        raise ParseError(stripped, line_number)

    quantity = int(match.group(1))
    if quantity < 1:
        raise ParseError(stripped, line_number)

    name = match.group(2).strip()
    return RawEntry(
        quantity=quantity,
        display_name=name,
        set_code=match.group(3).strip(),
        collector_number=match.group(4).strip(),
        is_multi_face=MULTI_FACE_SEPARATOR in name,
    )


def parse_decklist(text: str) -> List[RawEntry]:
    """Parse a whole decklist into entries, preserving line order.

    Line numbers reported in errors count every physical line, blank ones
    included, so they match what the user sees in an editor.
    """
    entries = []
    for line_number, line in enumerate(normalize_line_endings(text).split("\n"), 1):
        if not line.strip():
            continue
        entries.append(parse_line(line, line_number))

    log.debug("Parsed %d decklist entries", len(entries))
    return entries
