# core/search/volume_numbers.py
"""
Volume number extraction rules.

Every place that reads a volume number out of free text goes through the
rule sets below so catalog suffixes, call numbers, record titles, queries
and Google Books titles share one definition of "a volume number".
A rule set is an ordered list of patterns; the first pattern whose number
falls inside the accepted range wins.
"""
import re
from typing import Iterable, List, Optional, Pattern, Tuple

MIN_VOLUME = 0      # exclusive
MAX_VOLUME = 1000   # exclusive

CATALOG_SUFFIX = [
    re.compile(r'^(?:V\.?|Vol\.?|BK\.?)\s*(\d+)', re.IGNORECASE),    # "V.1", "Vol.12", "BK.3"
]
CATALOG_SORT_KEY = [
    re.compile(r'^(?:v|bk)0*(\d+)', re.IGNORECASE),                  # "v0012"
]
CALL_NUMBER = [
    re.compile(r'#(\d+)|(?:Vol\.?|V\.?)\s*(\d+)', re.IGNORECASE),     # "GN/YA/Demon Slayer #1"
]
RECORD_TITLE = [
    re.compile(r'(?:vol\.?|v\.?|#)\s*(\d+)', re.IGNORECASE),
    re.compile(r'\.\s*(\d+)\s*$'),                                    # "Spy x family. 3"
    re.compile(r'part\s*(\d+)', re.IGNORECASE),
]
QUERY = [
    re.compile(r'\s+(?:vol\.?|volume|v\.?|#)\s*(\d+)\s*$', re.IGNORECASE),
    re.compile(r'\s+(\d+)\s*$'),
]
GOOGLE_BOOKS_TITLE = [
    re.compile(r'Vol(?:ume)?\.?\s*(\d+)', re.IGNORECASE),
    re.compile(r'Part\s*\d+\s*Volume\s*(\d+)', re.IGNORECASE),
    re.compile(r'#\s*(\d+)'),
]


def in_range(number: int) -> bool:
    return MIN_VOLUME < number < MAX_VOLUME


def _first_group(match: re.Match) -> Optional[str]:
    for group in match.groups():
        if group:
            return group
    return None


def _match(rules: Iterable[Pattern], text: str) -> Optional[Tuple[int, re.Match]]:
    for pattern in rules:
        match = pattern.search(text)
        if not match:
            continue
        digits = _first_group(match)
        if digits is None:
            continue
        number = int(digits)
        if in_range(number):
            return number, match
    return None


def extract(rules: List[Pattern], text: Optional[str]) -> Optional[int]:
    """
    Extract a volume number with a rule set.

    Args:
        rules: Ordered patterns, e.g. RECORD_TITLE
        text: Text to search

    Returns:
        The first in-range number, or None
    """
    if not text:
        return None
    found = _match(rules, text)
    return found[0] if found else None


def split(rules: List[Pattern], text: str) -> Tuple[str, Optional[int]]:
    """
    Strip a trailing volume number from text.

    Returns:
        (remaining text, volume number); the text is returned trimmed and
        unchanged when no in-range number matches
    """
    found = _match(rules, text)
    if not found:
        return text.strip(), None
    number, match = found
    remaining = text[:match.start()] + text[match.end():]
    return remaining.strip(), number


def parse_number(value: Optional[str]) -> Optional[int]:
    """Parse a bare number such as a MARC $n value, accepting only in-range values."""
    if not value:
        return None
    match = re.match(r'\s*(\d+)', str(value))
    if not match:
        return None
    number = int(match.group(1))
    return number if in_range(number) else None
