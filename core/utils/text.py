# core/utils/text.py
import re
from typing import Optional

from dateutil import parser as date_parser

SMALL_WORDS = {
    'a', 'an', 'and', 'as', 'at', 'but', 'by', 'for', 'in', 'nor',
    'of', 'on', 'or', 'so', 'the', 'to', 'up', 'yet'
}

_MEDIA_SUFFIX = re.compile(r'\s*\((?:manga|light novel)\)\s*$', re.IGNORECASE)


def sanitize_key(text: str, limit: Optional[int] = None) -> str:
    """Lowercase and collapse every non-alphanumeric run to an underscore."""
    sanitized = re.sub(r'[^a-z0-9]+', '_', text.lower())
    return sanitized[:limit] if limit else sanitized


def normalize_title(title: str) -> str:
    """
    Normalize a series title for index lookups.

    Strips a trailing "(Manga)" or "(Light Novel)" qualifier, lowercases and
    drops everything that is not a-z or 0-9, so "Foo (Manga)" and "Foo!"
    share the key "foo".
    """
    stripped = _MEDIA_SUFFIX.sub('', title)
    return re.sub(r'[^a-z0-9]', '', stripped.lower())


def title_case(title: str) -> str:
    """Capitalize major words; small words stay lowercase unless first."""
    words = []
    for index, word in enumerate(title.split(' ')):
        lower = word.lower()
        if index == 0 or lower not in SMALL_WORDS:
            words.append(word[:1].upper() + word[1:].lower())
        else:
            words.append(lower)
    return ' '.join(words)


def strip_isbn(isbn: str) -> str:
    """Remove hyphens and whitespace from an ISBN."""
    return re.sub(r'[-\s]', '', isbn)


def isbn10_to_13(isbn10: str) -> str:
    """Convert an ISBN-10 to ISBN-13 by prefixing 978 and recomputing the check digit."""
    base = '978' + isbn10[:9]
    total = 0
    for i, char in enumerate(base):
        digit = int(char)
        total += digit if i % 2 == 0 else digit * 3
    return base + str((10 - total % 10) % 10)


def clean_isbn(isbn: Optional[str]) -> Optional[str]:
    """
    Normalize a raw ISBN string to ISBN-13 digits.

    Args:
        isbn: Raw ISBN text, possibly with hyphens, spaces or surrounding words

    Returns:
        A 13 character ISBN, or None if the value is too short to be one
    """
    if not isbn:
        return None
    cleaned = re.sub(r'[^0-9Xx]', '', isbn)
    if len(cleaned) < 10:
        return None
    if len(cleaned) == 10:
        if not cleaned[:9].isdigit():
            return None
        cleaned = isbn10_to_13(cleaned)
    return cleaned if len(cleaned) >= 13 else None


def format_release_date(date_str: Optional[str]) -> Optional[str]:
    """Convert a free-form release date to an ISO date string, keeping unparseable text."""
    if not date_str:
        return None
    try:
        return date_parser.parse(date_str).date().isoformat()
    except (ValueError, TypeError, OverflowError):
        return date_str.strip() or None
