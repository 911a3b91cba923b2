# core/search/query.py
from typing import Optional

from pydantic import BaseModel

from core.search import volume_numbers


class ParsedQuery(BaseModel):
    original_query: str
    title: str
    volume_number: Optional[int] = None


def parse_query(query: str) -> ParsedQuery:
    """
    Split a search query into a series title and an optional volume number.

    Examples:
        "demon slayer 12"      -> title "demon slayer", volume 12
        "demon slayer vol 12"  -> title "demon slayer", volume 12
        "demon slayer"         -> title "demon slayer"

    Numbers outside 1-999 stay part of the title ("2001 nights 3000").
    """
    original = query.strip()
    title, volume_number = volume_numbers.split(volume_numbers.QUERY, original)
    return ParsedQuery(original_query=original, title=title, volume_number=volume_number)
