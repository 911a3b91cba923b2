# core/search/titles.py
import re
from typing import Optional

from core.models.entities import MediaType
from core.utils.text import title_case

MANGA_MARKERS = ['(manga)', '[manga]', 'manga version', 'comic version']
LIGHT_NOVEL_MARKERS = ['light novel', '(novel)', '[novel]', '(ln)']


def media_type_from_title(title: str) -> MediaType:
    """
    Classify a catalog record title by its explicit media markers.

    Titles without a marker are unknown rather than guessed.
    """
    lower = title.lower()
    if any(marker in lower for marker in MANGA_MARKERS):
        return MediaType.MANGA
    if any(marker in lower for marker in LIGHT_NOVEL_MARKERS):
        return MediaType.LIGHT_NOVEL
    return MediaType.UNKNOWN


def media_type_from_header(header: str) -> MediaType:
    """Media type announced by a wikitext section header such as ===Light novels===."""
    lower = header.lower()
    if 'novel' in lower:
        return MediaType.LIGHT_NOVEL
    if 'manga' in lower:
        return MediaType.MANGA
    return MediaType.UNKNOWN


def catalog_series_title(title: str, media_type: MediaType) -> str:
    """
    Build a display title for a series synthesized from catalog records.

    Strips media markers, a trailing statement-of-responsibility slash and a
    trailing period, title-cases the rest and appends " (Manga)" or
    " (Light Novel)" when the title does not already say so.
    """
    clean = re.sub(r'\[manga\]', '', title, flags=re.IGNORECASE)
    clean = re.sub(r'\(manga\)', '', clean, flags=re.IGNORECASE)
    clean = re.sub(r'\s+/\s*$', '', clean)
    clean = re.sub(r'\.$', '', clean.strip()).strip()
    clean = title_case(clean)

    lower = clean.lower()
    if media_type == MediaType.MANGA and 'manga' not in lower:
        clean = f"{clean} (Manga)"
    elif media_type == MediaType.LIGHT_NOVEL and 'novel' not in lower:
        clean = f"{clean} (Light Novel)"
    return clean


def comparable_title(title: str) -> str:
    """Lowercase a title and drop media qualifiers so adaptations compare equal."""
    lower = title.lower()
    for pattern in (r'\s*\(manga\)\s*', r'\s*\(light novel\)\s*', r'\s*\(novel\)\s*'):
        lower = re.sub(pattern, '', lower)
    lower = re.sub(r'\s*manga\s*$', '', lower)
    lower = re.sub(r'\s*light novel\s*$', '', lower)
    return lower.strip()


def volume_title(series_title: str, volume_number: int, subtitle: Optional[str] = None) -> str:
    """Format a volume title such as "Blue Box, Vol. 3: Subtitle"."""
    title = f"{series_title}, Vol. {volume_number}"
    return f"{title}: {subtitle}" if subtitle else title
