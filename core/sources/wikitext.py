# core/sources/wikitext.py
"""
Parsing of Wikipedia chapter-list wikitext.

Volume data lives in ``{{Graphic novel list}}`` templates, one field per
line ("| LicensedISBN = 978-1-9747-0052-3"). Section headers switch the
media type (===Light novels=== / ===Manga===) and number manga parts
(====Part 2====), whose volumes are renumbered to run on from the
previous part.
"""
import re
from typing import Dict, List, Optional, Tuple

from core.models.entities import MediaType
from core.search import volume_numbers
from core.search.titles import media_type_from_header
from core.sources.base import VolumeListing
from core.utils.text import clean_isbn

SECTION_HEADER = re.compile(r'^={2,4}\s*(.+?)\s*={2,4}$')
PART_HEADER = re.compile(r'part\s*(\d+)', re.IGNORECASE)
TEMPLATE_FIELD = re.compile(r'^\s*\|\s*(\w+)\s*=\s*(.+)')
TRANSCLUSION = re.compile(r'\{\{:([^}]+)\}\}')

SPINOFF_MARKERS = [
    'short story', 'side story', 'anthology', 'gaiden',
    'stories –', 'stories -',       # "Royal Academy Stories – First Year"
    'fan book', 'guidebook', 'art book',
]

MEDIA_ORDER = {MediaType.MANGA: 0, MediaType.LIGHT_NOVEL: 1}

AUTHOR_PATTERNS = [
    re.compile(r'\|\s*author\s*=\s*\[\[([^\]|]+)', re.IGNORECASE),
    re.compile(r'\|\s*writer\s*=\s*\[\[([^\]|]+)', re.IGNORECASE),
    re.compile(r'written\s+(?:and\s+illustrated\s+)?by\s+\[\[([^\]|]+)', re.IGNORECASE),
    re.compile(r'\|\s*author\s*=\s*([^|\n]+)', re.IGNORECASE),
]


def clean_value(raw: str) -> str:
    """Strip refs, simple templates, wiki link markup and bold/italic quotes from a field value."""
    value = re.sub(r'<ref[^>]*>.*?</ref>', '', raw)
    value = re.sub(r'<ref[^>]*/>', '', value)
    value = re.sub(r'\{\{[^{}]*\}\}', '', value)
    value = re.sub(r'\[\[([^\]|]+\|)?([^\]]+)\]\]', r'\2', value)
    value = re.sub(r"'''?", '', value)
    return value.strip()


def is_spinoff_title(title: Optional[str]) -> bool:
    if not title:
        return False
    lower = title.lower()
    return any(marker in lower for marker in SPINOFF_MARKERS)


def _apply_field(volume: Dict, name: str, value: str) -> None:
    field = name.lower()
    if field == 'volumenumber':
        number = volume_numbers.parse_number(value)
        if number is not None:
            volume['number'] = number
    elif field in ('isbn', 'originalisbn'):
        volume['japanese_isbn'] = clean_isbn(value)
    elif field == 'licensedisbn':
        volume['isbn'] = clean_isbn(value)
    elif field in ('reldate', 'originalreldate'):
        volume['japanese_release_date'] = value
    elif field == 'licensedreldate':
        volume['release_date'] = value
    elif field in ('licensedtitle', 'originaltitle', 'title'):
        volume.setdefault('title', value)


def parse_volume_list(wikitext: str) -> List[VolumeListing]:
    """
    Parse every Graphic novel list entry in a page.

    Spin-off volumes are dropped, duplicates of the same media type and
    number are collapsed (an entry with an English ISBN replaces one
    without), and the result is sorted manga first, then by number.
    """
    volumes: List[VolumeListing] = []
    current: Optional[Dict] = None
    media_type = MediaType.UNKNOWN
    part_number: Optional[int] = None
    part_offset = 0
    last_in_part = 0

    def flush():
        nonlocal last_in_part
        if current is None or 'number' not in current:
            return
        number = current['number']
        if part_number is not None:
            last_in_part = max(last_in_part, number)
            number += part_offset
        volumes.append(VolumeListing(**{**current, 'number': number}))

    for line in wikitext.split('\n'):
        header = SECTION_HEADER.match(line)
        if header:
            flush()
            current = None
            name = header.group(1)
            header_type = media_type_from_header(name)
            if header_type != MediaType.UNKNOWN:
                media_type = header_type
                part_number = None
                part_offset = 0
                last_in_part = 0
            part = PART_HEADER.search(name)
            if part:
                new_part = int(part.group(1))
                if part_number is not None and new_part > part_number:
                    part_offset += last_in_part
                    last_in_part = 0
                part_number = new_part
            continue

        if '{{Graphic novel list' in line:
            flush()
            is_frame = '/header' in line or '/footer' in line
            current = None if is_frame else {'media_type': media_type}
            continue

        if current is None:
            continue
        field = TEMPLATE_FIELD.match(line)
        if not field:
            continue
        value = clean_value(field.group(2))
        if value:
            _apply_field(current, field.group(1), value)

    flush()

    main = [v for v in volumes if not is_spinoff_title(v.title)]

    deduplicated: List[VolumeListing] = []
    seen: Dict[Tuple, int] = {}
    for volume in main:
        key = (volume.media_type, volume.number)
        if key not in seen:
            seen[key] = len(deduplicated)
            deduplicated.append(volume)
        elif not deduplicated[seen[key]].isbn and volume.isbn:
            deduplicated[seen[key]] = volume

    deduplicated.sort(key=lambda v: (MEDIA_ORDER.get(v.media_type, 2), v.number))
    return deduplicated


def transcluded_pages(wikitext: str) -> List[str]:
    """Titles of transcluded ``{{:Subpage}}`` pages that hold chapter or volume lists."""
    pages = []
    for title in TRANSCLUSION.findall(wikitext):
        lower = title.lower()
        if ('chapter' in lower or 'volume' in lower) and title not in pages:
            pages.append(title)
    return pages


def check_series_complete(wikitext: str) -> bool:
    lower = wikitext.lower()
    if 'finished' in lower or 'completed' in lower or 'concluded' in lower:
        return True
    # "ran from 2016 to 2020"
    return bool(re.search(r'ran\s+(?:from|until)[^.]*?(\d{4})[^.]*?to[^.]*?(\d{4})', wikitext, re.IGNORECASE))


def extract_author(wikitext: str) -> Optional[str]:
    for pattern in AUTHOR_PATTERNS:
        match = pattern.search(wikitext)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def series_title_from_page(page_title: str) -> str:
    """
    Derive the series name from a list page title.

    "List of Blue Box chapters" -> "Blue Box"
    """
    title = re.sub(r'^List of ', '', page_title)
    title = re.sub(r' chapters?$', '', title, flags=re.IGNORECASE)
    title = re.sub(r' manga volumes?$', '', title, flags=re.IGNORECASE)
    title = re.sub(r' manga$', '', title, flags=re.IGNORECASE)
    title = re.sub(r' \(manga\)$', '', title, flags=re.IGNORECASE)
    title = re.sub(r' light novels?$', '', title, flags=re.IGNORECASE)
    return title.strip()
