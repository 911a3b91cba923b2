# core/search/catalog_series.py
"""
Series synthesized straight from catalog records.

Used when no metadata source knows a title: records are split into
manga, light novel and unmarked buckets by their title markers, and each
bucket becomes one series whose volumes are numbered from the record
(call number, MARC or title) or, when no record carries a number,
sequentially in catalog order.
"""
from typing import Dict, List, NamedTuple, Optional

from core.catalog.models import CatalogRecord
from core.models.entities import MediaType
from core.search import volume_numbers
from core.search.titles import catalog_series_title, media_type_from_title, volume_title
from core.sources.base import VolumeListing
from core.utils.text import strip_isbn

TYPED_BUCKETS = (MediaType.MANGA, MediaType.LIGHT_NOVEL)


class CatalogSeries(NamedTuple):
    title: str
    media_type: MediaType
    volumes: List[VolumeListing]
    records: Dict[str, CatalogRecord]       # primary ISBN -> record it came from


def record_volume_number(record: CatalogRecord) -> Optional[int]:
    return (volume_numbers.parse_number(record.volume_number)
            or volume_numbers.extract(volume_numbers.RECORD_TITLE, record.title))


def build_single_series(series_title: str, records: List[CatalogRecord],
                        media_type: MediaType) -> Optional[CatalogSeries]:
    """
    Build one series from a bucket of records.

    Records whose title lacks the first word of the searched title are
    ignored. When two records share a volume number the one with more
    ISBNs wins.
    """
    clean_title = catalog_series_title(series_title, media_type)
    words = series_title.lower().split()
    first_word = words[0] if words else ''

    numbered: Dict[int, CatalogRecord] = {}
    unnumbered: List[CatalogRecord] = []
    for record in records:
        if first_word and first_word not in record.title.lower():
            continue
        if not record.isbns:
            continue
        number = record_volume_number(record)
        if number is None:
            unnumbered.append(record)
            continue
        existing = numbered.get(number)
        if existing is None or len(record.isbns) > len(existing.isbns):
            numbered[number] = record

    if not numbered and unnumbered:
        seen = set()
        for record in unnumbered:
            isbn = record.primary_isbn()
            if isbn in seen:
                continue
            seen.add(isbn)
            numbered[len(numbered) + 1] = record

    if not numbered:
        return None

    volumes = []
    by_isbn: Dict[str, CatalogRecord] = {}
    for number in sorted(numbered):
        record = numbered[number]
        isbn = strip_isbn(record.primary_isbn())
        volumes.append(VolumeListing(
            number=number,
            title=volume_title(clean_title, number),
            isbn=isbn,
            media_type=media_type
        ))
        by_isbn[isbn] = record

    return CatalogSeries(clean_title, media_type, volumes, by_isbn)


def build_series_from_records(series_title: str, records: List[CatalogRecord]) -> List[CatalogSeries]:
    """
    Split records by media type and build one series per non-empty bucket.

    Unmarked records only form a series of their own when neither typed
    bucket produced one.
    """
    buckets: Dict[MediaType, List[CatalogRecord]] = {
        MediaType.MANGA: [], MediaType.LIGHT_NOVEL: [], MediaType.UNKNOWN: []
    }
    for record in records:
        buckets[media_type_from_title(record.title)].append(record)

    results = []
    for media_type in TYPED_BUCKETS:
        if buckets[media_type]:
            series = build_single_series(series_title, buckets[media_type], media_type)
            if series is not None:
                results.append(series)

    if not results and buckets[MediaType.UNKNOWN]:
        series = build_single_series(series_title, buckets[MediaType.UNKNOWN], MediaType.UNKNOWN)
        if series is not None:
            results.append(series)
    return results
