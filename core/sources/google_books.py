# core/sources/google_books.py
import logging
import re
from typing import Dict, List, Optional

from pydantic import BaseModel

from core.cache.tiered_cache import GOOGLE_BOOKS, METADATA_TTL, TieredCache
from core.models.entities import MediaType
from core.search import volume_numbers
from core.sources.base import MetadataSource, SeriesListing, VolumeListing
from core.utils.http import HttpClient
from core.utils.text import isbn10_to_13, sanitize_key

API_URL = 'https://www.googleapis.com/books/v1/volumes'

EXCLUDED_TITLE_WORDS = ['coloring', 'notebook', 'composition', 'box set', 'collection set']


class GoogleBook(BaseModel):
    id: str
    title: str
    isbn13: Optional[str] = None
    isbn10: Optional[str] = None
    series_id: Optional[str] = None
    volume_number: Optional[int] = None
    published_date: Optional[str] = None


def extract_series_title(title: str) -> str:
    """
    Strip the volume designation from a Google Books title.

    "Chainsaw Man, Vol. 3" -> "Chainsaw Man"
    """
    series = re.sub(r',?\s*Vol(?:ume)?\.?\s*\d+.*$', '', title, flags=re.IGNORECASE)
    series = re.sub(r'\s*Volume\s*\d+.*$', '', series, flags=re.IGNORECASE)
    series = re.sub(r'\s*Part\s*(\d+)\s*Volume.*$', r' Part \1', series, flags=re.IGNORECASE)
    series = re.sub(r'\s*\([^)]*\d+[^)]*\)\s*$', '', series)
    return series.strip()


def parse_book(item: Dict) -> GoogleBook:
    info = item.get('volumeInfo', {})
    isbn13 = isbn10 = None
    for identifier in info.get('industryIdentifiers', []):
        if identifier.get('type') == 'ISBN_13':
            isbn13 = identifier.get('identifier')
        elif identifier.get('type') == 'ISBN_10':
            isbn10 = identifier.get('identifier')

    series_id = volume_number = None
    volume_series = info.get('seriesInfo', {}).get('volumeSeries', [])
    if volume_series:
        series_id = volume_series[0].get('seriesId')
    display_number = info.get('seriesInfo', {}).get('bookDisplayNumber')
    if display_number:
        volume_number = volume_numbers.parse_number(display_number)

    title = info.get('title', '')
    if info.get('subtitle'):
        title = f"{title}: {info['subtitle']}"

    return GoogleBook(
        id=item.get('id', ''),
        title=title,
        isbn13=isbn13,
        isbn10=isbn10,
        series_id=series_id,
        volume_number=volume_number,
        published_date=info.get('publishedDate')
    )


def group_books(books: List[GoogleBook]) -> List[List[GoogleBook]]:
    """
    Group search results into series, largest group first.

    Books sharing a Google series id group together; the rest group by
    their lowercased series title. Within a group duplicates (same ISBN or
    id) collapse, keeping the entry that knows its volume number.
    """
    groups: Dict[str, Dict[str, GoogleBook]] = {}
    for book in books:
        if any(word in book.title.lower() for word in EXCLUDED_TITLE_WORDS):
            continue
        if book.volume_number is None:
            number = volume_numbers.extract(volume_numbers.GOOGLE_BOOKS_TITLE, book.title)
            if number is not None:
                book = book.model_copy(update={'volume_number': number})

        group_key = f"id:{book.series_id}" if book.series_id else f"title:{extract_series_title(book.title).lower()}"
        group = groups.setdefault(group_key, {})
        book_key = book.isbn13 or book.isbn10 or book.id
        existing = group.get(book_key)
        if existing is None or (existing.volume_number is None and book.volume_number is not None):
            group[book_key] = book

    ordered = [
        sorted(group.values(), key=lambda b: b.volume_number if b.volume_number is not None else 999)
        for group in groups.values()
    ]
    ordered.sort(key=len, reverse=True)
    return ordered


class GoogleBooksSource(MetadataSource):
    """
    Series lookup through the Google Books volumes API.

    Coverage of manga series data is patchy, so this source is meant as a
    fallback behind Wikipedia.
    """

    name = 'google-books'
    label = 'Google Books'

    def __init__(self, cache: TieredCache, http: Optional[HttpClient] = None,
                 api_url: str = API_URL, max_results: int = 40):
        self.cache = cache
        self.http = http or HttpClient(self.name)
        self.api_url = api_url
        self.max_results = max_results
        self.logger = logging.getLogger(self.__class__.__name__)

    def search(self, query: str) -> List[GoogleBook]:
        key = f"search_{sanitize_key(f'{query}_{self.max_results}', 100)}"
        cached = self.cache.get(GOOGLE_BOOKS, key)
        if cached is not None:
            return [GoogleBook.model_validate(b) for b in cached]

        data = self.http.get_json(self.api_url, params={
            'q': query,
            'maxResults': self.max_results,
            'printType': 'books',
        })
        books = [parse_book(item) for item in data.get('items', [])]
        self.cache.set(GOOGLE_BOOKS, key, [b.model_dump() for b in books], ttl=METADATA_TTL)
        return books

    def lookup_series(self, title: str) -> Optional[SeriesListing]:
        query = title if 'manga' in title.lower() else f"{title} manga"
        books = self.search(query)
        groups = group_books(books)
        if not groups:
            self.logger.info(f"No Google Books series for '{title}'")
            return None

        best = groups[0]
        volumes = []
        seen = set()
        for book in best:
            if book.volume_number is None or book.volume_number in seen:
                continue
            seen.add(book.volume_number)
            isbn = book.isbn13 or (isbn10_to_13(book.isbn10) if book.isbn10 else None)
            volumes.append(VolumeListing(
                number=book.volume_number,
                title=book.title,
                isbn=isbn,
                release_date=book.published_date,
                media_type=MediaType.MANGA
            ))
        if not volumes:
            return None

        return SeriesListing(
            title=extract_series_title(best[0].title),
            source=self.name,
            media_type=MediaType.MANGA,
            volumes=volumes
        )
