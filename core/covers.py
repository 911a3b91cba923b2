# core/covers.py
import logging
from typing import Dict, Iterator, List, Optional, Tuple

from core.cache.tiered_cache import BOOKCOVER, GOOGLE_BOOKS_COVERS, TieredCache
from core.errors import SourceUnavailable
from core.utils.batching import iter_batches
from core.utils.http import HttpClient
from core.utils.text import strip_isbn

BOOKCOVER_URL = 'https://bookcover.longitood.com/bookcover/{isbn}'
GOOGLE_BOOKS_URL = 'https://www.googleapis.com/books/v1/volumes'
GOOGLE_BOOKS_IMAGE_URL = ('https://books.google.com/books/content?id={id}'
                          '&printsec=frontcover&img=1&zoom=2&source=gbs_api')
OPEN_LIBRARY_URL = 'https://covers.openlibrary.org/b/isbn/{isbn}-M.jpg'


def _confirmed_miss(error: SourceUnavailable) -> bool:
    # An HTTP answer other than 429 says the source has no cover; timeouts say nothing
    return error.status_code is not None and error.status_code != 429


def open_library_url(isbn: str) -> str:
    return OPEN_LIBRARY_URL.format(isbn=strip_isbn(isbn))


class CoverResolver:
    """
    Resolves cover image URLs for ISBNs.

    Bookcover is tried first, then (optionally) Google Books, and Open
    Library's URL scheme is the last resort. Hits and confirmed misses are
    cached per ISBN; a miss is cached as an empty string so the source is
    not asked again until the entry expires.
    """

    def __init__(self, cache: TieredCache, http: Optional[HttpClient] = None,
                 google_books: bool = True, timeout: float = 5.0):
        """
        Initialize the resolver.

        Args:
            cache: Cache holding the bookcover and google-books/covers namespaces
            http: HTTP client for both cover services
            google_books: Whether to fall back to Google Books thumbnails
            timeout: Per-request timeout in seconds
        """
        self.cache = cache
        self.http = http or HttpClient('covers', timeout=timeout)
        self.google_books = google_books
        self.timeout = timeout
        self.logger = logging.getLogger(self.__class__.__name__)

    def bookcover_url(self, isbn: str) -> Optional[str]:
        """Cover URL from the Bookcover API, or None"""
        clean = strip_isbn(isbn)
        cached = self.cache.get_cover(BOOKCOVER, clean)
        if cached is not None:
            return cached or None

        try:
            data = self.http.get_json(BOOKCOVER_URL.format(isbn=clean), timeout=self.timeout)
        except SourceUnavailable as e:
            if _confirmed_miss(e):
                self.cache.set_cover(BOOKCOVER, clean, None)
            else:
                self.logger.debug(f"Bookcover lookup for {clean} failed: {e}")
            return None

        url = data.get('url') if isinstance(data, dict) else None
        self.cache.set_cover(BOOKCOVER, clean, url)
        return url or None

    def google_books_cover_url(self, isbn: str) -> Optional[str]:
        """
        Large cover URL from Google Books, or None.

        Google serves a PNG placeholder for books it has no scan of; those
        count as misses.
        """
        clean = strip_isbn(isbn)
        cached = self.cache.get_cover(GOOGLE_BOOKS_COVERS, clean)
        if cached is not None:
            return cached or None

        try:
            data = self.http.get_json(GOOGLE_BOOKS_URL, params={'q': f"isbn:{clean}"}, timeout=self.timeout)
            items = data.get('items') or []
            book = items[0] if items else None
            if not book or not book.get('volumeInfo', {}).get('imageLinks', {}).get('thumbnail'):
                self.cache.set_cover(GOOGLE_BOOKS_COVERS, clean, None)
                return None

            url = GOOGLE_BOOKS_IMAGE_URL.format(id=book['id'])
            response = self.http.head(url, timeout=self.timeout)
        except SourceUnavailable as e:
            if _confirmed_miss(e):
                self.cache.set_cover(GOOGLE_BOOKS_COVERS, clean, None)
            else:
                self.logger.debug(f"Google Books cover lookup for {clean} failed: {e}")
            return None

        if 'png' in response.headers.get('content-type', ''):
            self.cache.set_cover(GOOGLE_BOOKS_COVERS, clean, None)
            return None
        self.cache.set_cover(GOOGLE_BOOKS_COVERS, clean, url)
        return url

    def cover_image(self, isbn: Optional[str], bookcover: Optional[str] = None,
                    google_books: Optional[str] = None) -> Optional[str]:
        """Pick the best known cover, falling back to the Open Library URL for the ISBN."""
        if bookcover:
            return bookcover
        if google_books:
            return google_books
        return open_library_url(isbn) if isbn else None

    def iter_covers(self, isbns: List[str], batch_size: int = 5) -> Iterator[Tuple[int, Dict[str, Optional[str]]]]:
        """Bookcover lookups in concurrent batches, yielding (completed, batch results)."""
        yield from iter_batches(list(dict.fromkeys(isbns)), self.bookcover_url, batch_size)

    def iter_google_books_covers(self, covers: Dict[str, Optional[str]], batch_size: int = 5
                                 ) -> Iterator[Tuple[int, Dict[str, str]]]:
        """
        Google Books lookups for every ISBN that has no cover yet.

        Runs in concurrent batches, yielding (completed, covers found in the
        batch). Yields nothing when the fallback is disabled.
        """
        if not self.google_books:
            return
        missing = [isbn for isbn, url in covers.items() if not url]
        found = 0
        for completed, batch in iter_batches(missing, self.google_books_cover_url, batch_size):
            hits = {isbn: url for isbn, url in batch.items() if url}
            found += len(hits)
            yield completed, hits
        if missing:
            self.logger.debug(f"Google Books found {found} of {len(missing)} missing covers")

    def fetch_covers(self, isbns: List[str], batch_size: int = 5) -> Dict[str, Optional[str]]:
        """Resolve covers for many ISBNs with every fallback applied."""
        covers: Dict[str, Optional[str]] = {}
        for _, batch in self.iter_covers(isbns, batch_size):
            covers.update(batch)
        google: Dict[str, str] = {}
        for _, batch in self.iter_google_books_covers(covers, batch_size):
            google.update(batch)
        return {isbn: self.cover_image(isbn, url, google.get(isbn)) for isbn, url in covers.items()}
