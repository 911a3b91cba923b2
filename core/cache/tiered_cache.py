# core/cache/tiered_cache.py
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from core.sa.database import Database
from core.sa.repositories.cache import CacheRepository
from core.utils.text import sanitize_key, strip_isbn

logger = logging.getLogger(__name__)

HOUR = 60 * 60
DAY = 24 * HOUR

# Namespaces. The first path segment is the administrative cache type.
IDENTITY = 'nc-cardinal/isbn-map'       # ISBN -> record id, never expires
AVAILABILITY = 'nc-cardinal/records'    # record id -> full record, 1 hour
QUERY = 'nc-cardinal/searches'          # search key -> result page, 1 hour
WIKIPEDIA = 'wikipedia'
GOOGLE_BOOKS = 'google-books'
GOOGLE_BOOKS_COVERS = 'google-books/covers'
BOOKCOVER = 'bookcover'

CACHE_TYPES = ('wikipedia', 'google-books', 'bookcover', 'nc-cardinal')

AVAILABILITY_TTL = HOUR
QUERY_TTL = HOUR
METADATA_TTL = DAY
COVER_HIT_TTL = 7 * DAY
COVER_MISS_TTL = DAY


class CacheStats(BaseModel):
    type: str
    entry_count: int
    total_size_bytes: int


class AllCacheStats(BaseModel):
    caches: List[CacheStats]
    total_entries: int
    total_size_bytes: int


class ClearResult(BaseModel):
    deleted_count: int
    deleted_keys: List[str] = []


def search_cache_key(query: str, search_class: str, count: int) -> str:
    """Key for the query tier: class, sanitized text and page size."""
    return f"{search_class}_{sanitize_key(query, 80)}_{count}"


class TieredCache:
    """
    Key/value cache with per-namespace TTLs backed by SQLAlchemy rows.

    Expiry is checked when an entry is read; a stale row is deleted and
    reported as a miss. No background sweep runs. Every write is its own
    transaction, so a crash between two related writes only leaves a
    later miss behind.
    """

    def __init__(self, database: Database, clock: Callable[[], float] = time.time):
        """
        Initialize the cache.

        Args:
            database: Database holding the cache_entry table
            clock: Returns the current time in epoch seconds (tests inject a fake)
        """
        self.database = database
        self.clock = clock
        self.database.init_db()

    # -- generic access -------------------------------------------------

    def get(self, namespace: str, key: str) -> Optional[Any]:
        """
        Read a value, treating expired entries as misses.

        Returns:
            The decoded value, or None on a miss. An empty string is a valid
            cached value (a tombstone for a confirmed absence).
        """
        with self.database.get_db() as session:
            repo = CacheRepository(session)
            entry = repo.get(namespace, key)
            if entry is None:
                return None
            if entry.is_expired(self.clock()):
                logger.debug(f"Cache expired: {namespace}/{key}")
                repo.delete(namespace, key)
                return None
            raw = entry.value
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {namespace}/{key}")
            self.delete(namespace, key)
            return None

    def set(self, namespace: str, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Write a value.

        Args:
            namespace: Cache namespace
            key: Entry key
            value: JSON serializable value
            ttl: Lifetime in seconds, None for an entry that never expires
        """
        expires_at = self.clock() + ttl if ttl is not None else None
        encoded = json.dumps(value)
        with self.database.get_db() as session:
            CacheRepository(session).upsert(namespace, key, encoded, expires_at)

    def delete(self, namespace: str, key: str) -> int:
        with self.database.get_db() as session:
            return CacheRepository(session).delete(namespace, key)

    # -- catalog tiers --------------------------------------------------

    def get_record_id(self, isbn: str) -> Optional[str]:
        return self.get(IDENTITY, strip_isbn(isbn))

    def set_record_id(self, isbn: str, record_id: str) -> None:
        self.set(IDENTITY, strip_isbn(isbn), record_id)

    def get_record(self, record_id: str) -> Optional[Dict[str, Any]]:
        return self.get(AVAILABILITY, record_id)

    def set_record(self, record_id: str, record: Dict[str, Any]) -> None:
        self.set(AVAILABILITY, record_id, record, ttl=AVAILABILITY_TTL)

    def get_search(self, key: str) -> Optional[Dict[str, Any]]:
        return self.get(QUERY, key)

    def set_search(self, key: str, page: Dict[str, Any]) -> None:
        self.set(QUERY, key, page, ttl=QUERY_TTL)

    def get_cover(self, namespace: str, isbn: str) -> Optional[str]:
        return self.get(namespace, isbn)

    def set_cover(self, namespace: str, isbn: str, url: Optional[str]) -> None:
        """Cache a cover lookup; a confirmed miss is stored as an empty string."""
        value = url or ''
        self.set(namespace, isbn, value, ttl=COVER_HIT_TTL if value else COVER_MISS_TTL)

    # -- administration -------------------------------------------------

    def stats(self) -> AllCacheStats:
        """Entry count and byte size per cache type."""
        caches = []
        with self.database.get_db() as session:
            repo = CacheRepository(session)
            for cache_type in CACHE_TYPES:
                count, size = repo.stats_by_type(cache_type)
                caches.append(CacheStats(type=cache_type, entry_count=count, total_size_bytes=size))
        return AllCacheStats(
            caches=caches,
            total_entries=sum(c.entry_count for c in caches),
            total_size_bytes=sum(c.total_size_bytes for c in caches)
        )

    def clear_all(self) -> ClearResult:
        with self.database.get_db() as session:
            deleted = CacheRepository(session).delete_all()
        logger.info(f"Cleared all caches ({deleted} entries)")
        return ClearResult(deleted_count=deleted)

    def clear_type(self, cache_type: str) -> ClearResult:
        if cache_type not in CACHE_TYPES:
            raise ValueError(f"Unknown cache type: {cache_type}")
        with self.database.get_db() as session:
            deleted = CacheRepository(session).delete_type(cache_type)
        logger.info(f"Cleared {cache_type} cache ({deleted} entries)")
        return ClearResult(deleted_count=deleted)

    def clear_isbn(self, isbn: str) -> ClearResult:
        """
        Remove everything cached for one ISBN.

        Cascades from the identity tier to the availability record it points
        at, and removes the cover entries and any Google Books search keyed
        by the ISBN. Entries of other ISBNs are left untouched.
        """
        clean = strip_isbn(isbn)
        deleted: List[str] = []
        with self.database.get_db() as session:
            repo = CacheRepository(session)
            identity = repo.get(IDENTITY, clean)
            if identity is not None:
                try:
                    record_id = json.loads(identity.value)
                except ValueError:
                    record_id = None
                if repo.delete(IDENTITY, clean):
                    deleted.append(f"{IDENTITY}/{clean}")
                if record_id and repo.delete(AVAILABILITY, str(record_id)):
                    deleted.append(f"{AVAILABILITY}/{record_id}")
            for namespace in (BOOKCOVER, GOOGLE_BOOKS_COVERS):
                if repo.delete(namespace, clean):
                    deleted.append(f"{namespace}/{clean}")
            for key in repo.find_keys(GOOGLE_BOOKS, contains=clean):
                repo.delete(GOOGLE_BOOKS, key)
                deleted.append(f"{GOOGLE_BOOKS}/{key}")
        return ClearResult(deleted_count=len(deleted), deleted_keys=deleted)

    def clear_series(self, series_slug: str) -> ClearResult:
        """Remove cached metadata-source series and page lookups matching a series name."""
        normalized = sanitize_key(series_slug, 100)
        deleted: List[str] = []
        with self.database.get_db() as session:
            repo = CacheRepository(session)
            for key in repo.find_keys(WIKIPEDIA, contains=normalized, prefixes=['series_', 'page_title_']):
                repo.delete(WIKIPEDIA, key)
                deleted.append(f"{WIKIPEDIA}/{key}")
        return ClearResult(deleted_count=len(deleted), deleted_keys=deleted)

    def clear_search(self, query: str) -> ClearResult:
        """Remove every cached search, series and page entry whose key contains the normalized query."""
        normalized = sanitize_key(query, 100)
        deleted: List[str] = []
        targets = [
            (WIKIPEDIA, ['search_', 'series_', 'all_series_', 'page_title_']),
            (GOOGLE_BOOKS, ['search_']),
            (QUERY, None),
        ]
        with self.database.get_db() as session:
            repo = CacheRepository(session)
            for namespace, prefixes in targets:
                for key in repo.find_keys(namespace, contains=normalized, prefixes=prefixes):
                    repo.delete(namespace, key)
                    deleted.append(f"{namespace}/{key}")
        return ClearResult(deleted_count=len(deleted), deleted_keys=deleted)
