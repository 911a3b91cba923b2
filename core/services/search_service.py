# core/services/search_service.py
import logging
from typing import List, Optional

from core.cache.tiered_cache import AllCacheStats, ClearResult, TieredCache
from core.catalog.opensearch import OpenSearchClient
from core.config import Settings
from core.covers import CoverResolver
from core.entities.store import EntityStore
from core.models.entities import StoreStats
from core.sa.database import Database
from core.search.models import SearchResult, SeriesDetails
from core.search.orchestrator import SearchOrchestrator
from core.search.streaming import ProgressCallback, streaming_search
from core.sources.base import MetadataSource
from core.sources.google_books import GoogleBooksSource
from core.sources.wikipedia import WikipediaSource
from core.utils.http import HttpClient
from core.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

SOURCE_TYPES = {
    WikipediaSource.name: WikipediaSource,
    GoogleBooksSource.name: GoogleBooksSource,
}


def build_sources(names: List[str], cache: TieredCache, settings: Settings) -> List[MetadataSource]:
    """
    Instantiate the configured metadata sources in order.

    Raises:
        ValueError: A configured name is not a known source
    """
    sources = []
    for name in names:
        source_type = SOURCE_TYPES.get(name)
        if source_type is None:
            raise ValueError(f"Unknown metadata source: {name} (known: {', '.join(SOURCE_TYPES)})")
        # Wikipedia asks API clients to pace their requests
        rate_limiter = RateLimiter(min_delay=0.1, max_delay=0.3) if source_type is WikipediaSource else None
        http = HttpClient(name, timeout=settings.http_timeout, rate_limiter=rate_limiter,
                          user_agent=settings.user_agent)
        sources.append(source_type(cache, http=http))
    return sources


class SearchService:
    """Entry point used by the CLI: owns the cache, the entity store and the orchestrator."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings.from_env()
        self.database = Database(self.settings.cache_database_url)
        self.cache = TieredCache(self.database)
        self.store = EntityStore(self.settings.entity_store_path)
        self.catalog = OpenSearchClient(
            self.cache,
            base_url=self.settings.catalog_base_url,
            org=self.settings.catalog_org,
            http=HttpClient('nc-cardinal', timeout=self.settings.http_timeout,
                            user_agent=self.settings.user_agent)
        )
        self.covers = CoverResolver(
            self.cache,
            google_books=self.settings.google_books_covers,
            timeout=self.settings.cover_timeout
        )
        self.orchestrator = SearchOrchestrator(
            self.store,
            self.catalog,
            self.covers,
            build_sources(self.settings.metadata_sources, self.cache, self.settings),
            availability_batch_size=self.settings.availability_batch_size,
            cover_batch_size=self.settings.cover_batch_size
        )

    def __enter__(self) -> 'SearchService':
        self.store.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.store.close()
        self.database.dispose()

    def search(self, query: str, home_library: Optional[str] = None, debug: bool = False) -> SearchResult:
        return self.orchestrator.search(query, home_library=home_library, debug=debug)

    def streaming_search(self, query: str, on_progress: ProgressCallback,
                         home_library: Optional[str] = None, debug: bool = False) -> Optional[SearchResult]:
        return streaming_search(self.orchestrator, query, on_progress, home_library=home_library, debug=debug)

    def series_details(self, id_or_title: str, home_library: Optional[str] = None) -> Optional[SeriesDetails]:
        return self.orchestrator.series_details(id_or_title, home_library=home_library)

    def cache_stats(self) -> AllCacheStats:
        return self.cache.stats()

    def clear_cache(self, cache_type: Optional[str] = None) -> ClearResult:
        return self.cache.clear_type(cache_type) if cache_type else self.cache.clear_all()

    def store_stats(self) -> StoreStats:
        return self.store.get_store_stats()
