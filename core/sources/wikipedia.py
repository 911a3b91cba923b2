# core/sources/wikipedia.py
import logging
import re
from typing import Dict, List, Optional

from pydantic import BaseModel, ValidationError

from core.cache.tiered_cache import METADATA_TTL, WIKIPEDIA, TieredCache
from core.models.entities import MediaType, SeriesRelationship
from core.sources import wikitext
from core.sources.base import MetadataSource, RelatedListing, SeriesListing, VolumeListing
from core.utils.http import HttpClient
from core.utils.rate_limit import RateLimiter
from core.utils.text import sanitize_key

API_URL = 'https://en.wikipedia.org/w/api.php'

NON_SERIES_MARKERS = ['movie', 'film', ' tv ', 'tv series', 'season ', 'episode', 'stampede', 'ova', 'special']
FALLBACK_SKIP_MARKERS = ['movie', 'film', 'tv', 'season']

# A page listing at least this many volumes ends the candidate walk
ENOUGH_VOLUMES = 10


class WikiPage(BaseModel):
    page_id: int
    title: str
    wikitext: str


def normalize_for_compare(text: str) -> str:
    """Lowercase, unify multiplication signs and quotes, turn colons into spaces."""
    normalized = text.lower().replace('×', 'x')
    normalized = re.sub(r'[‘’]', "'", normalized)
    normalized = re.sub(r'[“”]', '"', normalized)
    normalized = normalized.replace(':', ' ')
    return re.sub(r'\s+', ' ', normalized).strip()


def score_search_result(title: str, query: str) -> Optional[int]:
    """
    Score an OpenSearch title against the query; None for adaptation pages.

    List pages of volumes or chapters win, then "(manga)" pages, then
    titles containing the query. Subtitled pages that do not start with the
    query and very short or very long titles are penalized.
    """
    lower = title.lower()
    if any(marker in lower for marker in NON_SERIES_MARKERS):
        return None

    q = normalize_for_compare(query)
    t = normalize_for_compare(title)
    score = 0
    if 'list of' in lower and ('volumes' in lower or 'chapters' in lower):
        score += 500
    if '(manga)' in lower:
        score += 300
    if t == q:
        score -= 50
    if t == f"{q} (manga)":
        score += 200
    if q in t:
        score += 50
    if ':' in title and not t.startswith(q):
        score -= 100
    if len(title) > len(query) * 2:
        score -= 30
    if 5 < len(title) < 40:
        score += 10
    if len(title) < 15 and '(manga)' not in lower:
        score -= 50
    return score


def pick_best_result(results: List[str], query: str) -> Optional[str]:
    """Highest scoring search result, falling back to the first non-adaptation title."""
    if not results:
        return None
    best, best_score = None, -1
    for title in results:
        score = score_search_result(title, query)
        if score is not None and score > best_score:
            best, best_score = title, score
    if best:
        return best
    for title in results:
        lower = title.lower()
        if not any(marker in lower for marker in FALLBACK_SKIP_MARKERS):
            return title
    return results[0]


def _with_lists(title: str) -> bool:
    lower = title.lower()
    return 'chapters' in lower or 'volumes' in lower


def candidate_pages(query: str, actual_title: str, results: List[str]) -> List[str]:
    """
    Page titles to try, most specific first.

    Chapter/volume list pages for the matched title and its base title
    (before any colon) come first, then list pages from the search results
    and finally pages named after the raw query.
    """
    candidates: List[str] = []

    def add(title: str):
        if title and title not in candidates:
            candidates.append(title)

    if _with_lists(actual_title):
        add(actual_title)

    clean = re.sub(r'\s*\((?:Japanese )?manga\)\s*$', '', actual_title, flags=re.IGNORECASE).strip()
    for title in (f"List of {clean} manga volumes", f"List of {clean} chapters", clean, f"{clean} (manga)"):
        add(title)
    add(actual_title)

    base = clean.split(':')[0].strip()
    if base and base != clean:
        for title in (f"List of {base} manga volumes", f"List of {base} chapters", base, f"{base} (manga)"):
            add(title)

    for title in results:
        if _with_lists(title):
            add(title)

    if f"list of {query.lower()} manga volumes" not in (c.lower() for c in candidates):
        for title in (f"List of {query} manga volumes", f"List of {query} chapters", query, f"{query} (manga)"):
            add(title)
    return candidates


class WikipediaSource(MetadataSource):
    """
    Series and volume lists from Wikipedia chapter-list pages.

    Uses the MediaWiki API: OpenSearch to find the page, then the raw
    wikitext of the best list page. Search results, pages and parsed
    series are cached for a day.
    """

    name = 'wikipedia'
    label = 'Wikipedia'

    def __init__(self, cache: TieredCache, http: Optional[HttpClient] = None, api_url: str = API_URL):
        """
        Initialize the source.

        Args:
            cache: Cache for searches, pages and parsed series
            http: HTTP client; defaults to one with a polite rate limiter
            api_url: MediaWiki API endpoint
        """
        self.cache = cache
        self.http = http or HttpClient(
            self.name,
            rate_limiter=RateLimiter(min_delay=0.1, max_delay=0.3)
        )
        self.api_url = api_url
        self.logger = logging.getLogger(self.__class__.__name__)

    def search(self, query: str) -> List[str]:
        """Page titles returned by OpenSearch for a query"""
        key = f"search_{sanitize_key(query, 100)}"
        cached = self.cache.get(WIKIPEDIA, key)
        if cached is not None:
            return cached

        data = self.http.get_json(self.api_url, params={
            'action': 'opensearch',
            'search': query,
            'limit': 10,
            'namespace': 0,
            'format': 'json',
        })
        titles = data[1] if isinstance(data, list) and len(data) > 1 else []
        self.cache.set(WIKIPEDIA, key, titles, ttl=METADATA_TTL)
        return titles

    def page_by_title(self, title: str) -> Optional[WikiPage]:
        """
        Fetch a page's wikitext, following redirects.

        Returns:
            The page, or None when it does not exist
        """
        key = f"page_title_{sanitize_key(title, 100)}"
        cached = self.cache.get(WIKIPEDIA, key)
        if cached:
            try:
                return WikiPage.model_validate(cached)
            except ValidationError:
                self.logger.warning(f"Ignoring malformed cached page {key}")

        data = self.http.get_json(self.api_url, params={
            'action': 'query',
            'titles': title,
            'prop': 'revisions',
            'rvprop': 'content',
            'rvslots': 'main',
            'redirects': 1,
            'format': 'json',
        })
        pages: Dict = data.get('query', {}).get('pages', {})
        for page_id, page in pages.items():
            if int(page_id) < 0 or 'missing' in page:
                continue
            revisions = page.get('revisions') or []
            if not revisions:
                continue
            content = revisions[0].get('slots', {}).get('main', {}).get('*', '')
            result = WikiPage(page_id=int(page_id), title=page.get('title', title), wikitext=content)
            self.cache.set(WIKIPEDIA, key, result.model_dump(), ttl=METADATA_TTL)
            return result
        return None

    def lookup_series(self, title: str) -> Optional[SeriesListing]:
        """
        Find a series and its volumes.

        Raises:
            SourceUnavailable: The API could not be reached (RateLimited on 429)
        """
        key = f"series_{sanitize_key(title, 100)}"
        cached = self.cache.get(WIKIPEDIA, key)
        if cached:
            try:
                self.logger.debug(f"Series cache hit for '{title}'")
                return SeriesListing.model_validate(cached)
            except ValidationError:
                self.logger.warning(f"Ignoring malformed cached series {key}")

        results = self.search(title)
        if not results:
            self.logger.info(f"No Wikipedia results for '{title}'")
            return None

        actual_title = pick_best_result(results, title)
        self.logger.debug(f"Best Wikipedia match for '{title}': {actual_title}")

        best_page: Optional[WikiPage] = None
        best_volumes: List[VolumeListing] = []
        for candidate in candidate_pages(title, actual_title, results):
            page = self.page_by_title(candidate)
            if page is None:
                continue

            content = page.wikitext
            for subpage_title in wikitext.transcluded_pages(content):
                subpage = self.page_by_title(subpage_title)
                if subpage is not None:
                    content += '\n' + subpage.wikitext

            volumes = wikitext.parse_volume_list(content)
            if len(volumes) > len(best_volumes):
                best_page = page.model_copy(update={'wikitext': content})
                best_volumes = volumes
            if len(best_volumes) >= ENOUGH_VOLUMES:
                break

        if best_page is None:
            self.logger.info(f"No volume list found on Wikipedia for '{title}'")
            return None

        listing = self._build_listing(best_page, best_volumes)
        self.cache.set(WIKIPEDIA, key, listing.model_dump(mode='json'), ttl=METADATA_TTL)
        return listing

    def _build_listing(self, page: WikiPage, volumes: List[VolumeListing]) -> SeriesListing:
        series_title = wikitext.series_title_from_page(page.title)
        types = {v.media_type for v in volumes if v.media_type and v.media_type != MediaType.UNKNOWN}

        related: List[RelatedListing] = []
        if len(types) > 1:
            media_type = MediaType.MANGA
            other = MediaType.LIGHT_NOVEL
            related.append(RelatedListing(
                title=f"{series_title} (Light Novel)",
                relationship=SeriesRelationship.ADAPTATION,
                media_type=other,
                volumes=[v for v in volumes if v.media_type == other]
            ))
            volumes = [v for v in volumes if v.media_type != other]
        elif types:
            media_type = types.pop()
        else:
            media_type = MediaType.MANGA

        if media_type == MediaType.LIGHT_NOVEL and 'light novel' not in series_title.lower():
            series_title = f"{series_title} (Light Novel)"

        return SeriesListing(
            title=series_title,
            source=self.name,
            page_id=page.page_id,
            author=wikitext.extract_author(page.wikitext),
            is_complete=wikitext.check_series_complete(page.wikitext),
            media_type=media_type,
            volumes=volumes,
            related=related
        )
