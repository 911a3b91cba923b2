# core/search/orchestrator.py
import logging
from typing import Dict, Iterator, List, NamedTuple, Optional, Set

from core.availability import AvailabilitySummary, not_in_catalog
from core.catalog.models import SearchClass
from core.catalog.opensearch import OpenSearchClient
from core.covers import CoverResolver
from core.entities.store import EntityStore
from core.errors import RateLimited, ShelfError, SourceUnavailable
from core.models.entities import MediaType, Series, SeriesRelationship, SeriesStatus, Volume
from core.resolvers.series_resolver import IngestedSeries, SeriesResolver
from core.search import events
from core.search.catalog_series import CatalogSeries, build_series_from_records
from core.search.debug import DebugTracker
from core.search.events import SearchEvent, event
from core.search.models import (
    BestMatch, EditionData, SearchResult, SeriesDetails, SeriesResult, VolumeInfo, VolumeResult
)
from core.search.query import ParsedQuery, parse_query
from core.search.titles import comparable_title, media_type_from_title, volume_title
from core.sources.base import MetadataSource, SeriesListing
from core.utils.batching import chunked

CATALOG_SOURCE = 'nc-cardinal'
CATALOG_LABEL = 'NC Cardinal'
COVER_SOURCE = 'bookcover'
GOOGLE_BOOKS_COVER_SOURCE = 'google-books'


class ResultGroup(NamedTuple):
    """One series headed for the result, with how its volumes are titled"""
    ingested: IngestedSeries
    source: str
    relationship: Optional[SeriesRelationship] = None
    subtitled: bool = True     # listing titles are subtitles, not full volume titles


def _is_rate_limit(error: SourceUnavailable) -> bool:
    return isinstance(error, RateLimited) or error.status_code == 429


def _marks_media_type(title: str) -> bool:
    return 'novel' in title.lower() or media_type_from_title(title) != MediaType.UNKNOWN


class SearchOrchestrator:
    """
    Composes metadata sources, the catalog, covers and the entity store into
    one search.

    ``run`` is the core: a generator of progress events ending in
    ``complete`` (carrying the SearchResult) or ``error``. ``search`` drains
    it. A consumer that stops iterating stops the search at the next batch
    boundary.
    """

    def __init__(self, store: EntityStore, catalog: OpenSearchClient, covers: CoverResolver,
                 sources: List[MetadataSource], availability_batch_size: int = 5,
                 cover_batch_size: int = 5):
        """
        Initialize the orchestrator.

        Args:
            store: Entity store results are materialized into
            catalog: Catalog client for fallback searches and availability
            covers: Cover resolver
            sources: Metadata sources in priority order
            availability_batch_size: ISBNs per availability batch (one progress event each)
            cover_batch_size: ISBNs per cover batch
        """
        self.store = store
        self.catalog = catalog
        self.covers = covers
        self.sources = sources
        self.resolver = SeriesResolver(store)
        self.availability_batch_size = availability_batch_size
        self.cover_batch_size = cover_batch_size
        self.logger = logging.getLogger(self.__class__.__name__)

    # -- entry points ---------------------------------------------------

    def search(self, query: str, home_library: Optional[str] = None, debug: bool = False) -> SearchResult:
        """
        Search for a series or volume.

        Raises:
            ShelfError: The search failed for a reason other than a source being unavailable
        """
        for search_event in self.run(query, home_library=home_library, debug=debug):
            if search_event.type == events.COMPLETE:
                return search_event.data['result']
            if search_event.type == events.ERROR:
                raise ShelfError(search_event.data['message'])
        raise ShelfError(f"Search for '{query}' ended without a result")

    def run(self, query: str, home_library: Optional[str] = None,
            debug: bool = False) -> Iterator[SearchEvent]:
        """Run a search, yielding progress events."""
        tracker = DebugTracker()
        parsed = parse_query(query)
        yield event(events.STARTED, query=query, parsed_query=parsed.model_dump())
        try:
            result = yield from self._run(parsed, home_library, tracker)
        except ShelfError as e:
            self.logger.error(f"Search for '{query}' failed: {e}")
            yield event(events.ERROR, message=str(e))
            return
        except (KeyError, ValueError) as e:
            self.logger.exception(f"Search for '{query}' failed")
            yield event(events.ERROR, message=str(e))
            return

        if debug:
            result.debug = tracker.finish()
        self.logger.info(
            f"Search '{query}': {len(result.series)} series, {len(result.volumes)} volumes "
            f"in {tracker.elapsed_ms()}ms"
        )
        yield event(events.COMPLETE, result=result)

    # -- phases ---------------------------------------------------------

    def _lookup_metadata(self, parsed: ParsedQuery, tracker: DebugTracker) -> Iterator[SearchEvent]:
        """Ask each metadata source in turn; returns the first listing with volumes."""
        yield event(events.METADATA_SEARCHING, title=parsed.title)
        started = tracker.clock()
        listing: Optional[SeriesListing] = None
        for source in self.sources:
            tracker.log(f"Querying {source.label or source.name} for '{parsed.title}'")
            try:
                listing = source.lookup_series(parsed.title)
            except SourceUnavailable as e:
                label = source.label or source.name
                tracker.error(f"{label}: {e.reason}")
                if _is_rate_limit(e):
                    self.logger.warning(f"{label} rate limited, falling back")
                    tracker.issue(f"{label} rate limited (429) - using fallback sources")
                yield event(events.METADATA_ERROR, source=source.name, message=str(e))
                listing = None
                continue

            if listing is not None and listing.volumes:
                tracker.source(source.name)
                tracker.summarize(source.name, f"{listing.title}: {len(listing.volumes)} volumes")
                break
            tracker.summarize(source.name, 'no volumes found')
            listing = None
        tracker.info.timing.wikipedia = tracker.elapsed_ms(started)
        return listing

    def _catalog_fallback(self, parsed: ParsedQuery, tracker: DebugTracker) -> Iterator[SearchEvent]:
        """Synthesize series from a catalog title search."""
        yield event(events.CATALOG_SEARCHING, title=parsed.title)
        started = tracker.clock()
        tracker.source(f"{CATALOG_SOURCE}-fallback")
        try:
            records = self.catalog.search(parsed.title, SearchClass.TITLE, count=60).records
        except SourceUnavailable as e:
            tracker.error(f"{CATALOG_LABEL}: {e.reason}")
            records = []

        built = build_series_from_records(parsed.title, records)
        if records:
            yield event(events.CATALOG_FOUND, record_count=len(records))
            if not any(s.volumes for s in built):
                tracker.issue(f"{CATALOG_LABEL}: Found {len(records)} records but couldn't extract volumes")
        tracker.summarize(CATALOG_SOURCE, f"{len(records)} records, {len(built)} series")

        groups = [self._ingest_catalog_series(series) for series in built]
        tracker.info.timing.nc_cardinal = tracker.elapsed_ms(started)
        return groups

    def _ingest_catalog_series(self, catalog_series: CatalogSeries) -> ResultGroup:
        # Records are already in hand, so availability lookups are served from cache
        for isbn, record in catalog_series.records.items():
            self.catalog.prime(record, [isbn])
        ingested = self.resolver.ingest_catalog_series(
            catalog_series.title, catalog_series.volumes, catalog_series.media_type
        )
        return ResultGroup(ingested, CATALOG_SOURCE, subtitled=False)

    def _probe_other_media(self, parsed: ParsedQuery, listing: SeriesListing,
                           groups: List[ResultGroup], tracker: DebugTracker) -> List[ResultGroup]:
        """
        Look in the catalog for the other media type of a series a metadata source found.

        Skipped when the listing title already names a media type. A
        candidate is dropped when any of its ISBNs is already in the result,
        or when any result series has an equal or containing title.
        """
        if _marks_media_type(listing.title):
            tracker.log(f"Skipping alternate media check: '{listing.title}' names its media type")
            return []
        other = MediaType.MANGA if listing.media_type == MediaType.LIGHT_NOVEL else MediaType.LIGHT_NOVEL
        terms = [parsed.title] if 'manga' in listing.title.lower() else [f"{parsed.title} manga", parsed.title]

        known_isbns: Set[str] = set()
        for group in groups:
            known_isbns.update(v.isbn for _, v in group.ingested.volumes if v.isbn)

        added: List[ResultGroup] = []
        try:
            for term in terms:
                tracker.log(f"Checking catalog for alternate media types: '{term}'")
                records = self.catalog.search(term, SearchClass.TITLE, count=40).records
                for candidate in build_series_from_records(parsed.title, records):
                    if candidate.media_type != other or not candidate.volumes:
                        continue
                    overlap = [v.isbn for v in candidate.volumes if v.isbn in known_isbns]
                    if overlap:
                        tracker.log(f"Skipping '{candidate.title}': {len(overlap)} ISBNs already in results")
                        continue
                    if self._duplicates_title(candidate, groups + added):
                        tracker.log(f"Skipping '{candidate.title}': same title as an existing series")
                        continue
                    tracker.log(f"Found alternate media type: '{candidate.title}' ({len(candidate.volumes)} volumes)")
                    group = self._ingest_catalog_series(candidate)
                    added.append(group)
                    known_isbns.update(v.isbn for v in candidate.volumes if v.isbn)
        except SourceUnavailable as e:
            self.logger.warning(f"Alternate media probe failed: {e}")
            tracker.warning(f"Alternate media probe failed: {e.reason}")
        return added

    @staticmethod
    def _duplicates_title(candidate: CatalogSeries, groups: List[ResultGroup]) -> bool:
        title = comparable_title(candidate.title)
        for group in groups:
            existing = comparable_title(group.ingested.series.title)
            if title == existing or title in existing or existing in title:
                return True
        return False

    def _fetch_availability(self, isbns: List[str], home_library: Optional[str]
                            ) -> Iterator[SearchEvent]:
        total = len(isbns)
        yield event(events.AVAILABILITY_START, total=total)
        availability: Dict[str, AvailabilitySummary] = {}
        completed = 0
        for batch in chunked(isbns, self.availability_batch_size):
            try:
                availability.update(self.catalog.availability_by_isbns(batch, home_library))
            except SourceUnavailable as e:
                self.logger.warning(f"Availability batch failed: {e}")
                availability.update({isbn: not_in_catalog() for isbn in batch})
            completed += len(batch)
            yield event(events.AVAILABILITY_PROGRESS, completed=completed, total=total,
                        found_in_catalog=self._found_in_catalog(availability))
        yield event(events.AVAILABILITY_COMPLETE, found_in_catalog=self._found_in_catalog(availability),
                    total=total)
        return availability

    @staticmethod
    def _found_in_catalog(availability: Dict[str, AvailabilitySummary]) -> int:
        return sum(1 for summary in availability.values() if not summary.not_in_catalog)

    def _fetch_covers(self, isbns: List[str]) -> Iterator[SearchEvent]:
        total = len(isbns)
        yield event(events.COVERS_START, total=total)
        found: Dict[str, Optional[str]] = {}
        for completed, batch in self.covers.iter_covers(isbns, self.cover_batch_size):
            found.update(batch)
            yield event(events.COVERS_PROGRESS, source=COVER_SOURCE, completed=completed, total=total)
        google: Dict[str, str] = {}
        missing = sum(1 for isbn in isbns if not found.get(isbn))
        for completed, batch in self.covers.iter_google_books_covers(found, self.cover_batch_size):
            google.update(batch)
            yield event(events.COVERS_PROGRESS, source=GOOGLE_BOOKS_COVER_SOURCE,
                        completed=completed, total=missing)
        covers = {isbn: self.covers.cover_image(isbn, found.get(isbn), google.get(isbn)) for isbn in isbns}
        yield event(events.COVERS_COMPLETE, total=total,
                    found=sum(1 for isbn in isbns if found.get(isbn) or google.get(isbn)))
        return covers

    def _run(self, parsed: ParsedQuery, home_library: Optional[str],
             tracker: DebugTracker) -> Iterator[SearchEvent]:
        tracker.log(f"Parsed query: title='{parsed.title}', volume={parsed.volume_number}")

        listing = yield from self._lookup_metadata(parsed, tracker)
        groups: List[ResultGroup] = []
        if listing is not None:
            ingested = self.resolver.ingest_listing(listing)
            yield event(events.METADATA_FOUND, source=listing.source, series_title=listing.title,
                        volume_count=len(listing.volumes))
            groups.append(ResultGroup(ingested, listing.source))
            for related in listing.related:
                related_ingested = self.resolver.ingest_related(ingested.series, related)
                groups.append(ResultGroup(related_ingested, listing.source, related.relationship))
                tracker.log(f"Added related series '{related_ingested.series.title}' "
                            f"({related.relationship.value}, {len(related.volumes)} volumes)")
            groups.extend(self._probe_other_media(parsed, listing, groups, tracker))
        else:
            yield event(events.METADATA_NOT_FOUND, fallback=CATALOG_SOURCE)
            groups = yield from self._catalog_fallback(parsed, tracker)

        isbns: List[str] = []
        for group in groups:
            missing = 0
            for _, volume_listing in group.ingested.volumes:
                if volume_listing.isbn:
                    isbns.append(volume_listing.isbn)
                else:
                    missing += 1
            if missing:
                tracker.warning(f"{missing} volumes of '{group.ingested.series.title}' have no English ISBN")
        isbns = list(dict.fromkeys(isbns))
        for isbn in self.catalog.cached_isbns(isbns):
            tracker.cache_hit(f"{CATALOG_SOURCE}:{isbn}")

        availability = yield from self._fetch_availability(isbns, home_library)
        covers = yield from self._fetch_covers(isbns)

        result = SearchResult(query=parsed.original_query, parsed_query=parsed)
        for group in groups:
            series_result, volume_results = self._build_series_result(group, availability, covers)
            result.series.append(series_result)
            result.volumes.extend(volume_results)
        result.best_match = self._best_match(parsed, result)
        return result

    # -- result assembly ------------------------------------------------

    def _edition_data(self, volume: Volume) -> List[EditionData]:
        return [
            EditionData(
                isbn=edition.isbn,
                format=edition.format.value,
                language=edition.language.value,
                release_date=edition.release_date
            )
            for edition in self.store.get_volume_editions(volume.id)
        ]

    def _build_series_result(self, group: ResultGroup, availability: Dict[str, AvailabilitySummary],
                             covers: Dict[str, Optional[str]]):
        series = self.store.get_series(group.ingested.series.id) or group.ingested.series
        volume_infos: List[VolumeInfo] = []
        volume_results: List[VolumeResult] = []
        seen: Set[str] = set()
        for volume, listing in sorted(group.ingested.volumes, key=lambda pair: pair[0].volume_number):
            if volume.id in seen:
                continue
            seen.add(volume.id)
            isbn = listing.isbn
            info = VolumeInfo(
                id=volume.id,
                volume_number=volume.volume_number,
                title=listing.title,
                editions=self._edition_data(volume),
                primary_isbn=isbn,
                cover_image=covers.get(isbn) if isbn else None,
                availability=availability.get(isbn) if isbn else None
            )
            volume_infos.append(info)
            if group.subtitled:
                display_title = volume_title(series.title, volume.volume_number, listing.title)
            else:
                display_title = listing.title or volume_title(series.title, volume.volume_number)
            volume_results.append(VolumeResult(
                id=volume.id,
                title=display_title,
                volume_number=volume.volume_number,
                series_title=series.title,
                isbn=isbn,
                cover_image=info.cover_image,
                availability=info.availability,
                source=group.source
            ))

        cover = next((v.cover_image for v in volume_infos if v.primary_isbn and v.cover_image), None)
        series_result = SeriesResult(
            id=series.id,
            title=series.title,
            total_volumes=len(volume_infos),
            available_volumes=sum(1 for v in volume_infos if v.availability and v.availability.available),
            is_complete=series.status == SeriesStatus.COMPLETED,
            author=series.author,
            cover_image=cover,
            source=group.source,
            volumes=volume_infos,
            media_type=series.media_type,
            relationship=group.relationship
        )
        return series_result, volume_results

    @staticmethod
    def _best_match(parsed: ParsedQuery, result: SearchResult) -> Optional[BestMatch]:
        if parsed.volume_number is not None:
            volume = next((v for v in result.volumes if v.volume_number == parsed.volume_number), None)
            if volume is not None:
                return BestMatch(type='volume', volume=volume)
            return None
        if result.series:
            return BestMatch(type='series', series=result.series[0])
        return None

    # -- details --------------------------------------------------------

    def series_details(self, id_or_title: str, home_library: Optional[str] = None) -> Optional[SeriesDetails]:
        """
        Details of one series with availability per volume.

        A known entity id is served from the store; anything else is looked
        up by title through the metadata sources.

        Returns:
            The details, or None when neither the store nor a source has volumes
        """
        series = self.store.get_series(id_or_title)
        if series is not None:
            volumes = self.store.get_volumes_by_series(series.id)
            if volumes:
                return self._details(series, volumes, home_library)

        for source in self.sources:
            try:
                listing = source.lookup_series(id_or_title)
            except SourceUnavailable as e:
                self.logger.warning(f"Details lookup via {source.name} failed: {e}")
                continue
            if listing is not None and listing.volumes:
                ingested = self.resolver.ingest_listing(listing)
                return self._details(ingested.series, [v for v, _ in ingested.volumes], home_library)
        return None

    def _details(self, series: Series, volumes: List[Volume], home_library: Optional[str]) -> SeriesDetails:
        series = self.store.get_series(series.id) or series
        volumes = sorted({v.id: v for v in volumes}.values(), key=lambda v: v.volume_number)
        primary = self.resolver.primary_isbns(volumes)
        isbns = list(dict.fromkeys(isbn for isbn in primary.values() if isbn))

        try:
            availability = self.catalog.availability_by_isbns(isbns, home_library) if isbns else {}
        except SourceUnavailable as e:
            self.logger.warning(f"Availability lookup failed: {e}")
            availability = {}
        covers = self.covers.fetch_covers(isbns, self.cover_batch_size) if isbns else {}

        infos = []
        for volume in volumes:
            isbn = primary[volume.id]
            infos.append(VolumeInfo(
                id=volume.id,
                volume_number=volume.volume_number,
                title=volume.title,
                editions=self._edition_data(volume),
                primary_isbn=isbn,
                cover_image=covers.get(isbn) if isbn else None,
                availability=availability.get(isbn) if isbn else None
            ))

        related = [self.store.get_series(related_id) for related_id in series.related_series_ids]
        return SeriesDetails(
            id=series.id,
            title=series.title,
            description=series.description,
            total_volumes=len(infos),
            is_complete=series.status == SeriesStatus.COMPLETED,
            author=series.author,
            cover_image=next((v.cover_image for v in infos if v.cover_image), None),
            volumes=infos,
            available_count=sum(1 for v in infos if v.availability and v.availability.available),
            missing_volumes=[v.volume_number for v in infos if not (v.availability and v.availability.available)],
            related_series=[s.title for s in related if s is not None]
        )
