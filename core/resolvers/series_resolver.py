# core/resolvers/series_resolver.py
import logging
import re
from typing import Dict, List, NamedTuple, Optional, Tuple

from core.entities.store import EntityStore, detect_media_type
from core.models.entities import (
    EditionFormat, EditionInput, Language, MediaType, Series, SeriesStatus, Volume
)
from core.sources.base import RelatedListing, SeriesListing, VolumeListing
from core.utils.text import format_release_date


class IngestedSeries(NamedTuple):
    series: Series
    volumes: List[Tuple[Volume, VolumeListing]]   # in listing order


def related_series_title(parent_title: str, related: RelatedListing) -> str:
    """
    Title for a related series.

    Titles that do not already mention the parent are prefixed with it, and
    light novels are marked as such.
    """
    base = re.split(r'[:(]', parent_title.lower())[0].strip()
    title = related.title
    if base and base not in title.lower():
        title = f"{parent_title}: {title}"
    if related.media_type == MediaType.LIGHT_NOVEL and 'light novel' not in title.lower():
        title = f"{title} (Light Novel)"
    return title


def edition_inputs(listing: VolumeListing) -> List[EditionInput]:
    """Physical editions known for a listed volume: English, then Japanese."""
    inputs = []
    if listing.isbn:
        inputs.append(EditionInput(
            isbn=listing.isbn,
            format=EditionFormat.PHYSICAL,
            language=Language.EN,
            release_date=format_release_date(listing.release_date)
        ))
    if listing.japanese_isbn and listing.japanese_isbn != listing.isbn:
        inputs.append(EditionInput(
            isbn=listing.japanese_isbn,
            format=EditionFormat.PHYSICAL,
            language=Language.JA,
            release_date=format_release_date(listing.japanese_release_date)
        ))
    return inputs


class SeriesResolver:
    """Materializes source listings into the entity store."""

    def __init__(self, store: EntityStore):
        self.store = store
        self.logger = logging.getLogger(self.__class__.__name__)

    def _ingest_volumes(self, series: Series, volumes: List[VolumeListing]) -> IngestedSeries:
        # Every listed volume is created, with or without an ISBN
        created = self.store.find_or_create_volumes(
            series.id, [(v.number, v.title) for v in volumes]
        )
        pairs = list(zip(created, volumes))

        editions = []
        for volume, listing in pairs:
            for data in edition_inputs(listing):
                editions.append((data, [volume.id]))
        if editions:
            self.store.find_or_create_editions(editions)

        self.logger.debug(f"Ingested {len(pairs)} volumes and {len(editions)} editions for '{series.title}'")
        return IngestedSeries(self.store.get_series(series.id) or series, pairs)

    def ingest_listing(self, listing: SeriesListing) -> IngestedSeries:
        """
        Store a series reported by a metadata source.

        Series with a Wikipedia page id are keyed on it; others on their
        normalized title.
        """
        status = SeriesStatus.COMPLETED if listing.is_complete else SeriesStatus.ONGOING
        if listing.page_id is not None:
            series = self.store.find_or_create_series_by_wikipedia(
                listing.page_id,
                listing.title,
                media_type=listing.media_type,
                author=listing.author,
                status=status
            )
        else:
            series = self.store.find_or_create_series_by_title(
                listing.title,
                media_type=listing.media_type,
                author=listing.author,
                status=status
            )
        return self._ingest_volumes(series, listing.volumes)

    def ingest_related(self, parent: Series, related: RelatedListing) -> IngestedSeries:
        """Store a related series and link it from its parent."""
        title = related_series_title(parent.title, related)
        media_type = related.media_type
        if media_type == MediaType.UNKNOWN:
            media_type = detect_media_type(title)
        series = self.store.find_or_create_series_by_title(
            title,
            media_type=media_type,
            parent_series_id=parent.id,
            relationship=related.relationship
        )
        self.store.link_related_series(parent.id, series.id)
        return self._ingest_volumes(series, related.volumes)

    def ingest_catalog_series(self, title: str, volumes: List[VolumeListing],
                              media_type: MediaType = MediaType.UNKNOWN) -> IngestedSeries:
        """Store a series synthesized from catalog records."""
        series = self.store.find_or_create_series_by_title(title, media_type=media_type)
        return self._ingest_volumes(series, volumes)

    def primary_isbns(self, volumes: List[Volume]) -> Dict[str, Optional[str]]:
        """English physical ISBN per volume id, None for volumes without one."""
        result: Dict[str, Optional[str]] = {}
        for volume in volumes:
            result[volume.id] = None
            for edition in self.store.get_volume_editions(volume.id):
                if edition.language == Language.EN and edition.format == EditionFormat.PHYSICAL:
                    result[volume.id] = edition.isbn
                    break
        return result
