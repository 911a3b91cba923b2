# core/entities/store.py
import json
import logging
import os
import secrets
import tempfile
import threading
from datetime import datetime, UTC
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from core.errors import StoreCorruption
from core.models.entities import (
    SCHEMA_VERSION, Edition, EditionInput, ExternalIds, MediaType, Series,
    SeriesRelationship, SeriesStatus, StoreSnapshot, StoreStats, Volume
)
from core.utils.text import normalize_title, strip_isbn

_ID_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_-'


def generate_id(prefix: str) -> str:
    """Mint an opaque entity id such as ``s_V1StGXR8_Z``."""
    return f"{prefix}_" + ''.join(secrets.choice(_ID_ALPHABET) for _ in range(10))


def detect_media_type(title: str, is_manga: bool = False, is_light_novel: bool = False) -> MediaType:
    """
    Guess a series media type from its title and optional hints.

    Falls back to manga, which is what almost every searched series is.
    """
    lower = title.lower()
    if is_light_novel or 'light novel' in lower:
        return MediaType.LIGHT_NOVEL
    if is_manga or 'manga' in lower:
        return MediaType.MANGA
    if 'artbook' in lower or 'art book' in lower:
        return MediaType.ARTBOOK
    if 'guidebook' in lower or 'guide book' in lower:
        return MediaType.GUIDEBOOK
    return MediaType.MANGA


def _compatible(requested: Optional[MediaType], existing: MediaType) -> bool:
    if requested is None:
        return True
    return (requested == existing
            or requested == MediaType.UNKNOWN
            or existing == MediaType.UNKNOWN)


class EntityStore:
    """
    Durable series/volume/edition graph kept in memory and persisted as one
    JSON snapshot.

    The snapshot is loaded on first access and rewritten after every
    mutating call. All mutations are serialized through a re-entrant lock.
    A snapshot with another schema version, or one that fails validation,
    is replaced by an empty store and a warning is logged.
    """

    def __init__(self, path: Union[str, Path], clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the store.

        Args:
            path: Location of the JSON snapshot
            clock: Returns the current time (defaults to ``datetime.now(UTC)``)
        """
        self.path = Path(path)
        self.clock = clock or (lambda: datetime.now(UTC))
        self.logger = logging.getLogger(self.__class__.__name__)
        self._lock = threading.RLock()
        self._open = False
        self._series: Dict[str, Series] = {}
        self._volumes: Dict[str, Volume] = {}
        self._editions: Dict[str, Edition] = {}
        self._isbn_index: Dict[str, str] = {}
        self._wikipedia_index: Dict[int, str] = {}
        self._title_index: Dict[str, List[str]] = {}

    # -- lifecycle ------------------------------------------------------

    def open(self) -> 'EntityStore':
        with self._lock:
            if self._open:
                return self
            try:
                snapshot = self._read_snapshot()
            except StoreCorruption as e:
                self.logger.warning(f"Entity store at {self.path} reset to empty: {e}")
                snapshot = StoreSnapshot(schema_version=SCHEMA_VERSION)
                self._write_snapshot(snapshot)
            self._series = dict(snapshot.series)
            self._volumes = dict(snapshot.volumes)
            self._editions = dict(snapshot.editions)
            self._rebuild_indices()
            self._open = True
            self.logger.info(
                f"Entity store loaded: {len(self._series)} series, "
                f"{len(self._volumes)} volumes, {len(self._editions)} editions"
            )
            return self

    def close(self) -> None:
        with self._lock:
            if not self._open:
                return
            self._save()
            self._open = False
            self._series, self._volumes, self._editions = {}, {}, {}
            self._rebuild_indices()

    def __enter__(self) -> 'EntityStore':
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if not self._open:
            self.open()

    def _read_snapshot(self) -> StoreSnapshot:
        if not self.path.exists():
            return StoreSnapshot(schema_version=SCHEMA_VERSION)
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            raise StoreCorruption(f"unreadable snapshot: {e}") from e
        if not isinstance(data, dict):
            raise StoreCorruption("snapshot is not an object")

        version = data.get('schema_version')
        if version != SCHEMA_VERSION:
            raise StoreCorruption(f"schema version {version!r}, expected {SCHEMA_VERSION}")
        try:
            return StoreSnapshot.model_validate(data)
        except ValidationError as e:
            raise StoreCorruption(f"invalid snapshot: {e.error_count()} validation errors") from e

    def _write_snapshot(self, snapshot: StoreSnapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = snapshot.model_dump_json(indent=2)
        temp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                'w', encoding='utf-8', dir=self.path.parent, delete=False, suffix='.tmp'
            ) as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
                temp_path = Path(handle.name)
            os.replace(temp_path, self.path)
        except Exception:
            if temp_path is not None and temp_path.exists():
                temp_path.unlink()
            raise

    def _save(self) -> None:
        self._write_snapshot(StoreSnapshot(
            schema_version=SCHEMA_VERSION,
            series=self._series,
            volumes=self._volumes,
            editions=self._editions
        ))

    def _rebuild_indices(self) -> None:
        self._isbn_index = {e.isbn: e.id for e in self._editions.values()}
        self._wikipedia_index = {}
        self._title_index = {}
        for series in self._series.values():
            self._index_series(series)

    def _index_series(self, series: Series) -> None:
        if series.external_ids.wikipedia_page_id is not None:
            self._wikipedia_index[series.external_ids.wikipedia_page_id] = series.id
        ids = self._title_index.setdefault(normalize_title(series.title), [])
        if series.id not in ids:
            ids.append(series.id)

    # -- lookups --------------------------------------------------------

    def get_series(self, series_id: str) -> Optional[Series]:
        with self._lock:
            self._ensure_open()
            return self._series.get(series_id)

    def get_volume(self, volume_id: str) -> Optional[Volume]:
        with self._lock:
            self._ensure_open()
            return self._volumes.get(volume_id)

    def get_edition(self, edition_id: str) -> Optional[Edition]:
        with self._lock:
            self._ensure_open()
            return self._editions.get(edition_id)

    def get_edition_by_isbn(self, isbn: str) -> Optional[Edition]:
        with self._lock:
            self._ensure_open()
            edition_id = self._isbn_index.get(strip_isbn(isbn))
            return self._editions.get(edition_id) if edition_id else None

    def get_series_by_wikipedia_id(self, page_id: int) -> Optional[Series]:
        with self._lock:
            self._ensure_open()
            series_id = self._wikipedia_index.get(page_id)
            return self._series.get(series_id) if series_id else None

    def get_series_by_title(self, title: str, media_type: Optional[MediaType] = None) -> Optional[Series]:
        """
        Look a series up by normalized title.

        Args:
            title: Title in any casing, with or without a media type suffix
            media_type: Only return a series whose media type matches (unknown matches anything)

        Returns:
            The first compatible series, or None
        """
        with self._lock:
            self._ensure_open()
            for series_id in self._title_index.get(normalize_title(title), []):
                series = self._series.get(series_id)
                if series and _compatible(media_type, series.media_type):
                    return series
            return None

    def get_volume_by_number(self, series_id: str, volume_number: int) -> Optional[Volume]:
        with self._lock:
            self._ensure_open()
            series = self._series.get(series_id)
            if not series:
                return None
            for volume_id in series.volume_ids:
                volume = self._volumes.get(volume_id)
                if volume and volume.volume_number == volume_number:
                    return volume
            return None

    def get_volumes_by_series(self, series_id: str) -> List[Volume]:
        with self._lock:
            self._ensure_open()
            series = self._series.get(series_id)
            if not series:
                return []
            volumes = [self._volumes[v] for v in series.volume_ids if v in self._volumes]
            return sorted(volumes, key=lambda v: v.volume_number)

    def get_volume_editions(self, volume_id: str) -> List[Edition]:
        with self._lock:
            self._ensure_open()
            volume = self._volumes.get(volume_id)
            if not volume:
                return []
            return [self._editions[e] for e in volume.edition_ids if e in self._editions]

    def get_store_stats(self) -> StoreStats:
        with self._lock:
            self._ensure_open()
            return StoreStats(
                series_count=len(self._series),
                volume_count=len(self._volumes),
                edition_count=len(self._editions)
            )

    # -- find-or-create -------------------------------------------------

    def _backfill(self, series: Series, **fields) -> bool:
        changed = False
        for name, value in fields.items():
            current = getattr(series, name)
            if value is not None and value != current and current in (None, SeriesStatus.UNKNOWN):
                setattr(series, name, value)
                changed = True
        return changed

    def _create_series(self, title: str, media_type: MediaType, wikipedia_page_id: Optional[int] = None,
                       **fields) -> Series:
        now = self.clock()
        series = Series(
            id=generate_id('s'),
            title=title,
            media_type=media_type,
            external_ids=ExternalIds(wikipedia_page_id=wikipedia_page_id),
            created_at=now,
            updated_at=now,
            **{k: v for k, v in fields.items() if v is not None}
        )
        self._series[series.id] = series
        self._index_series(series)
        self.logger.debug(f"Created series {series.id} '{series.title}' ({series.media_type.value})")
        return series

    def find_or_create_series_by_wikipedia(self, page_id: int, title: str,
                                           media_type: MediaType = MediaType.UNKNOWN,
                                           author: Optional[str] = None,
                                           status: Optional[SeriesStatus] = None,
                                           description: Optional[str] = None) -> Series:
        """
        Find a series by Wikipedia page id, then by title, or create it.

        A title match that has no page id yet gets the page id attached.
        """
        with self._lock:
            self._ensure_open()
            series_id = self._wikipedia_index.get(page_id)
            series = self._series.get(series_id) if series_id else None
            if series is None:
                series = self.get_series_by_title(title, media_type)
                if series is not None and series.external_ids.wikipedia_page_id is None:
                    series.external_ids.wikipedia_page_id = page_id
                    self._wikipedia_index[page_id] = series.id
                    series.updated_at = self.clock()
                    self._save()
            if series is not None:
                if self._backfill(series, author=author, status=status, description=description):
                    series.updated_at = self.clock()
                    self._save()
                return series

            series = self._create_series(title, media_type, wikipedia_page_id=page_id,
                                         author=author, status=status, description=description)
            self._save()
            return series

    def find_or_create_series_by_title(self, title: str,
                                       media_type: MediaType = MediaType.UNKNOWN,
                                       author: Optional[str] = None,
                                       status: Optional[SeriesStatus] = None,
                                       parent_series_id: Optional[str] = None,
                                       relationship: Optional[SeriesRelationship] = None) -> Series:
        """Find a series with a compatible media type by normalized title, or create it."""
        with self._lock:
            self._ensure_open()
            series = self.get_series_by_title(title, media_type)
            if series is not None:
                if self._backfill(series, author=author, status=status,
                                  parent_series_id=parent_series_id, relationship=relationship):
                    series.updated_at = self.clock()
                    self._save()
                return series

            series = self._create_series(title, media_type, author=author, status=status,
                                         parent_series_id=parent_series_id, relationship=relationship)
            self._save()
            return series

    def _find_or_create_volume(self, series_id: str, volume_number: int,
                               title: Optional[str]) -> Tuple[Volume, bool]:
        series = self._series.get(series_id)
        if series is None:
            raise KeyError(f"Series not found: {series_id}")

        existing = self.get_volume_by_number(series_id, volume_number)
        if existing is not None:
            if title and not existing.title:
                existing.title = title
                existing.updated_at = self.clock()
                return existing, True
            return existing, False

        now = self.clock()
        volume = Volume(
            id=generate_id('v'),
            series_id=series_id,
            volume_number=volume_number,
            title=title,
            created_at=now,
            updated_at=now
        )
        self._volumes[volume.id] = volume
        series.volume_ids.append(volume.id)
        series.volume_ids.sort(key=lambda v: self._volumes[v].volume_number)
        series.updated_at = now
        return volume, True

    def find_or_create_volume(self, series_id: str, volume_number: int,
                              title: Optional[str] = None) -> Volume:
        """
        Find the volume with this number in a series, or create and append it.

        Raises:
            KeyError: The series does not exist
        """
        with self._lock:
            self._ensure_open()
            volume, changed = self._find_or_create_volume(series_id, volume_number, title)
            if changed:
                self._save()
            return volume

    def find_or_create_volumes(self, series_id: str,
                               items: List[Tuple[int, Optional[str]]]) -> List[Volume]:
        """Batch variant of ``find_or_create_volume`` taking (number, title) pairs; saves once."""
        with self._lock:
            self._ensure_open()
            volumes = []
            changed = False
            for volume_number, title in items:
                volume, volume_changed = self._find_or_create_volume(series_id, volume_number, title)
                volumes.append(volume)
                changed = changed or volume_changed
            if changed:
                self._save()
            return volumes

    def _link(self, volume: Volume, edition: Edition) -> bool:
        changed = False
        now = self.clock()
        if edition.id not in volume.edition_ids:
            volume.edition_ids.append(edition.id)
            volume.updated_at = now
            changed = True
        if volume.id not in edition.volume_ids:
            edition.volume_ids.append(volume.id)
            edition.updated_at = now
            changed = True
        return changed

    def _find_or_create_edition(self, data: EditionInput, volume_ids: List[str]) -> Tuple[Edition, bool]:
        isbn = strip_isbn(data.isbn)
        changed = False
        edition_id = self._isbn_index.get(isbn)
        edition = self._editions.get(edition_id) if edition_id else None
        if edition is None:
            now = self.clock()
            edition = Edition(
                id=generate_id('e'),
                isbn=isbn,
                format=data.format,
                language=data.language,
                release_date=data.release_date,
                created_at=now,
                updated_at=now
            )
            self._editions[edition.id] = edition
            self._isbn_index[isbn] = edition.id
            changed = True
        elif data.release_date and not edition.release_date:
            edition.release_date = data.release_date
            edition.updated_at = self.clock()
            changed = True

        for volume_id in volume_ids:
            volume = self._volumes.get(volume_id)
            if volume is None:
                raise KeyError(f"Volume not found: {volume_id}")
            changed = self._link(volume, edition) or changed
        return edition, changed

    def find_or_create_edition(self, data: EditionInput, volume_ids: Optional[List[str]] = None) -> Edition:
        """
        Find an edition by ISBN or create it, linking it to the given volumes.

        Re-ingesting a known ISBN only appends missing volume links.
        """
        with self._lock:
            self._ensure_open()
            edition, changed = self._find_or_create_edition(data, volume_ids or [])
            if changed:
                self._save()
            return edition

    def find_or_create_editions(self, items: List[Tuple[EditionInput, List[str]]]) -> List[Edition]:
        """
        Batch variant of ``find_or_create_edition``.

        Inputs sharing an ISBN are merged first so an omnibus listed under
        several volumes becomes one edition linked to all of them. The
        snapshot is written once for the whole batch.
        """
        merged: Dict[str, Tuple[EditionInput, List[str]]] = {}
        for data, volume_ids in items:
            isbn = strip_isbn(data.isbn)
            if isbn in merged:
                for volume_id in volume_ids:
                    if volume_id not in merged[isbn][1]:
                        merged[isbn][1].append(volume_id)
            else:
                merged[isbn] = (data, list(volume_ids))

        with self._lock:
            self._ensure_open()
            editions = []
            changed = False
            for data, volume_ids in merged.values():
                edition, edition_changed = self._find_or_create_edition(data, volume_ids)
                editions.append(edition)
                changed = changed or edition_changed
            if changed:
                self._save()
            return editions

    def link_volume_to_edition(self, volume_id: str, edition_id: str) -> None:
        """Link a volume and an edition in both directions."""
        with self._lock:
            self._ensure_open()
            volume = self._volumes.get(volume_id)
            edition = self._editions.get(edition_id)
            if volume is None or edition is None:
                raise KeyError(f"Cannot link {volume_id} to {edition_id}: not found")
            if self._link(volume, edition):
                self._save()

    def link_related_series(self, parent_id: str, related_id: str) -> None:
        with self._lock:
            self._ensure_open()
            parent = self._series.get(parent_id)
            if parent is None:
                raise KeyError(f"Parent series not found: {parent_id}")
            if related_id not in parent.related_series_ids:
                parent.related_series_ids.append(related_id)
                parent.updated_at = self.clock()
                self._save()
