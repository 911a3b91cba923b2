# core/sources/base.py

from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel, Field

from core.models.entities import MediaType, SeriesRelationship


class VolumeListing(BaseModel):
    """One volume as reported by a metadata source"""
    number: int
    title: Optional[str] = None
    isbn: Optional[str] = None               # English edition
    japanese_isbn: Optional[str] = None
    release_date: Optional[str] = None       # English release
    japanese_release_date: Optional[str] = None
    media_type: Optional[MediaType] = None   # pages that list manga and light novels together


class RelatedListing(BaseModel):
    """A spin-off, adaptation or side story reported next to the main series"""
    title: str
    relationship: SeriesRelationship
    media_type: MediaType = MediaType.UNKNOWN
    volumes: List[VolumeListing] = Field(default_factory=list)


class SeriesListing(BaseModel):
    """Series and volume list returned by a metadata source"""
    title: str
    source: str
    page_id: Optional[int] = None
    author: Optional[str] = None
    is_complete: bool = False
    media_type: MediaType = MediaType.MANGA
    volumes: List[VolumeListing] = Field(default_factory=list)
    related: List[RelatedListing] = Field(default_factory=list)

    @property
    def isbns(self) -> List[str]:
        """English ISBNs in volume order"""
        return [v.isbn for v in self.volumes if v.isbn]


class MetadataSource(ABC):
    """
    A source of canonical series/volume lists.

    Sources are configured as an ordered list; the first one returning a
    listing with volumes wins. Implementations return None when nothing
    matches and raise SourceUnavailable (or RateLimited) on transport
    failures.
    """

    name: str = ''
    label: str = ''   # human readable, used in debug messages

    @abstractmethod
    def lookup_series(self, title: str) -> Optional[SeriesListing]:
        """Find the series for a title."""
        pass
