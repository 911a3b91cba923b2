# core/models/entities.py

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List, Dict
from enum import Enum

SCHEMA_VERSION = 2

class MediaType(str, Enum):
    MANGA = "manga"
    LIGHT_NOVEL = "light_novel"
    ARTBOOK = "artbook"
    GUIDEBOOK = "guidebook"
    UNKNOWN = "unknown"

class SeriesStatus(str, Enum):
    ONGOING = "ongoing"
    COMPLETED = "completed"
    HIATUS = "hiatus"
    UNKNOWN = "unknown"

class SeriesRelationship(str, Enum):
    ADAPTATION = "adaptation"       # e.g. manga adaptation of a light novel
    SPINOFF = "spinoff"
    SIDE_STORY = "side_story"
    ANTHOLOGY = "anthology"
    SEQUEL = "sequel"

class EditionFormat(str, Enum):
    PHYSICAL = "physical"
    DIGITAL = "digital"

class Language(str, Enum):
    EN = "en"
    JA = "ja"

class ExternalIds(BaseModel):
    wikipedia_page_id: Optional[int] = None
    mal_id: Optional[int] = None
    anilist_id: Optional[int] = None

class Series(BaseModel):
    """A series of volumes, the unit a search result groups around"""
    id: str
    title: str
    media_type: MediaType = MediaType.UNKNOWN
    external_ids: ExternalIds = Field(default_factory=ExternalIds)
    volume_ids: List[str] = Field(default_factory=list)  # ordered by volume number
    author: Optional[str] = None
    artist: Optional[str] = None
    status: SeriesStatus = SeriesStatus.UNKNOWN
    related_series_ids: List[str] = Field(default_factory=list)
    parent_series_id: Optional[str] = None
    relationship: Optional[SeriesRelationship] = None
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class Volume(BaseModel):
    """The creative work; printed and digital products are Editions"""
    id: str
    series_id: str
    volume_number: int
    title: Optional[str] = None
    edition_ids: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

class Edition(BaseModel):
    """One published product, identified by its ISBN"""
    id: str
    isbn: str
    format: EditionFormat = EditionFormat.PHYSICAL
    language: Language = Language.EN
    volume_ids: List[str] = Field(default_factory=list)  # more than one for an omnibus
    release_date: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class EditionInput(BaseModel):
    """Natural-key data for find-or-create of an edition"""
    isbn: str
    format: EditionFormat = EditionFormat.PHYSICAL
    language: Language = Language.EN
    release_date: Optional[str] = None

class StoreSnapshot(BaseModel):
    """Serialized form of the whole entity store"""
    model_config = ConfigDict(extra='ignore')

    schema_version: int
    series: Dict[str, Series] = Field(default_factory=dict)
    volumes: Dict[str, Volume] = Field(default_factory=dict)
    editions: Dict[str, Edition] = Field(default_factory=dict)

class StoreStats(BaseModel):
    series_count: int
    volume_count: int
    edition_count: int
