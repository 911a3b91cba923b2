# core/search/models.py

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Literal

from core.availability import AvailabilitySummary
from core.models.entities import MediaType, SeriesRelationship
from core.search.query import ParsedQuery

class EditionData(BaseModel):
    isbn: str
    format: str
    language: str
    release_date: Optional[str] = None

class VolumeInfo(BaseModel):
    """A volume inside a series result"""
    id: str
    volume_number: int
    title: Optional[str] = None
    editions: List[EditionData] = Field(default_factory=list)
    primary_isbn: Optional[str] = None
    cover_image: Optional[str] = None
    availability: Optional[AvailabilitySummary] = None

class SeriesResult(BaseModel):
    id: str
    title: str
    total_volumes: int
    available_volumes: int
    is_complete: bool = False
    author: Optional[str] = None
    cover_image: Optional[str] = None
    source: str
    volumes: List[VolumeInfo] = Field(default_factory=list)
    media_type: Optional[MediaType] = None
    relationship: Optional[SeriesRelationship] = None

class VolumeResult(BaseModel):
    """A flat volume entry, used for volume-level matches"""
    id: str
    title: str
    volume_number: Optional[int] = None
    series_title: Optional[str] = None
    isbn: Optional[str] = None
    cover_image: Optional[str] = None
    availability: Optional[AvailabilitySummary] = None
    source: str

class BestMatch(BaseModel):
    type: Literal['series', 'volume']
    series: Optional[SeriesResult] = None
    volume: Optional[VolumeResult] = None

class DebugTiming(BaseModel):
    total: int = 0
    wikipedia: Optional[int] = None
    nc_cardinal: Optional[int] = None

class DebugInfo(BaseModel):
    """Diagnostics returned only for debug searches"""
    sources: List[str] = Field(default_factory=list)
    timing: DebugTiming = Field(default_factory=DebugTiming)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    cache_hits: List[str] = Field(default_factory=list)
    log: List[str] = Field(default_factory=list)           # "[12ms] message"
    data_issues: List[str] = Field(default_factory=list)
    source_summary: Dict[str, str] = Field(default_factory=dict)

class SearchResult(BaseModel):
    query: str
    parsed_query: Optional[ParsedQuery] = None
    series: List[SeriesResult] = Field(default_factory=list)
    volumes: List[VolumeResult] = Field(default_factory=list)
    best_match: Optional[BestMatch] = None
    debug: Optional[DebugInfo] = None

class SeriesDetails(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    total_volumes: int
    is_complete: bool = False
    author: Optional[str] = None
    cover_image: Optional[str] = None
    volumes: List[VolumeInfo] = Field(default_factory=list)
    available_count: int = 0
    missing_volumes: List[int] = Field(default_factory=list)
    related_series: List[str] = Field(default_factory=list)
