# core/search/events.py
from typing import Any, Dict

from pydantic import BaseModel, Field

STARTED = 'started'
METADATA_SEARCHING = 'wikipedia:searching'
METADATA_FOUND = 'wikipedia:found'
METADATA_NOT_FOUND = 'wikipedia:not-found'
METADATA_ERROR = 'wikipedia:error'
CATALOG_SEARCHING = 'nc-cardinal:searching'
CATALOG_FOUND = 'nc-cardinal:found'
AVAILABILITY_START = 'availability:start'
AVAILABILITY_PROGRESS = 'availability:progress'
AVAILABILITY_COMPLETE = 'availability:complete'
COVERS_START = 'covers:start'
COVERS_PROGRESS = 'covers:progress'
COVERS_COMPLETE = 'covers:complete'
COMPLETE = 'complete'
ERROR = 'error'


class SearchEvent(BaseModel):
    """One step of a search; ``complete`` carries the SearchResult under ``result``"""
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


def event(event_type: str, **data) -> SearchEvent:
    return SearchEvent(type=event_type, data=data)
