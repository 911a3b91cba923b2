# core/catalog/models.py

from pydantic import BaseModel, Field
from typing import Optional, List
from enum import Enum

class StatusCategory(str, Enum):
    AVAILABLE = "available"         # On shelf, ready to borrow
    CHECKED_OUT = "checked_out"
    IN_TRANSIT = "in_transit"       # Moving between libraries
    ON_ORDER = "on_order"           # Ordered, not yet received
    ON_HOLD = "on_hold"             # Reserved for a patron
    UNAVAILABLE = "unavailable"     # Lost, missing, repair, withdrawn...

class SearchClass(str, Enum):
    KEYWORD = "keyword"
    TITLE = "title"
    AUTHOR = "author"
    SUBJECT = "subject"
    SERIES = "series"

class Holding(BaseModel):
    """One copy of a record at a specific library"""
    library_code: str = ""
    library_name: str = ""
    location: str = ""
    call_number: str = ""
    status: str = ""
    status_category: StatusCategory = StatusCategory.UNAVAILABLE
    barcode: Optional[str] = None
    available: bool = False

class CatalogRecord(BaseModel):
    """A bibliographic record with its copies"""
    id: str
    title: str
    authors: List[str] = Field(default_factory=list)
    isbns: List[str] = Field(default_factory=list)
    subjects: List[str] = Field(default_factory=list)
    holdings: List[Holding] = Field(default_factory=list)
    summary: Optional[str] = None
    updated_date: Optional[str] = None
    # Populated from the call number or the MARC record
    volume_number: Optional[str] = None
    volume_title: Optional[str] = None
    series_name: Optional[str] = None

    def primary_isbn(self) -> Optional[str]:
        """First ISBN-13 with a 978 prefix, else the first ISBN listed"""
        for isbn in self.isbns:
            if isbn.startswith('978'):
                return isbn
        return self.isbns[0] if self.isbns else None

class SearchPage(BaseModel):
    total_results: int = 0
    start_index: int = 1
    items_per_page: int = 0
    records: List[CatalogRecord] = Field(default_factory=list)
    next_page_url: Optional[str] = None

class MarcVolumeInfo(BaseModel):
    """Volume hints mined from MARC 245 and 490"""
    volume_number: Optional[str] = None
    volume_title: Optional[str] = None
    series_name: Optional[str] = None
    full_title: Optional[str] = None
