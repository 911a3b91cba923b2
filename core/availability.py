# core/availability.py
from typing import List, Optional

from pydantic import BaseModel, Field

from core.catalog.libraries import catalog_url
from core.catalog.models import CatalogRecord, StatusCategory

# Catalog status vocabulary, checked in order. Each rule is
# (category, exact matches, substrings).
STATUS_RULES = [
    (StatusCategory.AVAILABLE, ["available", "reshelving"], []),
    (StatusCategory.CHECKED_OUT, ["checked out", "overdue"], ["checked out"]),
    (StatusCategory.IN_TRANSIT, ["in transit", "in process"], ["transit"]),
    (StatusCategory.ON_ORDER, ["on order", "cataloging", "acquisitions"], ["order"]),
    (StatusCategory.ON_HOLD, ["on holds shelf"], ["hold"]),
]


class AvailabilitySummary(BaseModel):
    available: bool = False
    not_in_catalog: bool = False
    total_copies: int = 0
    available_copies: int = 0
    checked_out_copies: int = 0
    in_transit_copies: int = 0
    on_order_copies: int = 0
    on_hold_copies: int = 0
    unavailable_copies: int = 0
    libraries: List[str] = Field(default_factory=list)   # libraries with a copy on the shelf
    # Only set when a home library is given
    local_copies: Optional[int] = None
    local_available: Optional[int] = None
    remote_copies: Optional[int] = None
    remote_available: Optional[int] = None
    catalog_url: Optional[str] = None


def categorize_status(status: str) -> StatusCategory:
    """
    Map a raw catalog status string to a status category.

    Anything the table does not recognize (lost, missing, repair,
    withdrawn...) counts as unavailable.
    """
    lower = status.lower().strip()
    for category, exact, contains in STATUS_RULES:
        if lower in exact or any(fragment in lower for fragment in contains):
            return category
    return StatusCategory.UNAVAILABLE


def summarize(record: CatalogRecord, home_library: Optional[str] = None) -> AvailabilitySummary:
    """
    Count a record's copies per status category.

    Args:
        record: Catalog record with holdings
        home_library: Library code; when given, copies are split into local
            and remote by case-insensitive code match

    Returns:
        AvailabilitySummary whose category counts add up to total_copies
    """
    counts = {category: 0 for category in StatusCategory}
    libraries: List[str] = []
    local_copies = local_available = remote_copies = remote_available = 0

    for holding in record.holdings:
        counts[holding.status_category] += 1
        is_available = holding.status_category == StatusCategory.AVAILABLE
        if is_available and holding.library_name not in libraries:
            libraries.append(holding.library_name)

        if home_library:
            if holding.library_code.upper() == home_library.upper():
                local_copies += 1
                local_available += int(is_available)
            else:
                remote_copies += 1
                remote_available += int(is_available)

    return AvailabilitySummary(
        available=counts[StatusCategory.AVAILABLE] > 0,
        total_copies=len(record.holdings),
        available_copies=counts[StatusCategory.AVAILABLE],
        checked_out_copies=counts[StatusCategory.CHECKED_OUT],
        in_transit_copies=counts[StatusCategory.IN_TRANSIT],
        on_order_copies=counts[StatusCategory.ON_ORDER],
        on_hold_copies=counts[StatusCategory.ON_HOLD],
        unavailable_copies=counts[StatusCategory.UNAVAILABLE],
        libraries=libraries,
        local_copies=local_copies if home_library else None,
        local_available=local_available if home_library else None,
        remote_copies=remote_copies if home_library else None,
        remote_available=remote_available if home_library else None,
        catalog_url=catalog_url(record.id)
    )


def not_in_catalog() -> AvailabilitySummary:
    """Summary for an ISBN the catalog has no record of."""
    return AvailabilitySummary(not_in_catalog=True)
