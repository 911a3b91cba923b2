# core/errors.py
from typing import Optional


class ShelfError(Exception):
    """Base class for errors raised by the search engine."""
    pass


class SourceUnavailable(ShelfError):
    """A metadata, catalog or cover source could not be reached or answered badly."""

    def __init__(self, source: str, reason: str, status_code: Optional[int] = None):
        self.source = source
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{source}: {reason}")


class RateLimited(SourceUnavailable):
    """The source answered with HTTP 429 or an equivalent throttling signal."""

    def __init__(self, source: str, reason: str = "rate limited (429)"):
        super().__init__(source, reason, status_code=429)


class StoreCorruption(ShelfError):
    """The persisted entity snapshot is unreadable or structurally invalid."""
    pass
