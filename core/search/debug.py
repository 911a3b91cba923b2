# core/search/debug.py
import logging
import time
from typing import Callable, Optional

from core.search.models import DebugInfo

logger = logging.getLogger(__name__)


class DebugTracker:
    """
    Collects debug information for one search.

    Log lines are stamped with the milliseconds elapsed since the tracker
    was created and mirrored to the module logger at DEBUG.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.started = clock()
        self.info = DebugInfo()

    def elapsed_ms(self, since: Optional[float] = None) -> int:
        return int((self.clock() - (self.started if since is None else since)) * 1000)

    def log(self, message: str) -> None:
        self.info.log.append(f"[{self.elapsed_ms()}ms] {message}")
        logger.debug(message)

    def source(self, name: str) -> None:
        if name not in self.info.sources:
            self.info.sources.append(name)

    def error(self, message: str) -> None:
        self.info.errors.append(message)
        self.log(f"ERROR: {message}")

    def warning(self, message: str) -> None:
        self.info.warnings.append(message)

    def issue(self, message: str) -> None:
        if message not in self.info.data_issues:
            self.info.data_issues.append(message)

    def cache_hit(self, key: str) -> None:
        self.info.cache_hits.append(key)

    def summarize(self, source: str, summary: str) -> None:
        self.info.source_summary[source] = summary

    def finish(self) -> DebugInfo:
        self.info.timing.total = self.elapsed_ms()
        return self.info
