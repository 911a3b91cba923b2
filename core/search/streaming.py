# core/search/streaming.py
import logging
import threading
from typing import Callable, Optional

from core.search import events
from core.search.events import SearchEvent
from core.search.models import SearchResult
from core.search.orchestrator import SearchOrchestrator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[SearchEvent], Optional[bool]]


def streaming_search(orchestrator: SearchOrchestrator, query: str, on_progress: ProgressCallback,
                     home_library: Optional[str] = None, debug: bool = False,
                     cancel: Optional[threading.Event] = None) -> Optional[SearchResult]:
    """
    Run a search and report every step to a callback.

    The search stops before its next batch when the callback returns False
    or ``cancel`` is set; work already in flight finishes first.

    Args:
        orchestrator: Orchestrator running the search
        query: Search text
        on_progress: Called with each event, in order
        home_library: Library code for local/remote availability counts
        debug: Attach debug information to the result
        cancel: Optional event another thread sets to stop the search

    Returns:
        The result, or None when the search was cancelled or failed
    """
    stream = orchestrator.run(query, home_library=home_library, debug=debug)
    try:
        for search_event in stream:
            if on_progress(search_event) is False or (cancel is not None and cancel.is_set()):
                logger.info(f"Search for '{query}' cancelled after {search_event.type}")
                return None
            if search_event.type == events.COMPLETE:
                return search_event.data['result']
            if search_event.type == events.ERROR:
                return None
    finally:
        stream.close()
    return None
