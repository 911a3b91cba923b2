import threading
import pytest
from unittest.mock import Mock
from core.availability import AvailabilitySummary
from core.catalog.models import SearchPage
from core.catalog.opensearch import OpenSearchClient
from core.covers import GOOGLE_BOOKS_URL, CoverResolver
from core.models.entities import MediaType
from core.search import events
from core.search.orchestrator import SearchOrchestrator
from core.search.streaming import streaming_search
from core.sources.base import MetadataSource, SeriesListing, VolumeListing
from core.utils.http import HttpClient

class StaticSource(MetadataSource):
    name = 'wikipedia'
    label = 'Wikipedia'

    def __init__(self, listing):
        self.listing = listing

    def lookup_series(self, title):
        return self.listing

@pytest.fixture
def catalog():
    client = Mock(spec=OpenSearchClient)
    client.search.return_value = SearchPage()
    client.cached_isbns.return_value = []
    client.availability_by_isbns.side_effect = lambda isbns, home_library=None: {
        isbn: AvailabilitySummary(available=True, total_copies=1) for isbn in isbns
    }
    return client

@pytest.fixture
def orchestrator(store, catalog, cache, make_response):
    session = Mock()
    session.request.return_value = make_response(status_code=404)
    covers = CoverResolver(cache, http=HttpClient('covers', session=session), google_books=False)
    volumes = [VolumeListing(number=n, isbn=f"9781974700{n:03d}") for n in range(1, 16)]
    listing = SeriesListing(title='Demon Slayer', source='wikipedia', page_id=7,
                            media_type=MediaType.MANGA, volumes=volumes)
    return SearchOrchestrator(store, catalog, covers, [StaticSource(listing)])

def test_reports_every_event_and_returns_result(orchestrator):
    received = []
    result = streaming_search(orchestrator, 'demon slayer 3', received.append)

    assert received[0].type == events.STARTED
    assert received[-1].type == events.COMPLETE
    assert result.best_match.volume.volume_number == 3
    assert received[-1].data['result'] is result

def test_callback_returning_false_cancels(orchestrator, catalog):
    received = []

    def on_progress(search_event):
        received.append(search_event.type)
        if search_event.type == events.AVAILABILITY_PROGRESS:
            return False
        return None

    result = streaming_search(orchestrator, 'demon slayer', on_progress)

    assert result is None
    assert received[-1] == events.AVAILABILITY_PROGRESS
    # Only the first batch of five was looked up
    assert catalog.availability_by_isbns.call_count == 1
    assert events.COVERS_START not in received

def test_cancel_event(orchestrator, catalog):
    cancel = threading.Event()
    received = []

    def on_progress(search_event):
        received.append(search_event.type)
        if search_event.type == events.AVAILABILITY_START:
            cancel.set()

    assert streaming_search(orchestrator, 'demon slayer', on_progress, cancel=cancel) is None
    assert received[-1] == events.AVAILABILITY_START
    catalog.availability_by_isbns.assert_not_called()

def test_cancel_during_google_books_covers(store, catalog, cache, make_response):
    def respond(method, url, params=None, timeout=None):
        if url == GOOGLE_BOOKS_URL:
            return make_response(json_data={'items': []})
        return make_response(status_code=404)

    session = Mock()
    session.request.side_effect = respond
    covers = CoverResolver(cache, http=HttpClient('covers', session=session), google_books=True)
    volumes = [VolumeListing(number=n, isbn=f"9781974700{n:03d}") for n in range(1, 16)]
    listing = SeriesListing(title='Demon Slayer', source='wikipedia', page_id=7,
                            media_type=MediaType.MANGA, volumes=volumes)
    orchestrator = SearchOrchestrator(store, catalog, covers, [StaticSource(listing)])
    cancel = threading.Event()
    received = []

    def on_progress(search_event):
        received.append(search_event)
        if search_event.type == events.COVERS_PROGRESS and search_event.data['source'] == 'google-books':
            cancel.set()

    assert streaming_search(orchestrator, 'demon slayer', on_progress, cancel=cancel) is None
    assert received[-1].data == {'source': 'google-books', 'completed': 5, 'total': 15}
    google_calls = [c for c in session.request.call_args_list if c.args[1] == GOOGLE_BOOKS_URL]
    assert len(google_calls) == 5

def test_error_returns_none(store, catalog):
    class Broken(MetadataSource):
        name = 'wikipedia'

        def lookup_series(self, title):
            raise KeyError('volumes')

    orchestrator = SearchOrchestrator(store, catalog, Mock(spec=CoverResolver), [Broken()])
    received = []
    assert streaming_search(orchestrator, 'demon slayer', received.append) is None
    assert received[-1].type == events.ERROR
