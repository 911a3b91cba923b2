# tests/conftest.py
import pytest
from pathlib import Path
from datetime import datetime, UTC, timedelta
from unittest.mock import Mock
import requests

from core.cache.tiered_cache import TieredCache
from core.entities.store import EntityStore
from core.sa.database import Database

FIXTURES = Path(__file__).parent / 'fixtures'

class FakeClock:
    """Epoch-seconds clock tests move forward by hand"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

class FakeDatetimeClock:
    """datetime clock for the entity store, one second per call"""

    def __init__(self):
        self.now = datetime(2025, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now

def _mock_response(text: str = '', json_data=None, status_code: int = 200, headers=None) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.headers = headers or {}
    response.json.return_value = json_data
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    else:
        response.raise_for_status.return_value = None
    return response

@pytest.fixture
def load_fixture():
    """Read a file from tests/fixtures"""
    def _load(name: str) -> str:
        return (FIXTURES / name).read_text(encoding='utf-8')
    return _load

@pytest.fixture
def make_response():
    """Build a requests.Response stand-in for a mocked session"""
    return _mock_response

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'cache.db'}")
    yield db
    db.dispose()

@pytest.fixture
def cache(database, clock):
    return TieredCache(database, clock=clock)

@pytest.fixture
def store_path(tmp_path):
    return tmp_path / 'entities.json'

@pytest.fixture
def store(store_path):
    entity_store = EntityStore(store_path, clock=FakeDatetimeClock())
    entity_store.open()
    yield entity_store
    entity_store.close()
