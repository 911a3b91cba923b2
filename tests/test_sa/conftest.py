# tests/test_sa/conftest.py
import pytest
from sqlalchemy.orm import Session
from sqlalchemy.sql import text

from core.sa.database import Database
from core.sa.models import Base, CacheEntry

@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory):
    """Create a temporary directory for the test database."""
    test_dir = tmp_path_factory.mktemp("test_db")
    return str(test_dir / "test_cache.db")

@pytest.fixture(scope="session")
def database(test_db_path):
    """Create a test database instance"""
    db = Database(f"sqlite:///{test_db_path}")
    Base.metadata.drop_all(db.engine)
    Base.metadata.create_all(db.engine)
    yield db
    db.dispose()

@pytest.fixture(scope="function")
def db_session(database):
    """Create a new database session for a test"""
    session: Session = database._SessionFactory()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture(autouse=True)
def cleanup_db(db_session):
    """Clean up the cache table before each test"""
    db_session.execute(text("DELETE FROM cache_entry"))
    db_session.commit()
    yield
    db_session.rollback()

@pytest.fixture
def sample_entries(db_session):
    """A handful of entries spread over every cache type"""
    entries = [
        CacheEntry(namespace="nc-cardinal/isbn-map", key="9781974700523", value='"1001"', size_bytes=6),
        CacheEntry(namespace="nc-cardinal/records", key="1001", value='{"id": "1001"}', size_bytes=14,
                   expires_at=1_700_003_600.0),
        CacheEntry(namespace="wikipedia", key="series_blue_box", value="{}", size_bytes=2),
        CacheEntry(namespace="wikipedia", key="search_blue_box", value="[]", size_bytes=2),
        CacheEntry(namespace="google-books", key="search_blue_box_manga_40", value="[]", size_bytes=2),
        CacheEntry(namespace="google-books/covers", key="9781974700523", value='""', size_bytes=2),
    ]
    db_session.add_all(entries)
    db_session.commit()
    return entries
