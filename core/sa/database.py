# core/sa/database.py
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import NullPool, QueuePool, StaticPool
import os

from core.sa.models import Base

class Database:
    def __init__(self, connection_string: Optional[str] = None, **engine_kwargs):
        """Initialize database connection

        Args:
            connection_string: Database connection string (e.g., "sqlite:///.cache/cache.db")
                              If None, will use the CACHE_DATABASE_URL environment variable or fall back to SQLite
            engine_kwargs: Additional keyword arguments to pass to create_engine
        """
        self.connection_string = connection_string or os.getenv("CACHE_DATABASE_URL", "sqlite:///.cache/cache.db")
        self.is_sqlite = self.connection_string.startswith("sqlite")

        # SQLite-specific settings
        if self.is_sqlite:
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
            if self._is_memory():
                # One shared connection, otherwise every session sees an empty database
                engine_kwargs.setdefault("poolclass", StaticPool)
            else:
                engine_kwargs.setdefault("poolclass", NullPool)
                self._ensure_parent_dir()

        # PostgreSQL recommended settings
        else:
            engine_kwargs.setdefault("pool_size", 5)
            engine_kwargs.setdefault("max_overflow", 10)
            engine_kwargs.setdefault("poolclass", QueuePool)

        self.engine = create_engine(
            self.connection_string,
            **engine_kwargs
        )

        self._SessionFactory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )

    def _is_memory(self) -> bool:
        return self.connection_string in ("sqlite://", "sqlite:///:memory:")

    def _ensure_parent_dir(self) -> None:
        path = self.connection_string.replace("sqlite:///", "", 1)
        if path:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_db(self) -> Iterator[Session]:
        """Context manager for database sessions"""
        session: Session = self._SessionFactory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_db(self) -> None:
        """Initialize database schema"""
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
