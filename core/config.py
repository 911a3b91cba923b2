# core/config.py
import os
from dataclasses import dataclass, field
from typing import List

DEFAULT_CATALOG_BASE_URL = "https://highpoint.nccardinal.org"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Settings:
    """Runtime configuration for the search engine.

    Every value can be overridden through an environment variable of the
    same name in upper case (see ``Settings.from_env``).
    """
    catalog_base_url: str = DEFAULT_CATALOG_BASE_URL
    catalog_org: str = "CARDINAL"
    cache_database_url: str = "sqlite:///.cache/cache.db"
    entity_store_path: str = ".data/entities.json"
    metadata_sources: List[str] = field(default_factory=lambda: ["wikipedia"])
    http_timeout: float = 10.0
    cover_timeout: float = 5.0
    availability_batch_size: int = 5
    cover_batch_size: int = 5
    google_books_covers: bool = True
    user_agent: str = "shelf-finder/0.1 (library availability lookup)"

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from environment variables, then apply explicit overrides."""
        sources = os.getenv("METADATA_SOURCES")
        settings = cls(
            catalog_base_url=os.getenv("NC_CARDINAL_BASE_URL") or DEFAULT_CATALOG_BASE_URL,
            catalog_org=os.getenv("CATALOG_ORG", "CARDINAL"),
            cache_database_url=os.getenv("CACHE_DATABASE_URL", "sqlite:///.cache/cache.db"),
            entity_store_path=os.getenv("ENTITY_STORE_PATH", ".data/entities.json"),
            metadata_sources=[s.strip() for s in sources.split(",") if s.strip()] if sources else ["wikipedia"],
            http_timeout=_env_float("HTTP_TIMEOUT", 10.0),
            cover_timeout=_env_float("COVER_TIMEOUT", 5.0),
            availability_batch_size=_env_int("AVAILABILITY_BATCH_SIZE", 5),
            cover_batch_size=_env_int("COVER_BATCH_SIZE", 5),
            google_books_covers=_env_bool("GOOGLE_BOOKS_COVERS", True),
        )
        for key, value in overrides.items():
            if value is not None and hasattr(settings, key):
                setattr(settings, key, value)
        return settings
