# core/sa/models/__init__.py
from .base import Base, TimestampMixin
from .cache_entry import CacheEntry

__all__ = [
    'Base',
    'TimestampMixin',
    'CacheEntry'
]
