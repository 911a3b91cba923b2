# core/sa/__init__.py
from .database import Database
from .models import Base, CacheEntry

__all__ = [
    'Database',
    'Base',
    'CacheEntry'
]
