# core/sa/repositories/__init__.py
from .cache import CacheRepository

__all__ = ['CacheRepository']
