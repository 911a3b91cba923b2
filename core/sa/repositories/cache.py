# core/sa/repositories/cache.py

from typing import Optional, List, Tuple
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from core.sa.models import CacheEntry

class CacheRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, namespace: str, key: str) -> Optional[CacheEntry]:
        """
        Fetch a single entry by namespace and key.
        """
        return (
            self.session.query(CacheEntry)
            .filter(CacheEntry.namespace == namespace, CacheEntry.key == key)
            .first()
        )

    def upsert(self, namespace: str, key: str, value: str, expires_at: Optional[float]) -> CacheEntry:
        """
        Insert or replace the value stored under namespace/key.

        Args:
            namespace: Type-scoped namespace, e.g. "nc-cardinal/isbn-map"
            key: Entry key inside the namespace
            value: JSON encoded value
            expires_at: Epoch seconds after which the entry is stale, None for no expiry

        Returns:
            The stored CacheEntry
        """
        entry = self.get(namespace, key)
        size = len(value.encode('utf-8'))
        if entry is None:
            entry = CacheEntry(namespace=namespace, key=key, value=value,
                               size_bytes=size, expires_at=expires_at)
            self.session.add(entry)
        else:
            entry.value = value
            entry.size_bytes = size
            entry.expires_at = expires_at
        return entry

    def delete(self, namespace: str, key: str) -> int:
        """
        Delete one entry, returning the number of rows removed.
        """
        return (
            self.session.query(CacheEntry)
            .filter(CacheEntry.namespace == namespace, CacheEntry.key == key)
            .delete(synchronize_session=False)
        )

    def _type_filter(self, cache_type: str):
        return or_(
            CacheEntry.namespace == cache_type,
            CacheEntry.namespace.startswith(f"{cache_type}/", autoescape=True)
        )

    def delete_type(self, cache_type: str) -> int:
        """
        Delete every entry belonging to a cache type and its sub-namespaces.
        """
        return (
            self.session.query(CacheEntry)
            .filter(self._type_filter(cache_type))
            .delete(synchronize_session=False)
        )

    def delete_all(self) -> int:
        return self.session.query(CacheEntry).delete(synchronize_session=False)

    def find_keys(self, namespace: str, contains: Optional[str] = None,
                  prefixes: Optional[List[str]] = None) -> List[str]:
        """
        List keys in a namespace, optionally filtered by substring and key prefixes.
        """
        query = self.session.query(CacheEntry.key).filter(CacheEntry.namespace == namespace)
        if contains:
            query = query.filter(CacheEntry.key.contains(contains, autoescape=True))
        if prefixes:
            query = query.filter(or_(*[
                CacheEntry.key.startswith(prefix, autoescape=True) for prefix in prefixes
            ]))
        return [row[0] for row in query.order_by(CacheEntry.key).all()]

    def stats_by_type(self, cache_type: str) -> Tuple[int, int]:
        """
        Get (entry count, total size in bytes) for a cache type.
        """
        count, size = (
            self.session.query(func.count(CacheEntry.id), func.coalesce(func.sum(CacheEntry.size_bytes), 0))
            .filter(self._type_filter(cache_type))
            .one()
        )
        return int(count or 0), int(size or 0)
