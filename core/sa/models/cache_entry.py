# core/sa/models/cache_entry.py
from sqlalchemy import String, Text, Integer, Float, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column
from .base import Base, TimestampMixin

class CacheEntry(Base, TimestampMixin):
    """One cached value, addressed by a type-scoped namespace and a key"""
    __tablename__ = 'cache_entry'
    __table_args__ = (
        UniqueConstraint('namespace', 'key', name='uq_cache_entry_namespace_key'),
        Index('ix_cache_entry_namespace', 'namespace'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    namespace: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "nc-cardinal/records"
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)  # JSON encoded
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[float | None] = mapped_column(Float, nullable=True)  # epoch seconds, None = never

    @property
    def cache_type(self) -> str:
        """Top-level cache type, the first segment of the namespace"""
        return self.namespace.split('/', 1)[0]

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now
