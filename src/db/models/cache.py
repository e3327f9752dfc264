"""
Generation Cache Model.

One row per cache key. Rows are created on a cache miss, touched on every
hit and removed by TTL expiry or LRU eviction.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.clock import utcnow

from .base import Base


class CachedContentRow(Base):
    """Generated content keyed by the hash of its generation policy."""

    __tablename__ = "generation_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cache_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    # Policy summary (for analytics, not for lookup)
    exercise_type: Mapped[str] = mapped_column(String(50), nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False)
    topics: Mapped[list] = mapped_column(JSON, default=list)
    topic_count: Mapped[int] = mapped_column(Integer, default=0)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Usage and lifetime
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ttl_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    generation_time_ms: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    last_used_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_generation_cache_lru", "last_used_at", "usage_count"),
        Index("idx_generation_cache_expires", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<CachedContent key={self.cache_key[:12]} uses={self.usage_count}>"
