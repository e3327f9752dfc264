"""
Generation Cache.

Content-addressable store for generated exercises, keyed by the hash of the
normalized generation policy.

TTL policy (monotonic, evaluated on every hit):
- Base TTL (default 24h) for every entry
- Doubled once usage_count exceeds the popularity threshold
- Halved when the entry covers more distinct concepts than the sparse
  threshold (rare combinations are unlikely to be requested again)
- A hit may push expires_at later, never earlier

Eviction: after every write, when the table holds more than max_entries rows,
expired rows go first, then least recently used (ties broken by lowest
usage count).

The cache is an optimization only. Backend failures surface internally as
CacheUnavailable and degrade to a miss on read and a logged no-op on write.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from loguru import logger
from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.core.clock import utcnow
from src.core.errors import CacheUnavailable, InvalidInput
from src.db.database import session_scope
from src.db.models import CachedContentRow
from src.generation.policy import GenerationPolicy, compute_cache_key


@dataclass
class CachedContent:
    """A cache hit."""

    cache_key: str
    payload: dict[str, Any]
    usage_count: int
    created_at: datetime
    last_used_at: datetime
    expires_at: datetime


@dataclass
class CacheCounters:
    """In-process counters since startup."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    writes: int = 0
    evictions: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class GenerationCache:
    """Policy-keyed cache of generated content backed by the datastore."""

    POPULARITY_TTL_FACTOR = 2.0
    SPARSE_TTL_FACTOR = 0.5

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        default_ttl_hours: float = 24.0,
        max_entries: int = 10000,
        popularity_threshold: int = 10,
        sparse_topic_threshold: int = 15,
        key_length: int = 32,
        clock: Callable[[], datetime] = utcnow,
    ):
        if max_entries < 1:
            raise InvalidInput("max_entries", "must be >= 1")
        self.session_factory = session_factory
        self.default_ttl = timedelta(hours=default_ttl_hours)
        self.max_entries = max_entries
        self.popularity_threshold = popularity_threshold
        self.sparse_topic_threshold = sparse_topic_threshold
        self.key_length = key_length
        self.clock = clock
        self.counters = CacheCounters()
        self._counter_lock = threading.Lock()

    @classmethod
    def from_settings(cls, session_factory: sessionmaker[Session], settings) -> GenerationCache:
        config = settings.get_cache_config()
        return cls(
            session_factory,
            default_ttl_hours=config["default_ttl_hours"],
            max_entries=config["max_entries"],
            popularity_threshold=config["popularity_threshold"],
            sparse_topic_threshold=config["sparse_topic_threshold"],
            key_length=config["key_length"],
        )

    def key_for(self, policy: GenerationPolicy) -> str:
        return compute_cache_key(policy, self.key_length)

    def effective_ttl(self, usage_count: int, topic_count: int, base: timedelta | None = None) -> timedelta:
        """TTL for an entry given its popularity and topic spread."""
        ttl = self.default_ttl if base is None else base
        if usage_count > self.popularity_threshold:
            ttl = ttl * self.POPULARITY_TTL_FACTOR
        if topic_count > self.sparse_topic_threshold:
            ttl = ttl * self.SPARSE_TTL_FACTOR
        return ttl

    # ========================================
    # Read / write
    # ========================================

    def get(self, policy: GenerationPolicy) -> CachedContent | None:
        """
        Look up content for a policy.

        A hit increments usage_count and refreshes last_used_at. Expired rows
        are deleted and reported as a miss. Backend errors are a miss too.
        """
        key = self.key_for(policy)
        try:
            hit = self._get(key)
        except CacheUnavailable as e:
            self._count("errors")
            self._count("misses")
            logger.warning(f"Cache read degraded to miss for {key[:12]}: {e}")
            return None

        self._count("hits" if hit else "misses")
        return hit

    def _get(self, key: str) -> CachedContent | None:
        now = self.clock()
        try:
            with session_scope(self.session_factory) as session:
                row = session.execute(
                    select(CachedContentRow).where(CachedContentRow.cache_key == key).with_for_update()
                ).scalar_one_or_none()
                if row is None:
                    return None

                if row.expires_at <= now:
                    session.delete(row)
                    self._count("expired")
                    logger.debug(f"Cache entry {key[:12]} expired at {row.expires_at}")
                    return None

                row.usage_count += 1
                row.last_used_at = now
                ttl = self.effective_ttl(row.usage_count, row.topic_count, timedelta(seconds=row.ttl_seconds))
                row.expires_at = max(row.expires_at, row.created_at + ttl)

                return CachedContent(
                    cache_key=row.cache_key,
                    payload=row.payload,
                    usage_count=row.usage_count,
                    created_at=row.created_at,
                    last_used_at=row.last_used_at,
                    expires_at=row.expires_at,
                )
        except SQLAlchemyError as e:
            raise CacheUnavailable(str(e)) from e

    def put(
        self,
        policy: GenerationPolicy,
        payload: dict[str, Any],
        ttl: timedelta | None = None,
        generation_time_ms: int | None = None,
    ) -> bool:
        """
        Store content for a policy (best effort).

        Writing an existing key overwrites its payload and restarts its
        lifetime. Returns False when the backend failed; never raises for
        backend errors.
        """
        if not isinstance(payload, dict) or not payload:
            raise InvalidInput("payload", "must be a non-empty mapping")
        if ttl is not None and ttl < timedelta(0):
            raise InvalidInput("ttl", "must not be negative")
        key = self.key_for(policy)
        try:
            self._put(key, policy, payload, self.default_ttl if ttl is None else ttl, generation_time_ms)
            evicted = self._evict(self.max_entries)
        except CacheUnavailable as e:
            self._count("errors")
            logger.warning(f"Cache write skipped for {key[:12]}: {e}")
            return False

        self._count("writes")
        if evicted:
            logger.info(f"Cache evicted {evicted} entries (max {self.max_entries})")
        return True

    def _put(
        self,
        key: str,
        policy: GenerationPolicy,
        payload: dict[str, Any],
        ttl: timedelta,
        generation_time_ms: int | None,
    ) -> None:
        now = self.clock()
        topics = policy.topics()
        normalized = policy.normalized()
        try:
            with session_scope(self.session_factory) as session:
                row = session.execute(
                    select(CachedContentRow).where(CachedContentRow.cache_key == key).with_for_update()
                ).scalar_one_or_none()
                if row is None:
                    row = CachedContentRow(cache_key=key, usage_count=0)
                    session.add(row)
                row.exercise_type = normalized["exercise_type"]
                row.level = normalized["level"]
                row.difficulty = normalized["difficulty"]
                row.topics = topics
                row.topic_count = len(topics)
                row.payload = payload
                row.ttl_seconds = int(ttl.total_seconds())
                row.generation_time_ms = generation_time_ms
                row.created_at = now
                row.last_used_at = now
                row.expires_at = now + self.effective_ttl(row.usage_count, len(topics), ttl)
        except SQLAlchemyError as e:
            raise CacheUnavailable(str(e)) from e

    # ========================================
    # Administration
    # ========================================

    def purge_expired(self) -> int:
        """Delete every expired entry. Returns the number removed."""
        try:
            with session_scope(self.session_factory) as session:
                result = session.execute(
                    delete(CachedContentRow).where(CachedContentRow.expires_at <= self.clock())
                )
                purged = result.rowcount or 0
        except SQLAlchemyError as e:
            raise CacheUnavailable(str(e)) from e
        if purged:
            logger.info(f"Cache purged {purged} expired entries")
        return purged

    def evict_lru(self, max_entries: int | None = None) -> int:
        """Evict down to ``max_entries`` (expired first, then LRU)."""
        return self._evict(self.max_entries if max_entries is None else max_entries)

    def _evict(self, max_entries: int) -> int:
        try:
            with session_scope(self.session_factory) as session:
                count = session.execute(select(func.count(CachedContentRow.id))).scalar_one()
                if count <= max_entries:
                    return 0

                expired = session.execute(
                    delete(CachedContentRow).where(CachedContentRow.expires_at <= self.clock())
                ).rowcount or 0
                overflow = count - expired - max_entries
                lru = 0
                if overflow > 0:
                    victims = session.execute(
                        select(CachedContentRow.id)
                        .order_by(
                            CachedContentRow.last_used_at.asc(),
                            CachedContentRow.usage_count.asc(),
                            CachedContentRow.id.asc(),
                        )
                        .limit(overflow)
                    ).scalars().all()
                    lru = session.execute(
                        delete(CachedContentRow).where(CachedContentRow.id.in_(victims))
                    ).rowcount or 0
        except SQLAlchemyError as e:
            raise CacheUnavailable(str(e)) from e

        self._count("evictions", expired + lru)
        return expired + lru

    def clear(self) -> int:
        """Remove every entry."""
        try:
            with session_scope(self.session_factory) as session:
                removed = session.execute(delete(CachedContentRow)).rowcount or 0
        except SQLAlchemyError as e:
            raise CacheUnavailable(str(e)) from e
        logger.info(f"Cache cleared ({removed} entries)")
        return removed

    def popular(self, limit: int = 10) -> list[dict[str, Any]]:
        """Most used live entries."""
        try:
            with session_scope(self.session_factory) as session:
                rows = session.execute(
                    select(CachedContentRow)
                    .where(CachedContentRow.expires_at > self.clock())
                    .order_by(CachedContentRow.usage_count.desc(), CachedContentRow.last_used_at.desc())
                    .limit(limit)
                ).scalars().all()
                return [
                    {
                        "cache_key": row.cache_key,
                        "exercise_type": row.exercise_type,
                        "level": row.level,
                        "difficulty": row.difficulty,
                        "topic_count": row.topic_count,
                        "usage_count": row.usage_count,
                        "last_used_at": row.last_used_at.isoformat(),
                        "expires_at": row.expires_at.isoformat(),
                    }
                    for row in rows
                ]
        except SQLAlchemyError as e:
            raise CacheUnavailable(str(e)) from e

    def stats_by_type(self) -> list[dict[str, Any]]:
        """Persistent totals per exercise type, most used first."""
        now = self.clock()
        try:
            with session_scope(self.session_factory) as session:
                rows = session.execute(
                    select(
                        CachedContentRow.exercise_type,
                        func.count(CachedContentRow.id),
                        func.coalesce(func.sum(case((CachedContentRow.expires_at > now, 1), else_=0)), 0),
                        func.coalesce(func.sum(CachedContentRow.usage_count), 0),
                        func.avg(CachedContentRow.generation_time_ms),
                        func.min(CachedContentRow.created_at),
                        func.max(CachedContentRow.created_at),
                    )
                    .group_by(CachedContentRow.exercise_type)
                    .order_by(func.sum(CachedContentRow.usage_count).desc(), CachedContentRow.exercise_type)
                ).all()
        except SQLAlchemyError as e:
            raise CacheUnavailable(str(e)) from e

        return [
            {
                "exercise_type": exercise_type,
                "total_entries": int(total),
                "active_entries": int(live),
                "expired_entries": int(total) - int(live),
                "total_usage": int(usage),
                "avg_usage_per_entry": round(int(usage) / int(total), 2) if total else 0.0,
                "avg_generation_time_ms": round(float(avg_ms), 1) if avg_ms is not None else None,
                "oldest_entry": oldest.isoformat() if oldest else None,
                "newest_entry": newest.isoformat() if newest else None,
            }
            for exercise_type, total, live, usage, avg_ms, oldest, newest in rows
        ]

    def stats(self) -> dict[str, Any]:
        """In-process counters plus persistent totals."""
        with self._counter_lock:
            counters = CacheCounters(**vars(self.counters))
        result: dict[str, Any] = {
            "hits": counters.hits,
            "misses": counters.misses,
            "expired": counters.expired,
            "writes": counters.writes,
            "evictions": counters.evictions,
            "errors": counters.errors,
            "hit_rate": round(counters.hit_rate, 4),
        }
        try:
            now = self.clock()
            with session_scope(self.session_factory) as session:
                total, live, usage = session.execute(
                    select(
                        func.count(CachedContentRow.id),
                        func.coalesce(func.sum(case((CachedContentRow.expires_at > now, 1), else_=0)), 0),
                        func.coalesce(func.sum(CachedContentRow.usage_count), 0),
                    )
                ).one()
        except SQLAlchemyError as e:
            logger.warning(f"Cache totals unavailable: {e}")
            result["backend"] = "unavailable"
            return result
        result["backend"] = "ok"
        result.update(
            {
                "entries": int(total),
                "active_entries": int(live),
                "expired_entries": int(total) - int(live),
                "total_usage": int(usage),
            }
        )
        return result

    def _count(self, name: str, amount: int = 1) -> None:
        with self._counter_lock:
            setattr(self.counters, name, getattr(self.counters, name) + amount)
