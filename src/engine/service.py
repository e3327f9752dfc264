"""
Mastery Engine.

The single entry point used by the API and CLI. Synchronous operations hit
the datastore directly; ``request_content`` is async because the provider
call is the one long-latency step and must not hold any lock.

Content pipeline:
    build context -> cache get -> (miss) provider.generate -> cache put -> return

Failure policy:
- Exposure writes propagate every persistence error
- Cache reads/writes are bounded by a short timeout and degrade silently
- Provider timeouts and errors become GenerationFailed; nothing is cached
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, TypeVar

from loguru import logger

from src.core.clock import utcnow
from src.core.errors import (
    CacheUnavailable,
    GenerationFailed,
    InvalidInput,
    NotFound,
    ProviderError,
    ProviderTimeout,
)
from src.feedback.learner import ConceptPattern, FeedbackLearner
from src.generation.cache import GenerationCache
from src.generation.context_builder import PerformanceContextBuilder
from src.generation.policy import ExerciseType, GenerationPolicy
from src.generation.provider import GenerationProvider
from src.mastery.records import ConceptRecommendation, MasteryRecord, MasteryStats
from src.mastery.scorer import MasteryScorer
from src.mastery.store import MasteryStore

T = TypeVar("T")


@dataclass
class GeneratedContent:
    """Content returned to the caller, with where it came from."""

    payload: dict[str, Any]
    cache_key: str
    cache_hit: bool
    policy: GenerationPolicy
    usage_count: int = 0
    generation_time_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.payload,
            "cache_key": self.cache_key,
            "cache_hit": self.cache_hit,
            "usage_count": self.usage_count,
            "generation_time_ms": self.generation_time_ms,
            "policy": self.policy.to_dict(),
        }


class MasteryEngine:
    """
    Adaptive mastery and exercise generation engine.

    Handles:
    - Exposure recording and review scheduling
    - Due / weak / recommended concept selection
    - Policy-driven content generation with caching
    - Reviewer feedback (confidence and prompt hints)
    - Periodic maintenance
    """

    MASTERED_THRESHOLD = 0.8

    # Recommendation mix
    DUE_SHARE = 0.4
    WEAK_SHARE = 0.4
    NEW_SHARE = 0.2
    DUE_PRIORITY = 10
    WEAK_PRIORITY = 8
    NEW_PRIORITY = 5

    def __init__(
        self,
        mastery_store: MasteryStore,
        scorer: MasteryScorer,
        context_builder: PerformanceContextBuilder,
        cache: GenerationCache,
        feedback: FeedbackLearner,
        provider: GenerationProvider,
        weak_threshold: float = 0.7,
        generation_timeout_seconds: float = 30.0,
        cache_timeout_seconds: float = 2.0,
        stale_days: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.mastery_store = mastery_store
        self.scorer = scorer
        self.context_builder = context_builder
        self.cache = cache
        self.feedback = feedback
        self.provider = provider
        self.weak_threshold = weak_threshold
        self.generation_timeout_seconds = generation_timeout_seconds
        self.cache_timeout_seconds = cache_timeout_seconds
        self.stale_days = stale_days
        self.clock = clock

    # ========================================
    # Mastery
    # ========================================

    def record_exposure(
        self,
        learner_id: str,
        concept_id: str,
        is_correct: bool,
        response_time_ms: int,
    ) -> MasteryRecord:
        """Record one exposure; persistence failures propagate."""
        return self.scorer.record_exposure(learner_id, concept_id, is_correct, response_time_ms)

    def get_mastery(self, learner_id: str, concept_id: str) -> MasteryRecord:
        """
        Look up one learner's record for a concept.

        Raises:
            NotFound: the learner has never been exposed to the concept
        """
        learner_id = self._require_learner(learner_id)
        if not isinstance(concept_id, str) or not concept_id.strip():
            raise InvalidInput("concept_id", "must be a non-empty string")
        record = self.mastery_store.get(learner_id, concept_id.strip())
        if record is None:
            raise NotFound(f"no mastery record for {learner_id}/{concept_id.strip()}")
        return record

    def get_due_for_review(self, learner_id: str, limit: int = 20) -> list[MasteryRecord]:
        """Concepts whose review time has passed, soonest first."""
        learner_id = self._require_learner(learner_id)
        self._require_limit(limit)
        return self.mastery_store.list_due(learner_id, self.clock(), limit)

    def get_weak_concepts(self, learner_id: str, limit: int = 20) -> list[MasteryRecord]:
        """Concepts below the weak threshold, weakest first."""
        learner_id = self._require_learner(learner_id)
        self._require_limit(limit)
        return self.mastery_store.list_weak(learner_id, self.weak_threshold, limit)

    def get_mastery_stats(self, learner_id: str) -> MasteryStats:
        learner_id = self._require_learner(learner_id)
        return self.mastery_store.mastery_stats(
            learner_id, self.weak_threshold, self.MASTERED_THRESHOLD, self.clock()
        )

    def get_recommended_concepts(
        self,
        learner_id: str,
        count: int = 5,
        include_new: bool = True,
    ) -> list[ConceptRecommendation]:
        """
        Recommend concepts for the next session.

        Mixes due reviews (~40%), weak concepts (~40%) and unexplored concepts
        (~20%). A concept appearing in several groups keeps its highest
        priority.

        Args:
            learner_id: Learner to recommend for
            count: Number of recommendations
            include_new: Whether to include never-attempted concepts

        Returns:
            Recommendations sorted by priority (highest first)
        """
        learner_id = self._require_learner(learner_id)
        self._require_limit(count)

        candidates: list[ConceptRecommendation] = []
        for record in self.mastery_store.list_due(learner_id, self.clock(), math.ceil(count * self.DUE_SHARE)):
            candidates.append(ConceptRecommendation(record.concept_id, "due", self.DUE_PRIORITY, record.mastery_score))
        for record in self.mastery_store.list_weak(
            learner_id, self.weak_threshold, math.ceil(count * self.WEAK_SHARE)
        ):
            candidates.append(ConceptRecommendation(record.concept_id, "weak", self.WEAK_PRIORITY, record.mastery_score))
        if include_new:
            for concept_id in self.mastery_store.unexplored_concepts(learner_id, math.ceil(count * self.NEW_SHARE)):
                candidates.append(ConceptRecommendation(concept_id, "new", self.NEW_PRIORITY))

        best: dict[str, ConceptRecommendation] = {}
        for candidate in candidates:
            existing = best.get(candidate.concept_id)
            if existing is None or candidate.priority > existing.priority:
                best[candidate.concept_id] = candidate

        ranked = sorted(best.values(), key=lambda rec: -rec.priority)
        logger.debug(f"Recommended {min(count, len(ranked))} concepts for {learner_id}")
        return ranked[:count]

    # ========================================
    # Content
    # ========================================

    def build_policy(self, learner_id: str, exercise_type: str | None = None) -> GenerationPolicy:
        return self.context_builder.build_context(learner_id, exercise_type)

    async def request_content(
        self,
        learner_id: str,
        exercise_type: str | ExerciseType | None = None,
    ) -> GeneratedContent:
        """
        Serve content for a learner, generating it on a cache miss.

        Raises:
            InvalidInput: bad learner id or exercise type
            GenerationFailed: provider timed out, failed or returned nothing
        """
        policy = await asyncio.to_thread(self.context_builder.build_context, learner_id, exercise_type)
        cache_key = self.cache.key_for(policy)

        hit = await self._with_cache_timeout("get", self.cache.get, policy, default=None)
        if hit is not None:
            logger.info(f"Content cache hit {cache_key[:12]} for {policy.learner_id} (uses={hit.usage_count})")
            return GeneratedContent(
                payload=hit.payload,
                cache_key=cache_key,
                cache_hit=True,
                policy=policy,
                usage_count=hit.usage_count,
            )

        logger.info(f"Content cache miss {cache_key[:12]}, generating: {policy.summary()}")
        started = time.perf_counter()
        payload = await self._generate(policy)
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        stored = await self._with_cache_timeout(
            "put", self.cache.put, policy, payload, None, elapsed_ms, default=False
        )
        if not stored:
            logger.warning(f"Generated content for {cache_key[:12]} was not cached")

        return GeneratedContent(
            payload=payload,
            cache_key=cache_key,
            cache_hit=False,
            policy=policy,
            generation_time_ms=elapsed_ms,
        )

    async def _generate(self, policy: GenerationPolicy) -> dict[str, Any]:
        try:
            payload = await asyncio.wait_for(
                self.provider.generate(policy, list(policy.hints)),
                timeout=self.generation_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Generation timed out after {self.generation_timeout_seconds}s")
            raise GenerationFailed("provider timed out") from e
        except ProviderTimeout as e:
            logger.error(f"Generation provider timed out: {e}")
            raise GenerationFailed("provider timed out") from e
        except ProviderError as e:
            logger.error(f"Generation provider failed: {e}")
            retryable = e.status_code is None or e.status_code >= 500
            raise GenerationFailed(f"provider error: {e}", retryable=retryable) from e

        if not isinstance(payload, dict) or not payload:
            logger.error("Generation provider returned no content")
            raise GenerationFailed("provider returned no content")
        return payload

    async def _with_cache_timeout(
        self,
        operation: str,
        fn: Callable[..., T],
        *args: Any,
        default: T,
    ) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.cache_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Cache {operation} timed out after {self.cache_timeout_seconds}s, continuing without cache")
            return default

    # ========================================
    # Feedback
    # ========================================

    def apply_rejection(
        self,
        concept_id: str,
        category: str | None = None,
        note: str | None = None,
        reviewer_id: str | None = None,
    ) -> ConceptPattern:
        return self.feedback.apply_rejection(concept_id, category, note, reviewer_id)

    def apply_approval(self, concept_id: str, reviewer_id: str | None = None) -> ConceptPattern:
        return self.feedback.apply_approval(concept_id, reviewer_id)

    def enhancement_hints(self, concept_id: str) -> list[str]:
        return self.feedback.enhancement_hints(concept_id)

    def rejection_summary(self, concept_id: str | None = None) -> list[dict[str, Any]]:
        return self.feedback.rejection_summary(concept_id)

    # ========================================
    # Maintenance
    # ========================================

    def cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()

    def cache_stats_by_type(self) -> list[dict[str, Any]]:
        """Per exercise type totals; empty when the cache backend is down."""
        try:
            return self.cache.stats_by_type()
        except CacheUnavailable as e:
            logger.warning(f"Cache type stats unavailable: {e}")
            return []

    def popular_cache_entries(self, limit: int = 10) -> list[dict[str, Any]]:
        """Most used live cache entries; empty when the cache backend is down."""
        self._require_limit(limit)
        try:
            return self.cache.popular(limit)
        except CacheUnavailable as e:
            logger.warning(f"Popular cache entries unavailable: {e}")
            return []

    def sweep(self) -> dict[str, int]:
        """Purge expired cache entries and stale zero-exposure mastery rows."""
        cutoff = self.clock() - timedelta(days=self.stale_days)
        pruned = self.mastery_store.prune_stale(cutoff)
        try:
            purged = self.cache.purge_expired()
        except CacheUnavailable as e:
            logger.warning(f"Cache purge skipped: {e}")
            purged = 0
        logger.info(f"Sweep complete: {purged} cache entries purged, {pruned} mastery rows pruned")
        return {"cache_purged": purged, "mastery_pruned": pruned}

    async def aclose(self) -> None:
        close = getattr(self.provider, "close", None)
        if close is not None:
            await close()

    @staticmethod
    def _require_learner(learner_id: str) -> str:
        if not isinstance(learner_id, str) or not learner_id.strip():
            raise InvalidInput("learner_id", "must be a non-empty string")
        return learner_id.strip()

    @staticmethod
    def _require_limit(limit: int) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidInput("limit", "must be a positive integer")
