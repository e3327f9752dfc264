"""
Mastery Scorer.

Recomputes a learner's mastery for a concept on every exposure:

    accuracy   = correct / exposures
    recency    = 0.2 - min(0.2, seconds_since_last_correct / 7 days)
    multiplier = 1.15 if the current correct run >= streak_threshold else 1.0
    score      = clamp((accuracy * 0.7 + recency) * multiplier, 0, 1)

The confidence tier is a step function of the score and the next review
time is delegated to the ReviewScheduler.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from loguru import logger

from src.core.clock import to_naive_utc, utcnow
from src.core.errors import InvalidInput
from src.core.locks import KeyedLocks
from src.mastery.records import ExerciseResult, MasteryRecord
from src.mastery.scheduler import ReviewScheduler
from src.mastery.store import MasteryStore

# Upper bounds (exclusive) of tiers 1-4; anything above is tier 5
TIER_BOUNDARIES = (0.25, 0.50, 0.75, 0.90)


def confidence_tier(mastery_score: float) -> int:
    """Map a mastery score in [0, 1] to a confidence tier in [1, 5]."""
    for tier, upper in enumerate(TIER_BOUNDARIES, start=1):
        if mastery_score < upper:
            return tier
    return 5


class MasteryScorer:
    """
    Records exposures and keeps mastery records consistent.

    Exposures for the same (learner, concept) are serialized through a
    per-key lock; the store additionally locks the row inside its
    transaction so concurrent processes cannot lose updates either.
    """

    ACCURACY_WEIGHT = 0.7

    def __init__(
        self,
        store: MasteryStore,
        scheduler: ReviewScheduler | None = None,
        streak_threshold: int = 3,
        streak_multiplier: float = 1.15,
        recency_max_bonus: float = 0.2,
        recency_horizon_days: float = 7.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize scorer.

        Args:
            store: Persistence for mastery records
            scheduler: Review interval calculator (defaults if None)
            streak_threshold: Correct run length that earns the multiplier
            streak_multiplier: Multiplier applied to an unbroken correct run
            recency_max_bonus: Bonus right after a correct answer
            recency_horizon_days: Days over which elapsed time is scaled
            clock: Source of "now" (naive UTC)
        """
        if streak_threshold < 1:
            raise InvalidInput("streak_threshold", "must be >= 1")
        self.store = store
        self.scheduler = scheduler or ReviewScheduler()
        self.streak_threshold = streak_threshold
        self.streak_multiplier = streak_multiplier
        self.recency_max_bonus = recency_max_bonus
        self.recency_horizon_seconds = recency_horizon_days * 24 * 3600
        self.clock = clock
        self._locks = KeyedLocks()

    @classmethod
    def from_settings(cls, store: MasteryStore, scheduler: ReviewScheduler, settings) -> MasteryScorer:
        return cls(
            store,
            scheduler,
            streak_threshold=settings.mastery_streak_threshold,
            streak_multiplier=settings.mastery_streak_multiplier,
            recency_max_bonus=settings.mastery_recency_max_bonus,
            recency_horizon_days=settings.mastery_recency_horizon_days,
        )

    # ========================================
    # Write path
    # ========================================

    def record_exposure(
        self,
        learner_id: str,
        concept_id: str,
        is_correct: bool,
        response_time_ms: int,
        at: datetime | None = None,
    ) -> MasteryRecord:
        """
        Record one exposure and return the updated record.

        Every call is a distinct event; there is no idempotency key. The first
        exposure creates the record.

        Raises:
            InvalidInput: empty identifiers or negative response time
        """
        learner_id = self._require_id("learner_id", learner_id)
        concept_id = self._require_id("concept_id", concept_id)
        if isinstance(response_time_ms, bool) or not isinstance(response_time_ms, int):
            raise InvalidInput("response_time_ms", "must be an integer")
        if response_time_ms < 0:
            raise InvalidInput("response_time_ms", "must be >= 0")

        result = ExerciseResult(
            learner_id=learner_id,
            concept_id=concept_id,
            is_correct=bool(is_correct),
            response_time_ms=response_time_ms,
            timestamp=to_naive_utc(at) if at else self.clock(),
        )

        with self._locks.hold((learner_id, concept_id)):
            record = self.store.apply_exposure(result, self.advance)

        logger.debug(
            f"Exposure {learner_id}/{concept_id} correct={result.is_correct}: "
            f"score={record.mastery_score:.3f} tier={record.confidence_tier} "
            f"next_review={record.next_review_at}"
        )
        return record

    def advance(self, previous: MasteryRecord | None, result: ExerciseResult) -> MasteryRecord:
        """Pure transition: previous state + one result -> new state."""
        if previous is None:
            record = MasteryRecord(learner_id=result.learner_id, concept_id=result.concept_id)
        else:
            record = replace(previous)
        now = result.timestamp

        record.exposure_count += 1
        if result.is_correct:
            record.correct_count += 1
            record.last_correct_at = now
            record.last_outcome_streak = max(record.last_outcome_streak, 0) + 1
        else:
            record.incorrect_count += 1
            record.last_outcome_streak = min(record.last_outcome_streak, 0) - 1

        # Running response time aggregates
        n = record.exposure_count
        if record.avg_response_time_ms is None:
            record.avg_response_time_ms = float(result.response_time_ms)
        else:
            record.avg_response_time_ms += (result.response_time_ms - record.avg_response_time_ms) / n
        if record.fastest_response_time_ms is None:
            record.fastest_response_time_ms = result.response_time_ms
        else:
            record.fastest_response_time_ms = min(record.fastest_response_time_ms, result.response_time_ms)

        record.first_seen_at = record.first_seen_at or now
        record.last_seen_at = now

        record.mastery_score = self.score(record, now)
        record.confidence_tier = confidence_tier(record.mastery_score)
        record.next_review_at = self.scheduler.next_review(record, now=now)
        return record

    # ========================================
    # Scoring
    # ========================================

    def recency_bonus(self, last_correct_at: datetime | None, now: datetime) -> float:
        """Bonus in [0, recency_max_bonus], largest right after a correct answer."""
        if last_correct_at is None:
            return 0.0
        elapsed = max(0.0, (now - last_correct_at).total_seconds())
        return self.recency_max_bonus - min(self.recency_max_bonus, elapsed / self.recency_horizon_seconds)

    def score(self, record: MasteryRecord, now: datetime | None = None) -> float:
        """Mastery score in [0, 1] from the record's full exposure history."""
        if record.exposure_count == 0:
            return 0.0
        now = now or self.clock()
        accuracy = record.correct_count / record.exposure_count
        multiplier = self.streak_multiplier if record.last_outcome_streak >= self.streak_threshold else 1.0
        raw = (accuracy * self.ACCURACY_WEIGHT + self.recency_bonus(record.last_correct_at, now)) * multiplier
        return max(0.0, min(1.0, raw))

    @staticmethod
    def _require_id(field: str, value: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise InvalidInput(field, "must be a non-empty string")
        return value.strip()
