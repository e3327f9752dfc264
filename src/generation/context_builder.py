"""
Performance Context Builder.

Turns a learner's exercise history into a GenerationPolicy:
- Level from overall volume and accuracy
- Adaptive difficulty from overall accuracy, recent accuracy and streak
- Weak / mastered concepts from recent per-concept accuracy
- New concepts from the catalog, due concepts from the review schedule
- Prompt-shaping hints from reviewer feedback on those concepts

A learner with no history is a normal case and gets the default beginner
policy, never an error.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from loguru import logger

from src.core.clock import utcnow
from src.core.errors import InvalidInput
from src.generation.policy import (
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    ExerciseType,
    GenerationPolicy,
    Level,
)
from src.mastery.records import ExerciseResult, PerformanceTotals
from src.mastery.store import MasteryStore


class HintSource(Protocol):
    """Anything that can supply prompt-shaping hints for concepts."""

    def hints_for(self, concept_ids: Iterable[str]) -> list[str]: ...


@dataclass
class TopicStats:
    """Per-concept performance over the analysed history window."""

    concept_id: str
    accuracy: float
    count: int
    avg_time_ms: float
    last_seen: datetime | None = None


@dataclass
class PerformanceSnapshot:
    """Overall performance plus streaks from recent history."""

    totals: PerformanceTotals = field(default_factory=PerformanceTotals)
    current_streak: int = 0
    longest_streak: int = 0
    recent_errors: list[ExerciseResult] = field(default_factory=list)


def current_streak(history: list[ExerciseResult]) -> int:
    """Consecutive correct results from the newest backward."""
    streak = 0
    for result in history:
        if not result.is_correct:
            break
        streak += 1
    return streak


def longest_streak(history: list[ExerciseResult]) -> int:
    longest = run = 0
    for result in history:
        if result.is_correct:
            run += 1
            longest = max(longest, run)
        else:
            run = 0
    return longest


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class PerformanceContextBuilder:
    """Builds generation policies from learner performance."""

    # Level thresholds (accuracy in percent)
    BEGINNER_MAX_EXERCISES = 20
    BEGINNER_MAX_ACCURACY = 60.0
    ADVANCED_MIN_EXERCISES = 50
    ADVANCED_MIN_ACCURACY = 85.0

    # Difficulty thresholds
    NEW_LEARNER_EXERCISES = 10
    HIGH_RECENT_ACCURACY = 0.85
    LOW_RECENT_ACCURACY = 0.60
    STEADY_RECENT_ACCURACY = 0.75
    HOT_STREAK = 5
    LONG_STREAK = 10

    # Topic classification
    WEAK_ACCURACY = 0.70
    MASTERED_ACCURACY = 0.90
    MIN_TOPIC_ATTEMPTS = 3
    MAX_RECENT_ERRORS = 5

    def __init__(
        self,
        store: MasteryStore,
        hint_source: HintSource | None = None,
        history_size: int = 20,
        recent_window: int = 10,
        max_new_concepts: int = 10,
        max_topic_concepts: int = 5,
        max_due_concepts: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.hint_source = hint_source
        self.history_size = history_size
        self.recent_window = recent_window
        self.max_new_concepts = max_new_concepts
        self.max_topic_concepts = max_topic_concepts
        self.max_due_concepts = max_due_concepts
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        store: MasteryStore,
        settings,
        hint_source: HintSource | None = None,
    ) -> PerformanceContextBuilder:
        return cls(
            store,
            hint_source=hint_source,
            history_size=settings.context_history_size,
            recent_window=settings.context_recent_window,
            max_new_concepts=settings.context_max_new_concepts,
            max_topic_concepts=settings.context_max_topic_concepts,
            max_due_concepts=settings.context_max_due_concepts,
        )

    def build_context(
        self,
        learner_id: str,
        exercise_type: str | ExerciseType | None = None,
    ) -> GenerationPolicy:
        """
        Build the generation policy for a learner.

        Args:
            learner_id: Learner to analyse
            exercise_type: Requested exercise format (default contextual_fill)

        Returns:
            GenerationPolicy with level, difficulty, concept focus and hints
        """
        if not isinstance(learner_id, str) or not learner_id.strip():
            raise InvalidInput("learner_id", "must be a non-empty string")
        learner_id = learner_id.strip()
        kind = ExerciseType.parse(exercise_type)

        history = self.store.recent_results(learner_id, self.history_size)
        snapshot = self.snapshot(learner_id, history)
        new_concepts = self.store.unexplored_concepts(learner_id, self.max_new_concepts)
        due_concepts = [
            record.concept_id
            for record in self.store.list_due(learner_id, self.clock(), self.max_due_concepts)
        ]

        if not history:
            policy = GenerationPolicy(
                learner_id=learner_id,
                exercise_type=kind,
                level=Level.BEGINNER,
                difficulty=MIN_DIFFICULTY,
                new_concepts=new_concepts,
                due_concepts=due_concepts,
            )
        else:
            topic_stats = self.analyze_topics(history)
            policy = GenerationPolicy(
                learner_id=learner_id,
                exercise_type=kind,
                level=self.calculate_level(snapshot.totals),
                difficulty=self.calculate_difficulty(history, snapshot.totals),
                weak_concepts=self.weak_concepts(topic_stats),
                mastered_concepts=self.mastered_concepts(topic_stats),
                new_concepts=new_concepts,
                due_concepts=due_concepts,
                streak=current_streak(history),
            )

        if self.hint_source is not None:
            policy.hints = self.hint_source.hints_for(policy.topics())

        logger.debug(f"Context built: {policy.summary()}")
        return policy

    def snapshot(self, learner_id: str, history: list[ExerciseResult] | None = None) -> PerformanceSnapshot:
        """Overall totals plus streaks and recent errors."""
        if history is None:
            history = self.store.recent_results(learner_id, self.history_size)
        return PerformanceSnapshot(
            totals=self.store.performance_totals(learner_id),
            current_streak=current_streak(history),
            longest_streak=longest_streak(history),
            recent_errors=[r for r in history if not r.is_correct][: self.MAX_RECENT_ERRORS],
        )

    # ========================================
    # Level and difficulty
    # ========================================

    def calculate_level(self, totals: PerformanceTotals) -> Level:
        if totals.total_exercises < self.BEGINNER_MAX_EXERCISES or totals.accuracy < self.BEGINNER_MAX_ACCURACY:
            return Level.BEGINNER
        if totals.total_exercises > self.ADVANCED_MIN_EXERCISES and totals.accuracy > self.ADVANCED_MIN_ACCURACY:
            return Level.ADVANCED
        return Level.INTERMEDIATE

    def calculate_difficulty(self, history: list[ExerciseResult], totals: PerformanceTotals) -> int:
        """
        Adaptive difficulty (1-5).

        Base difficulty comes from overall performance; the most recent
        results then nudge it up (hot streak), down (struggling) or by half a
        step (steady performer with a long streak) before rounding.

        Args:
            history: Recent results, newest first
            totals: Whole-history totals

        Returns:
            Difficulty between 1 and 5
        """
        recent = history[: self.recent_window]
        recent_accuracy = sum(1 for r in recent if r.is_correct) / len(recent) if recent else 0.5
        streak = current_streak(history)

        if totals.total_exercises < self.NEW_LEARNER_EXERCISES:
            base = 1
        elif totals.accuracy > self.ADVANCED_MIN_ACCURACY:
            base = 4
        elif totals.accuracy < self.BEGINNER_MAX_ACCURACY:
            base = 2
        else:
            base = 3

        adjusted: float = base
        if recent_accuracy > self.HIGH_RECENT_ACCURACY and streak > self.HOT_STREAK:
            adjusted = min(MAX_DIFFICULTY, base + 1)
        if recent_accuracy < self.LOW_RECENT_ACCURACY:
            adjusted = max(MIN_DIFFICULTY, base - 1)
        if self.STEADY_RECENT_ACCURACY <= recent_accuracy <= self.HIGH_RECENT_ACCURACY and streak > self.LONG_STREAK:
            adjusted = min(MAX_DIFFICULTY, base + 0.5)

        return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, _round_half_up(adjusted)))

    # ========================================
    # Topic classification
    # ========================================

    def analyze_topics(self, history: list[ExerciseResult]) -> list[TopicStats]:
        """Per-concept accuracy over the history window, most practised first."""
        buckets: dict[str, dict] = {}
        for result in history:
            bucket = buckets.setdefault(
                result.concept_id, {"correct": 0, "total": 0, "time": 0, "last_seen": None}
            )
            bucket["total"] += 1
            bucket["time"] += result.response_time_ms
            if result.is_correct:
                bucket["correct"] += 1
            if bucket["last_seen"] is None or result.timestamp > bucket["last_seen"]:
                bucket["last_seen"] = result.timestamp

        stats = [
            TopicStats(
                concept_id=concept_id,
                accuracy=b["correct"] / b["total"],
                count=b["total"],
                avg_time_ms=b["time"] / b["total"],
                last_seen=b["last_seen"],
            )
            for concept_id, b in buckets.items()
        ]
        return sorted(stats, key=lambda s: (-s.count, s.concept_id))

    def weak_concepts(self, stats: list[TopicStats]) -> list[str]:
        weak = [s for s in stats if s.accuracy < self.WEAK_ACCURACY and s.count >= self.MIN_TOPIC_ATTEMPTS]
        weak.sort(key=lambda s: (s.accuracy, s.concept_id))
        return [s.concept_id for s in weak[: self.max_topic_concepts]]

    def mastered_concepts(self, stats: list[TopicStats]) -> list[str]:
        mastered = [
            s for s in stats if s.accuracy > self.MASTERED_ACCURACY and s.count >= self.MIN_TOPIC_ATTEMPTS
        ]
        mastered.sort(key=lambda s: (-s.accuracy, s.concept_id))
        return [s.concept_id for s in mastered[: self.max_topic_concepts]]
