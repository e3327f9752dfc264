"""Value objects passed between the mastery store, scorer and callers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from src.core.clock import utcnow


@dataclass
class MasteryRecord:
    """Mastery state of one learner for one concept."""

    learner_id: str
    concept_id: str
    exposure_count: int = 0
    correct_count: int = 0
    incorrect_count: int = 0
    last_outcome_streak: int = 0  # >0 correct run, <0 incorrect run
    mastery_score: float = 0.0
    confidence_tier: int = 1
    avg_response_time_ms: float | None = None
    fastest_response_time_ms: int | None = None
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None
    last_correct_at: datetime | None = None
    next_review_at: datetime | None = None

    @property
    def accuracy(self) -> float:
        if self.exposure_count == 0:
            return 0.0
        return self.correct_count / self.exposure_count

    @classmethod
    def from_row(cls, row: Any) -> MasteryRecord:
        return cls(
            learner_id=row.learner_id,
            concept_id=row.concept_id,
            exposure_count=row.exposure_count,
            correct_count=row.correct_count,
            incorrect_count=row.incorrect_count,
            last_outcome_streak=row.last_outcome_streak,
            mastery_score=row.mastery_score,
            confidence_tier=row.confidence_tier,
            avg_response_time_ms=row.avg_response_time_ms,
            fastest_response_time_ms=row.fastest_response_time_ms,
            first_seen_at=row.first_seen_at,
            last_seen_at=row.last_seen_at,
            last_correct_at=row.last_correct_at,
            next_review_at=row.next_review_at,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("first_seen_at", "last_seen_at", "last_correct_at", "next_review_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        data["accuracy"] = self.accuracy
        return data


@dataclass(frozen=True)
class ExerciseResult:
    """A single exercise outcome. Immutable once recorded."""

    learner_id: str
    concept_id: str
    is_correct: bool
    response_time_ms: int
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class PerformanceTotals:
    """Aggregate performance over a learner's whole history."""

    total_exercises: int = 0
    correct_answers: int = 0
    avg_time_ms: float = 0.0

    @property
    def accuracy(self) -> float:
        """Accuracy as a percentage (0-100)."""
        if self.total_exercises == 0:
            return 0.0
        return self.correct_answers / self.total_exercises * 100


@dataclass
class MasteryStats:
    """Summary of a learner's mastery across all seen concepts."""

    total_concepts: int = 0
    avg_mastery: float = 0.0
    tier_counts: dict[int, int] = field(default_factory=lambda: {tier: 0 for tier in range(1, 6)})
    weak_count: int = 0
    mastered_count: int = 0
    due_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_concepts": self.total_concepts,
            "avg_mastery": round(self.avg_mastery, 4),
            "tier_counts": {str(tier): count for tier, count in self.tier_counts.items()},
            "weak_count": self.weak_count,
            "mastered_count": self.mastered_count,
            "due_count": self.due_count,
        }


@dataclass
class ConceptRecommendation:
    """A concept suggested for the next practice session."""

    concept_id: str
    reason: str  # 'due', 'weak', 'new'
    priority: int
    mastery_score: float | None = None
