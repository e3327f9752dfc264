"""
Feedback Learner.

Keeps a per-concept ConceptPattern (confidence plus rejection counters) that
shapes future generation:
- Rejection: confidence -= penalty (floored), counter for the category += 1
- Approval: confidence += boost (capped at 1.0)
- Hints: categories rejected at least ``hint_min_count`` times, most frequent
  first, top ``max_hints``

Patterns are a process-local read-through cache. Every mutation is written to
the FeedbackStore first, and any pattern can be rebuilt by replaying events
on top of the initial confidence derived from mastery records.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from src.core.clock import utcnow
from src.core.errors import InvalidInput
from src.core.locks import KeyedLocks
from src.feedback.categories import CATEGORY_GUIDANCE, RejectionCategory, categorize_note
from src.feedback.store import FeedbackEvent, FeedbackStore
from src.mastery.store import MasteryStore


@dataclass
class ConceptPattern:
    """Derived feedback state for one concept."""

    concept_id: str
    average_confidence: float
    rejection_counts: dict[str, int] = field(default_factory=dict)
    approval_count: int = 0
    last_updated: datetime | None = None

    @property
    def total_rejections(self) -> int:
        return sum(self.rejection_counts.values())

    def to_dict(self) -> dict:
        return {
            "concept_id": self.concept_id,
            "average_confidence": round(self.average_confidence, 4),
            "rejection_counts": dict(self.rejection_counts),
            "approval_count": self.approval_count,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


class FeedbackLearner:
    """Turns rejection and approval events into confidence and hints."""

    MAX_CONFIDENCE = 1.0
    # Initial confidence derived from mastery is kept inside this band
    MIN_INITIAL_CONFIDENCE = 0.5
    MAX_INITIAL_CONFIDENCE = 0.85

    def __init__(
        self,
        store: FeedbackStore,
        mastery_store: MasteryStore | None = None,
        initial_confidence: float = 0.8,
        rejection_penalty: float = 0.1,
        approval_boost: float = 0.05,
        confidence_floor: float = 0.3,
        hint_min_count: int = 2,
        max_hints: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize learner.

        Args:
            store: Durable event log
            mastery_store: Source of per-concept mastery for initial confidence
            initial_confidence: Confidence for concepts nobody has practised
            rejection_penalty: Confidence removed per rejection
            approval_boost: Confidence added per approval
            confidence_floor: Confidence never drops below this
            hint_min_count: Rejections in a category before it becomes a hint
            max_hints: Maximum hints per concept
            clock: Source of "now" (naive UTC)
        """
        if not 0.0 <= confidence_floor <= initial_confidence <= self.MAX_CONFIDENCE:
            raise InvalidInput("initial_confidence", "must satisfy floor <= initial <= 1.0")
        self.store = store
        self.mastery_store = mastery_store
        self.initial_confidence = initial_confidence
        self.rejection_penalty = rejection_penalty
        self.approval_boost = approval_boost
        self.confidence_floor = confidence_floor
        self.hint_min_count = hint_min_count
        self.max_hints = max_hints
        self.clock = clock
        self._patterns: dict[str, ConceptPattern] = {}
        self._locks = KeyedLocks()

    @classmethod
    def from_settings(cls, store: FeedbackStore, mastery_store: MasteryStore | None, settings) -> FeedbackLearner:
        return cls(
            store,
            mastery_store,
            initial_confidence=settings.feedback_initial_confidence,
            rejection_penalty=settings.feedback_rejection_penalty,
            approval_boost=settings.feedback_approval_boost,
            confidence_floor=settings.feedback_confidence_floor,
            hint_min_count=settings.feedback_hint_min_count,
            max_hints=settings.feedback_max_hints,
        )

    # ========================================
    # Events
    # ========================================

    def apply_rejection(
        self,
        concept_id: str,
        category: str | RejectionCategory | None = None,
        note: str | None = None,
        reviewer_id: str | None = None,
    ) -> ConceptPattern:
        """
        Record a rejection and lower the concept's confidence.

        When no category is given it is inferred from the note. The event is
        persisted before the in-memory pattern changes; persistence errors
        propagate.
        """
        concept_id = self._require_id(concept_id)
        resolved = RejectionCategory.parse(category) if category else categorize_note(note)
        now = self.clock()

        with self._locks.hold(concept_id):
            pattern = self._load(concept_id)
            self.store.record_rejection(concept_id, resolved.value, note, reviewer_id, now)
            self._apply_event(pattern, FeedbackEvent(concept_id, now, "rejection", resolved.value))

        logger.info(
            f"Rejection for {concept_id} ({resolved.value}): "
            f"confidence={pattern.average_confidence:.2f} count={pattern.rejection_counts[resolved.value]}"
        )
        return pattern

    def apply_approval(self, concept_id: str, reviewer_id: str | None = None) -> ConceptPattern:
        """Record an approval and raise the concept's confidence."""
        concept_id = self._require_id(concept_id)
        now = self.clock()

        with self._locks.hold(concept_id):
            pattern = self._load(concept_id)
            self.store.record_approval(concept_id, reviewer_id, now)
            self._apply_event(pattern, FeedbackEvent(concept_id, now, "approval"))

        logger.info(f"Approval for {concept_id}: confidence={pattern.average_confidence:.2f}")
        return pattern

    def _apply_event(self, pattern: ConceptPattern, event: FeedbackEvent) -> None:
        if event.kind == "rejection":
            category = event.category or RejectionCategory.OTHER.value
            pattern.average_confidence = max(
                self.confidence_floor, pattern.average_confidence - self.rejection_penalty
            )
            pattern.rejection_counts[category] = pattern.rejection_counts.get(category, 0) + 1
        else:
            pattern.average_confidence = min(
                self.MAX_CONFIDENCE, pattern.average_confidence + self.approval_boost
            )
            pattern.approval_count += 1
        pattern.last_updated = event.timestamp

    # ========================================
    # Reads
    # ========================================

    def pattern(self, concept_id: str) -> ConceptPattern:
        """Current pattern for a concept (loaded from storage on first use)."""
        concept_id = self._require_id(concept_id)
        with self._locks.hold(concept_id):
            return self._load(concept_id)

    def confidence(self, concept_id: str) -> float:
        return self.pattern(concept_id).average_confidence

    def enhancement_hints(self, concept_id: str) -> list[str]:
        """
        Prompt-shaping cautions for a concept.

        Only repeated problems count: categories with at least
        ``hint_min_count`` rejections, ranked by count (ties by category),
        capped at ``max_hints``. Each hint reads like
        ``"incorrect-feature" (3x): make sure ...``.
        """
        pattern = self.pattern(concept_id)
        repeated = [
            (category, count)
            for category, count in pattern.rejection_counts.items()
            if count >= self.hint_min_count
        ]
        repeated.sort(key=lambda item: (-item[1], item[0]))
        return [
            f'"{category}" ({count}x): {CATEGORY_GUIDANCE[RejectionCategory(category)]}'
            for category, count in repeated[: self.max_hints]
        ]

    def hints_for(self, concept_ids: Iterable[str]) -> list[str]:
        """Hints for several concepts, each prefixed with its concept id."""
        hints: list[str] = []
        for concept_id in sorted(set(concept_ids)):
            hints.extend(f"{concept_id}: {hint}" for hint in self.enhancement_hints(concept_id))
        return hints

    def rejection_summary(self, concept_id: str | None = None) -> list[dict]:
        return self.store.rejection_summary(concept_id)

    # ========================================
    # Rebuild
    # ========================================

    def rebuild(self) -> int:
        """
        Rebuild every pattern from durable storage.

        Initial confidence comes from mastery records, then all events are
        replayed in timestamp order. Returns the number of patterns built.
        """
        events = self.store.events()
        concept_ids = {event.concept_id for event in events}
        means = self.mastery_store.concept_mastery_means(concept_ids) if self.mastery_store and concept_ids else {}

        patterns: dict[str, ConceptPattern] = {}
        for event in events:
            pattern = patterns.get(event.concept_id)
            if pattern is None:
                pattern = ConceptPattern(event.concept_id, self._initial_from_mean(means.get(event.concept_id)))
                patterns[event.concept_id] = pattern
            self._apply_event(pattern, event)

        self._patterns = patterns
        logger.info(f"Rebuilt {len(patterns)} concept patterns from {len(events)} feedback events")
        return len(patterns)

    def _load(self, concept_id: str) -> ConceptPattern:
        """Read-through: build the pattern from storage when not cached. Caller holds the key lock."""
        pattern = self._patterns.get(concept_id)
        if pattern is not None:
            return pattern

        mean = None
        if self.mastery_store is not None:
            mean = self.mastery_store.concept_mastery_means([concept_id]).get(concept_id)
        pattern = ConceptPattern(concept_id, self._initial_from_mean(mean))
        for event in self.store.events(concept_id):
            self._apply_event(pattern, event)
        self._patterns[concept_id] = pattern
        return pattern

    def _initial_from_mean(self, mean: float | None) -> float:
        if mean is None:
            return self.initial_confidence
        return max(self.MIN_INITIAL_CONFIDENCE, min(self.MAX_INITIAL_CONFIDENCE, mean))

    @staticmethod
    def _require_id(concept_id: str) -> str:
        if not isinstance(concept_id, str) or not concept_id.strip():
            raise InvalidInput("concept_id", "must be a non-empty string")
        return concept_id.strip()
