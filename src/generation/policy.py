"""
Generation policy and cache key derivation.

A GenerationPolicy is the per-request summary of a learner's performance that
shapes content generation. Its normalized form (learner id and streak
excluded, concept lists and hints sorted, difficulty coerced to int) is what
the cache key is derived from, so learners in the same situation share cached
content.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from src.core.errors import InvalidInput


class Level(str, Enum):
    """Learner skill level."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class ExerciseType(str, Enum):
    """Exercise formats the generator can produce."""

    CONTEXTUAL_FILL = "contextual_fill"
    TERM_MATCHING = "term_matching"
    MULTIPLE_CHOICE = "multiple_choice"
    TRANSLATION = "translation"

    @classmethod
    def parse(cls, value: str | ExerciseType | None) -> ExerciseType:
        """Parse an exercise type, defaulting to contextual fill."""
        if value is None or value == "":
            return cls.CONTEXTUAL_FILL
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower().replace("-", "_"))
        except ValueError:
            allowed = ", ".join(t.value for t in cls)
            raise InvalidInput("exercise_type", f"unknown type {value!r} (expected one of: {allowed})") from None


MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5


@dataclass
class GenerationPolicy:
    """Parameters for one content generation request."""

    learner_id: str
    exercise_type: ExerciseType = ExerciseType.CONTEXTUAL_FILL
    level: Level = Level.BEGINNER
    difficulty: int = MIN_DIFFICULTY
    weak_concepts: list[str] = field(default_factory=list)
    mastered_concepts: list[str] = field(default_factory=list)
    new_concepts: list[str] = field(default_factory=list)
    due_concepts: list[str] = field(default_factory=list)
    streak: int = 0
    hints: list[str] = field(default_factory=list)

    def topics(self) -> list[str]:
        """Distinct concepts referenced by the policy, sorted."""
        return sorted(
            set(self.weak_concepts)
            | set(self.mastered_concepts)
            | set(self.new_concepts)
            | set(self.due_concepts)
        )

    def normalized(self) -> dict[str, Any]:
        """Canonical form used for cache key derivation."""
        return {
            "exercise_type": ExerciseType.parse(self.exercise_type).value,
            "level": Level(self.level).value,
            "difficulty": int(self.difficulty),
            "weak": sorted(self.weak_concepts),
            "mastered": sorted(self.mastered_concepts),
            "new": sorted(self.new_concepts),
            "due": sorted(self.due_concepts),
            "hints": sorted(self.hints),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "learner_id": self.learner_id,
            "exercise_type": ExerciseType.parse(self.exercise_type).value,
            "level": Level(self.level).value,
            "difficulty": int(self.difficulty),
            "weak_concepts": list(self.weak_concepts),
            "mastered_concepts": list(self.mastered_concepts),
            "new_concepts": list(self.new_concepts),
            "due_concepts": list(self.due_concepts),
            "streak": self.streak,
            "hints": list(self.hints),
        }

    def summary(self) -> str:
        """One-line description for logs."""
        return " | ".join(
            [
                f"Learner: {self.learner_id}",
                f"Type: {ExerciseType.parse(self.exercise_type).value}",
                f"Level: {Level(self.level).value}",
                f"Difficulty: {int(self.difficulty)}/5",
                f"Streak: {self.streak}",
                f"Weak: {', '.join(self.weak_concepts) or 'none'}",
                f"Mastered: {', '.join(self.mastered_concepts) or 'none'}",
                f"New: {', '.join(self.new_concepts[:3]) or 'none'}",
                f"Hints: {len(self.hints)}",
            ]
        )


def compute_cache_key(policy: GenerationPolicy, length: int = 32) -> str:
    """
    Derive the cache key for a policy.

    SHA-256 over the JSON of the normalized policy (sorted keys, sorted
    lists), truncated to ``length`` hex characters.
    """
    if not 8 <= length <= 64:
        raise InvalidInput("length", "cache key length must be between 8 and 64")
    canonical = json.dumps(policy.normalized(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:length]
