"""
Mastery Module - Per-learner concept mastery and review scheduling.

Components:
- records: MasteryRecord / ExerciseResult value objects
- store: SQLAlchemy-backed MasteryStore (pure data access)
- scorer: MasteryScorer (score, tier, streak, running averages)
- scheduler: ReviewScheduler (tiered spaced repetition, capped)
"""

from src.mastery.records import (
    ConceptRecommendation,
    ExerciseResult,
    MasteryRecord,
    MasteryStats,
    PerformanceTotals,
)
from src.mastery.scheduler import ReviewScheduler, ReviewSchedulerConfig
from src.mastery.scorer import MasteryScorer, confidence_tier
from src.mastery.store import MasteryStore

__all__ = [
    "ConceptRecommendation",
    "ExerciseResult",
    "MasteryRecord",
    "MasteryScorer",
    "MasteryStats",
    "MasteryStore",
    "PerformanceTotals",
    "ReviewScheduler",
    "ReviewSchedulerConfig",
    "confidence_tier",
]
