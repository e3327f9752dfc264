"""
Spaced Repetition Review Scheduler.

Interval grows geometrically with the number of effective correct answers,
at a rate chosen by mastery tier:

    interval = base * growth ^ level,  capped at max_interval

    growth = 2.5 if mastery >= 0.8
             1.8 if mastery >= 0.5
             1.3 otherwise

Lapses: every incorrect answer removes ``lapse_penalty_levels`` from the
exponent (floored at 0), so a single mistake shortens the next interval
without wiping out a long history of correct answers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.core.clock import utcnow
from src.mastery.records import MasteryRecord


@dataclass
class ReviewSchedulerConfig:
    """Configuration for the review scheduler."""

    base_interval_days: float = 1.0
    max_interval_days: float = 90.0
    lapse_penalty_levels: int = 2
    high_mastery: float = 0.8
    medium_mastery: float = 0.5
    high_growth: float = 2.5
    medium_growth: float = 1.8
    low_growth: float = 1.3


class ReviewScheduler:
    """Computes next review timestamps. Stateless apart from its config."""

    def __init__(self, config: ReviewSchedulerConfig | None = None):
        self.config = config or ReviewSchedulerConfig()

    @classmethod
    def from_settings(cls, settings) -> ReviewScheduler:
        return cls(
            ReviewSchedulerConfig(
                base_interval_days=settings.review_base_interval_days,
                max_interval_days=settings.review_max_interval_days,
                lapse_penalty_levels=settings.review_lapse_penalty_levels,
            )
        )

    def growth_factor(self, mastery_score: float) -> float:
        if mastery_score >= self.config.high_mastery:
            return self.config.high_growth
        if mastery_score >= self.config.medium_mastery:
            return self.config.medium_growth
        return self.config.low_growth

    def effective_level(self, record: MasteryRecord) -> int:
        """Correct answers that still count toward the interval exponent."""
        penalty = self.config.lapse_penalty_levels * record.incorrect_count
        return max(0, record.correct_count - penalty)

    def interval_days(self, record: MasteryRecord) -> float:
        """
        Review interval in days for the record's current state.

        Args:
            record: Mastery state (mastery_score, correct/incorrect counts)

        Returns:
            Interval in days, between base_interval_days and max_interval_days
        """
        base = self.config.base_interval_days
        cap = self.config.max_interval_days
        growth = self.growth_factor(record.mastery_score)
        level = self.effective_level(record)

        # Compare in log space so huge exponents cannot overflow
        if level * math.log(growth) >= math.log(cap / base):
            return cap
        return min(base * growth**level, cap)

    def next_review(self, record: MasteryRecord, now: datetime | None = None) -> datetime:
        """Timestamp at which the concept should next be reviewed."""
        now = now or utcnow()
        return now + timedelta(days=self.interval_days(record))
