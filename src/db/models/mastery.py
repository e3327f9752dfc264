"""
Mastery Tracking Models.

SQLAlchemy models for per-learner concept mastery:
- Concept catalog (source of "new" concepts)
- Learner mastery state, one row per (learner, concept)
- Append-only exercise results
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.clock import utcnow

from .base import Base


class Concept(Base):
    """
    A vocabulary concept that can be practised.

    The catalog is owned by the content side of the platform; the engine only
    reads it to find concepts a learner has never attempted.
    """

    __tablename__ = "concepts"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    term: Mapped[str | None] = mapped_column(Text)
    translation: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(100))
    difficulty_level: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<Concept id={self.id} term={self.term}>"


class LearnerMastery(Base):
    """
    Mastery state per learner per concept.

    Counters only ever grow; mastery_score, confidence_tier and next_review_at
    are recomputed by the scorer on every exposure.
    """

    __tablename__ = "learner_mastery"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    concept_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Exposure tracking
    exposure_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    correct_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    incorrect_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_outcome_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Mastery metrics
    mastery_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    confidence_tier: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Response timing
    avg_response_time_ms: Mapped[float | None] = mapped_column(Float)
    fastest_response_time_ms: Mapped[int | None] = mapped_column(Integer)

    # Spaced repetition
    first_seen_at: Mapped[datetime | None] = mapped_column(DateTime)
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime)
    last_correct_at: Mapped[datetime | None] = mapped_column(DateTime)
    next_review_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("learner_id", "concept_id", name="uq_learner_concept"),
        Index("idx_learner_mastery_review", "learner_id", "next_review_at"),
        Index("idx_learner_mastery_score", "learner_id", "mastery_score"),
        Index("idx_learner_mastery_concept", "concept_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<LearnerMastery learner={self.learner_id} concept={self.concept_id} "
            f"score={self.mastery_score:.3f}>"
        )


class ExerciseResultRow(Base):
    """An immutable exercise outcome. Rows are inserted, never updated."""

    __tablename__ = "exercise_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    concept_id: Mapped[str] = mapped_column(String(255), nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_exercise_results_learner_time", "learner_id", "created_at"),
        Index("idx_exercise_results_concept", "learner_id", "concept_id"),
    )

    def __repr__(self) -> str:
        return f"<ExerciseResult learner={self.learner_id} concept={self.concept_id} correct={self.is_correct}>"
