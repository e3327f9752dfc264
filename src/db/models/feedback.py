"""
Reviewer Feedback Models.

Append-only rejection and approval events. Concept confidence and
rejection-pattern counters are rebuilt from these rows.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.clock import utcnow

from .base import Base


class RejectionEventRow(Base):
    """A reviewer or learner rejected generated content for a concept."""

    __tablename__ = "rejection_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    concept_id: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # 'incorrect-match', 'incorrect-feature', 'poor-localization', ...
    note: Mapped[str | None] = mapped_column(Text)
    reviewer_id: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_rejection_events_concept", "concept_id", "created_at"),
        Index("idx_rejection_events_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<RejectionEvent concept={self.concept_id} category={self.category}>"


class ApprovalEventRow(Base):
    """A reviewer approved generated content for a concept."""

    __tablename__ = "approval_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    concept_id: Mapped[str] = mapped_column(String(255), nullable=False)
    reviewer_id: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_approval_events_concept", "concept_id", "created_at"),)
