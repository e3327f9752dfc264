"""Append-only persistence for reviewer feedback events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from src.db.database import session_scope
from src.db.models import ApprovalEventRow, RejectionEventRow


@dataclass(frozen=True)
class FeedbackEvent:
    """A rejection (with category) or an approval, as replayed by the learner."""

    concept_id: str
    timestamp: datetime
    kind: str  # 'rejection' or 'approval'
    category: str | None = None


class FeedbackStore:
    """Writes and replays rejection / approval events."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def record_rejection(
        self,
        concept_id: str,
        category: str,
        note: str | None,
        reviewer_id: str | None,
        at: datetime,
    ) -> None:
        with session_scope(self.session_factory) as session:
            session.add(
                RejectionEventRow(
                    concept_id=concept_id,
                    category=category,
                    note=note,
                    reviewer_id=reviewer_id,
                    created_at=at,
                )
            )

    def record_approval(self, concept_id: str, reviewer_id: str | None, at: datetime) -> None:
        with session_scope(self.session_factory) as session:
            session.add(ApprovalEventRow(concept_id=concept_id, reviewer_id=reviewer_id, created_at=at))

    def events(self, concept_id: str | None = None) -> list[FeedbackEvent]:
        """All events (optionally for one concept) in timestamp order."""
        rejections = select(
            RejectionEventRow.concept_id, RejectionEventRow.created_at, RejectionEventRow.category, RejectionEventRow.id
        )
        approvals = select(ApprovalEventRow.concept_id, ApprovalEventRow.created_at, ApprovalEventRow.id)
        if concept_id is not None:
            rejections = rejections.where(RejectionEventRow.concept_id == concept_id)
            approvals = approvals.where(ApprovalEventRow.concept_id == concept_id)

        with session_scope(self.session_factory) as session:
            events = [
                (created_at, 0, row_id, FeedbackEvent(cid, created_at, "rejection", category))
                for cid, created_at, category, row_id in session.execute(rejections).all()
            ]
            events += [
                (created_at, 1, row_id, FeedbackEvent(cid, created_at, "approval"))
                for cid, created_at, row_id in session.execute(approvals).all()
            ]
        events.sort(key=lambda item: item[:3])
        return [event for *_, event in events]

    def rejection_summary(self, concept_id: str | None = None) -> list[dict[str, Any]]:
        """Rejection counts per (concept, category), most frequent first."""
        query = (
            select(
                RejectionEventRow.concept_id,
                RejectionEventRow.category,
                func.count(RejectionEventRow.id).label("count"),
                func.max(RejectionEventRow.created_at).label("last_rejected_at"),
            )
            .group_by(RejectionEventRow.concept_id, RejectionEventRow.category)
            .order_by(func.count(RejectionEventRow.id).desc(), RejectionEventRow.concept_id, RejectionEventRow.category)
        )
        if concept_id is not None:
            query = query.where(RejectionEventRow.concept_id == concept_id)

        with session_scope(self.session_factory) as session:
            return [
                {
                    "concept_id": cid,
                    "category": category,
                    "count": int(count),
                    "last_rejected_at": last.isoformat() if last else None,
                }
                for cid, category, count, last in session.execute(query).all()
            ]
