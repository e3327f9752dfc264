"""
Mastery Store - persistence for mastery records and exercise results.

Pure data access: no scoring or scheduling decisions are made here. The
exposure write path takes the scorer's update function so that the
read-modify-write runs inside a single transaction with the row locked.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import case, delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from src.db.database import session_scope
from src.db.models import Concept, ExerciseResultRow, LearnerMastery
from src.mastery.records import (
    ExerciseResult,
    MasteryRecord,
    MasteryStats,
    PerformanceTotals,
)

ExposureUpdate = Callable[[MasteryRecord | None, ExerciseResult], MasteryRecord]

_RECORD_FIELDS = (
    "exposure_count",
    "correct_count",
    "incorrect_count",
    "last_outcome_streak",
    "mastery_score",
    "confidence_tier",
    "avg_response_time_ms",
    "fastest_response_time_ms",
    "first_seen_at",
    "last_seen_at",
    "last_correct_at",
    "next_review_at",
)


class MasteryStore:
    """
    Repository for learner mastery state.

    Handles:
    - Transactional upsert of mastery records plus the result append
    - Due / weak queries for review selection
    - Exercise history reads for performance analysis
    - The concept catalog (source of unexplored concepts)
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    # ========================================
    # Mastery records
    # ========================================

    def get(self, learner_id: str, concept_id: str) -> MasteryRecord | None:
        """Get a learner's record for a concept."""
        with session_scope(self.session_factory) as session:
            row = session.execute(
                select(LearnerMastery).where(
                    LearnerMastery.learner_id == learner_id,
                    LearnerMastery.concept_id == concept_id,
                )
            ).scalar_one_or_none()
            return MasteryRecord.from_row(row) if row else None

    def apply_exposure(self, result: ExerciseResult, update: ExposureUpdate) -> MasteryRecord:
        """
        Record one exposure in a single transaction.

        Locks the mastery row, hands the previous state to ``update``, writes
        the returned state back and appends the exercise result. Any failure
        rolls back both writes and propagates.

        Args:
            result: The exercise outcome being recorded
            update: Computes the new record from (previous record or None, result)

        Returns:
            The persisted MasteryRecord
        """
        with session_scope(self.session_factory) as session:
            row = session.execute(
                select(LearnerMastery)
                .where(
                    LearnerMastery.learner_id == result.learner_id,
                    LearnerMastery.concept_id == result.concept_id,
                )
                .with_for_update()
            ).scalar_one_or_none()

            previous = MasteryRecord.from_row(row) if row else None
            record = update(previous, result)

            if row is None:
                row = LearnerMastery(learner_id=record.learner_id, concept_id=record.concept_id)
                session.add(row)
            for name in _RECORD_FIELDS:
                setattr(row, name, getattr(record, name))
            row.updated_at = result.timestamp

            session.add(
                ExerciseResultRow(
                    learner_id=result.learner_id,
                    concept_id=result.concept_id,
                    is_correct=result.is_correct,
                    response_time_ms=result.response_time_ms,
                    created_at=result.timestamp,
                )
            )
            return record

    def list_due(self, learner_id: str, now: datetime, limit: int) -> list[MasteryRecord]:
        """Records whose next review is at or before ``now``, soonest first."""
        with session_scope(self.session_factory) as session:
            rows = session.execute(
                select(LearnerMastery)
                .where(
                    LearnerMastery.learner_id == learner_id,
                    LearnerMastery.next_review_at.is_not(None),
                    LearnerMastery.next_review_at <= now,
                )
                .order_by(LearnerMastery.next_review_at.asc(), LearnerMastery.concept_id)
                .limit(limit)
            ).scalars().all()
            return [MasteryRecord.from_row(row) for row in rows]

    def list_weak(self, learner_id: str, threshold: float, limit: int) -> list[MasteryRecord]:
        """Exposed records with mastery below ``threshold``, weakest first."""
        with session_scope(self.session_factory) as session:
            rows = session.execute(
                select(LearnerMastery)
                .where(
                    LearnerMastery.learner_id == learner_id,
                    LearnerMastery.exposure_count > 0,
                    LearnerMastery.mastery_score < threshold,
                )
                .order_by(LearnerMastery.mastery_score.asc(), LearnerMastery.concept_id)
                .limit(limit)
            ).scalars().all()
            return [MasteryRecord.from_row(row) for row in rows]

    def mastery_stats(
        self,
        learner_id: str,
        weak_threshold: float,
        mastered_threshold: float,
        now: datetime,
    ) -> MasteryStats:
        """Aggregate a learner's mastery across every concept they have seen."""
        with session_scope(self.session_factory) as session:
            rows = session.execute(
                select(
                    LearnerMastery.mastery_score,
                    LearnerMastery.confidence_tier,
                    LearnerMastery.next_review_at,
                ).where(
                    LearnerMastery.learner_id == learner_id,
                    LearnerMastery.exposure_count > 0,
                )
            ).all()

        stats = MasteryStats()
        if not rows:
            return stats

        stats.total_concepts = len(rows)
        stats.avg_mastery = sum(score for score, _, _ in rows) / len(rows)
        for score, tier, next_review_at in rows:
            stats.tier_counts[tier] = stats.tier_counts.get(tier, 0) + 1
            if score < weak_threshold:
                stats.weak_count += 1
            if score >= mastered_threshold:
                stats.mastered_count += 1
            if next_review_at is not None and next_review_at <= now:
                stats.due_count += 1
        return stats

    def concept_mastery_means(self, concept_ids: Iterable[str] | None = None) -> dict[str, float]:
        """Mean mastery score per concept across all learners who saw it."""
        query = (
            select(LearnerMastery.concept_id, func.avg(LearnerMastery.mastery_score))
            .where(LearnerMastery.exposure_count > 0)
            .group_by(LearnerMastery.concept_id)
        )
        if concept_ids is not None:
            query = query.where(LearnerMastery.concept_id.in_(list(concept_ids)))
        with session_scope(self.session_factory) as session:
            rows = session.execute(query).all()
            return {concept_id: float(mean) for concept_id, mean in rows}

    def prune_stale(self, cutoff: datetime) -> int:
        """Delete zero-exposure records last touched before ``cutoff``."""
        with session_scope(self.session_factory) as session:
            result = session.execute(
                delete(LearnerMastery).where(
                    LearnerMastery.exposure_count == 0,
                    LearnerMastery.updated_at < cutoff,
                )
            )
            pruned = result.rowcount or 0
        if pruned:
            logger.info(f"Pruned {pruned} stale mastery records")
        return pruned

    # ========================================
    # Exercise history
    # ========================================

    def recent_results(self, learner_id: str, limit: int) -> list[ExerciseResult]:
        """Most recent results for a learner, newest first."""
        with session_scope(self.session_factory) as session:
            rows = session.execute(
                select(ExerciseResultRow)
                .where(ExerciseResultRow.learner_id == learner_id)
                .order_by(ExerciseResultRow.created_at.desc(), ExerciseResultRow.id.desc())
                .limit(limit)
            ).scalars().all()
            return [
                ExerciseResult(
                    learner_id=row.learner_id,
                    concept_id=row.concept_id,
                    is_correct=row.is_correct,
                    response_time_ms=row.response_time_ms,
                    timestamp=row.created_at,
                )
                for row in rows
            ]

    def performance_totals(self, learner_id: str) -> PerformanceTotals:
        """Totals over the learner's whole history."""
        with session_scope(self.session_factory) as session:
            total, correct, avg_time = session.execute(
                select(
                    func.count(ExerciseResultRow.id),
                    func.sum(case((ExerciseResultRow.is_correct.is_(True), 1), else_=0)),
                    func.avg(ExerciseResultRow.response_time_ms),
                ).where(ExerciseResultRow.learner_id == learner_id)
            ).one()
        return PerformanceTotals(
            total_exercises=int(total or 0),
            correct_answers=int(correct or 0),
            avg_time_ms=float(avg_time or 0.0),
        )

    # ========================================
    # Concept catalog
    # ========================================

    def add_concepts(self, concepts: Iterable[str | dict[str, Any]]) -> int:
        """
        Add concepts to the catalog, skipping ids that already exist.

        Args:
            concepts: Concept ids, or dicts with ``id`` plus optional
                term / translation / category / difficulty_level

        Returns:
            Number of concepts added
        """
        entries: dict[str, dict[str, Any]] = {}
        for concept in concepts:
            entry = {"id": concept} if isinstance(concept, str) else dict(concept)
            if not entry.get("id"):
                continue
            entries[entry["id"]] = entry
        if not entries:
            return 0

        with session_scope(self.session_factory) as session:
            existing = set(
                session.execute(select(Concept.id).where(Concept.id.in_(list(entries)))).scalars()
            )
            added = 0
            for concept_id, entry in entries.items():
                if concept_id in existing:
                    continue
                session.add(
                    Concept(
                        id=concept_id,
                        term=entry.get("term"),
                        translation=entry.get("translation"),
                        category=entry.get("category"),
                        difficulty_level=entry.get("difficulty_level", 1),
                    )
                )
                added += 1
        logger.info(f"Added {added} concepts to catalog ({len(entries) - added} already present)")
        return added

    def catalog_concepts(self) -> list[dict[str, Any]]:
        """All catalog concepts ordered by id."""
        with session_scope(self.session_factory) as session:
            rows = session.execute(select(Concept).order_by(Concept.id)).scalars().all()
            return [
                {
                    "id": row.id,
                    "term": row.term,
                    "translation": row.translation,
                    "category": row.category,
                    "difficulty_level": row.difficulty_level,
                }
                for row in rows
            ]

    def unexplored_concepts(self, learner_id: str, limit: int) -> list[str]:
        """Catalog concepts the learner has never attempted, ordered by id."""
        attempted = (
            select(ExerciseResultRow.concept_id)
            .where(ExerciseResultRow.learner_id == learner_id)
            .distinct()
        )
        with session_scope(self.session_factory) as session:
            return list(
                session.execute(
                    select(Concept.id)
                    .where(Concept.id.not_in(attempted))
                    .order_by(Concept.id)
                    .limit(limit)
                ).scalars()
            )
