"""
Mastery router.

Endpoints for recording exposures and selecting concepts to review.
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from loguru import logger
from pydantic import BaseModel, Field

from src.api.dependencies import get_engine
from src.engine.service import MasteryEngine

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class ExposureRequest(BaseModel):
    """One exercise outcome."""

    learner_id: str
    concept_id: str
    is_correct: bool
    response_time_ms: int = Field(ge=0)


class MasteryRecordResponse(BaseModel):
    """Mastery state of one concept for one learner."""

    learner_id: str
    concept_id: str
    exposure_count: int
    correct_count: int
    incorrect_count: int
    last_outcome_streak: int
    mastery_score: float
    confidence_tier: int
    accuracy: float
    avg_response_time_ms: float | None
    fastest_response_time_ms: int | None
    first_seen_at: str | None
    last_seen_at: str | None
    last_correct_at: str | None
    next_review_at: str | None


class MasteryStatsResponse(BaseModel):
    total_concepts: int
    avg_mastery: float
    tier_counts: Dict[str, int]
    weak_count: int
    mastered_count: int
    due_count: int


class RecommendationResponse(BaseModel):
    concept_id: str
    reason: str  # "due", "weak", "new"
    priority: int
    mastery_score: float | None


class ConceptInput(BaseModel):
    id: str
    term: str | None = None
    translation: str | None = None
    category: str | None = None
    difficulty_level: int = Field(default=1, ge=1, le=5)


class AddConceptsRequest(BaseModel):
    concepts: List[ConceptInput]


# ========================================
# Exposure Endpoints
# ========================================


@router.post("/exposures", response_model=MasteryRecordResponse, summary="Record an exposure")
def record_exposure(
    request: ExposureRequest,
    engine: MasteryEngine = Depends(get_engine),
) -> MasteryRecordResponse:
    """
    Record one exercise outcome and return the updated mastery record.

    Each call is a separate exposure; retries are not de-duplicated.
    """
    record = engine.record_exposure(
        request.learner_id,
        request.concept_id,
        request.is_correct,
        request.response_time_ms,
    )
    return MasteryRecordResponse(**record.to_dict())


@router.get(
    "/{learner_id}/concepts/{concept_id}",
    response_model=MasteryRecordResponse,
    summary="Mastery for one concept",
)
def get_mastery(
    learner_id: str,
    concept_id: str,
    engine: MasteryEngine = Depends(get_engine),
) -> MasteryRecordResponse:
    """404 when the learner has never seen the concept."""
    return MasteryRecordResponse(**engine.get_mastery(learner_id, concept_id).to_dict())


# ========================================
# Selection Endpoints
# ========================================


@router.get("/{learner_id}/due", response_model=List[MasteryRecordResponse], summary="Concepts due for review")
def get_due(
    learner_id: str,
    limit: int = Query(default=20, ge=1, le=500),
    engine: MasteryEngine = Depends(get_engine),
) -> List[MasteryRecordResponse]:
    """Concepts whose next review time has passed, soonest first."""
    return [MasteryRecordResponse(**r.to_dict()) for r in engine.get_due_for_review(learner_id, limit)]


@router.get("/{learner_id}/weak", response_model=List[MasteryRecordResponse], summary="Weak concepts")
def get_weak(
    learner_id: str,
    limit: int = Query(default=20, ge=1, le=500),
    engine: MasteryEngine = Depends(get_engine),
) -> List[MasteryRecordResponse]:
    """Concepts with mastery below the weak threshold, weakest first."""
    return [MasteryRecordResponse(**r.to_dict()) for r in engine.get_weak_concepts(learner_id, limit)]


@router.get("/{learner_id}/stats", response_model=MasteryStatsResponse, summary="Mastery statistics")
def get_stats(
    learner_id: str,
    engine: MasteryEngine = Depends(get_engine),
) -> MasteryStatsResponse:
    return MasteryStatsResponse(**engine.get_mastery_stats(learner_id).to_dict())


@router.get(
    "/{learner_id}/recommended",
    response_model=List[RecommendationResponse],
    summary="Recommended concepts",
)
def get_recommended(
    learner_id: str,
    count: int = Query(default=5, ge=1, le=100),
    include_new: bool = True,
    engine: MasteryEngine = Depends(get_engine),
) -> List[RecommendationResponse]:
    """Mix of due (priority 10), weak (8) and new (5) concepts."""
    return [
        RecommendationResponse(
            concept_id=rec.concept_id,
            reason=rec.reason,
            priority=rec.priority,
            mastery_score=rec.mastery_score,
        )
        for rec in engine.get_recommended_concepts(learner_id, count, include_new)
    ]


# ========================================
# Catalog Endpoints
# ========================================


@router.post("/concepts", summary="Add concepts to the catalog")
def add_concepts(
    request: AddConceptsRequest,
    engine: MasteryEngine = Depends(get_engine),
) -> Dict[str, Any]:
    added = engine.mastery_store.add_concepts(c.model_dump() for c in request.concepts)
    logger.info(f"Catalog import: {added}/{len(request.concepts)} concepts added")
    return {"added": added, "submitted": len(request.concepts)}
