"""
Feedback router.

Endpoints for reviewer rejections/approvals and the hints they produce.
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.dependencies import get_engine
from src.engine.service import MasteryEngine

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class RejectionRequest(BaseModel):
    concept_id: str
    category: str | None = None  # inferred from note when omitted
    note: str | None = None
    reviewer_id: str | None = None


class ApprovalRequest(BaseModel):
    concept_id: str
    reviewer_id: str | None = None


class PatternResponse(BaseModel):
    concept_id: str
    average_confidence: float
    rejection_counts: Dict[str, int]
    approval_count: int
    last_updated: str | None
    hints: List[str] = []


# ========================================
# Feedback Endpoints
# ========================================


@router.post("/rejections", response_model=PatternResponse, summary="Reject generated content")
def reject(
    request: RejectionRequest,
    engine: MasteryEngine = Depends(get_engine),
) -> PatternResponse:
    pattern = engine.apply_rejection(request.concept_id, request.category, request.note, request.reviewer_id)
    return PatternResponse(**pattern.to_dict(), hints=engine.enhancement_hints(pattern.concept_id))


@router.post("/approvals", response_model=PatternResponse, summary="Approve generated content")
def approve(
    request: ApprovalRequest,
    engine: MasteryEngine = Depends(get_engine),
) -> PatternResponse:
    pattern = engine.apply_approval(request.concept_id, request.reviewer_id)
    return PatternResponse(**pattern.to_dict(), hints=engine.enhancement_hints(pattern.concept_id))


@router.get("/concepts/{concept_id}", response_model=PatternResponse, summary="Concept feedback pattern")
def get_pattern(
    concept_id: str,
    engine: MasteryEngine = Depends(get_engine),
) -> PatternResponse:
    pattern = engine.feedback.pattern(concept_id)
    return PatternResponse(**pattern.to_dict(), hints=engine.enhancement_hints(concept_id))


@router.get("/concepts/{concept_id}/hints", summary="Prompt hints for a concept")
def get_hints(
    concept_id: str,
    engine: MasteryEngine = Depends(get_engine),
) -> Dict[str, Any]:
    return {"concept_id": concept_id, "hints": engine.enhancement_hints(concept_id)}


@router.get("/summary", summary="Rejection counts per concept and category")
def rejection_summary(
    concept_id: str | None = None,
    engine: MasteryEngine = Depends(get_engine),
) -> List[Dict[str, Any]]:
    return engine.rejection_summary(concept_id)
