"""
Content router.

Endpoints for adaptive content requests and cache inspection.
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.api.dependencies import get_engine
from src.engine.service import MasteryEngine

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class ContentRequest(BaseModel):
    learner_id: str
    exercise_type: str | None = None  # contextual_fill (default), term_matching, ...


class PolicyResponse(BaseModel):
    learner_id: str
    exercise_type: str
    level: str
    difficulty: int
    weak_concepts: List[str]
    mastered_concepts: List[str]
    new_concepts: List[str]
    due_concepts: List[str]
    streak: int
    hints: List[str]


class ContentResponse(BaseModel):
    content: Dict[str, Any]
    cache_key: str
    cache_hit: bool
    usage_count: int
    generation_time_ms: int | None
    policy: PolicyResponse


# ========================================
# Content Endpoints
# ========================================


@router.post("/request", response_model=ContentResponse, summary="Request exercise content")
async def request_content(
    request: ContentRequest,
    engine: MasteryEngine = Depends(get_engine),
) -> ContentResponse:
    """
    Build the learner's generation policy and return matching content.

    Served from cache when an equivalent policy was generated recently;
    otherwise generated. Fails with 503 when generation is unavailable.
    """
    content = await engine.request_content(request.learner_id, request.exercise_type)
    return ContentResponse(**content.to_dict())


@router.get("/policy/{learner_id}", response_model=PolicyResponse, summary="Preview generation policy")
def preview_policy(
    learner_id: str,
    exercise_type: str | None = None,
    engine: MasteryEngine = Depends(get_engine),
) -> PolicyResponse:
    return PolicyResponse(**engine.build_policy(learner_id, exercise_type).to_dict())


# ========================================
# Cache Endpoints
# ========================================


@router.get("/cache/stats", summary="Cache statistics")
def cache_stats(engine: MasteryEngine = Depends(get_engine)) -> Dict[str, Any]:
    return engine.cache_stats()


@router.get("/cache/stats/by-type", summary="Cache statistics per exercise type")
def cache_stats_by_type(engine: MasteryEngine = Depends(get_engine)) -> List[Dict[str, Any]]:
    return engine.cache_stats_by_type()


@router.get("/cache/popular", summary="Most used cache entries")
def cache_popular(
    limit: int = Query(default=10, ge=1, le=100),
    engine: MasteryEngine = Depends(get_engine),
) -> List[Dict[str, Any]]:
    return engine.popular_cache_entries(limit)
