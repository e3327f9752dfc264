"""FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from src.engine.service import MasteryEngine


def get_engine(request: Request) -> MasteryEngine:
    """The engine created in the application lifespan."""
    return request.app.state.engine
