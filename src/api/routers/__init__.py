"""API routers for the vocab mastery engine."""

from src.api.routers import content_router, feedback_router, mastery_router

__all__ = [
    "mastery_router",
    "content_router",
    "feedback_router",
]
