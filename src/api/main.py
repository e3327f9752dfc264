"""
FastAPI application for the vocabulary mastery engine.

Provides REST API for:
- Exposure recording and review selection
- Adaptive content requests (cached generation)
- Reviewer feedback (rejections, approvals, hints)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from src.core.clock import utcnow
from src.core.errors import GenerationFailed, InvalidInput, NotFound
from src.core.logging_config import configure_logging
from src.db.database import get_engine as get_db_engine
from src.db.database import init_db
from src.engine.factory import build_engine
from src.engine.service import MasteryEngine

settings = get_settings()


def _check_database_health(engine: MasteryEngine) -> tuple[str, str | None]:
    """
    Check database connectivity.

    Returns:
        Tuple of (status, error_message). Status is "ok" or "error".
    """
    try:
        with engine.mastery_store.session_factory() as session:
            session.execute(text("SELECT 1"))
        return "ok", None
    except SQLAlchemyError as e:
        return "error", str(e)


def create_app(engine: MasteryEngine | None = None) -> FastAPI:
    """
    Create the API application.

    Args:
        engine: Pre-built engine (tests); built from settings when None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown events."""
        # Startup
        owns_engine = engine is None
        if owns_engine:
            configure_logging(settings)
            logger.info("Starting vocab-mastery-engine service...")
            init_db(get_db_engine())
            app.state.engine = build_engine(settings)
            logger.info(f"Service started on {settings.api_host}:{settings.api_port}")
        else:
            app.state.engine = engine

        yield

        # Shutdown
        if owns_engine:
            logger.info("Shutting down vocab-mastery-engine service...")
            await app.state.engine.aclose()

    app = FastAPI(
        title="Vocab Mastery Engine",
        description="""
        Adaptive mastery tracking and exercise generation for vocabulary learning.

        ## Features

        - **Mastery**: Per-concept mastery score, confidence tier and spaced review schedule
        - **Content**: Generation policy from learner performance, cached by policy hash
        - **Feedback**: Reviewer rejections lower concept confidence and shape future prompts

        ## Data Flow

        ```
        Exposure events
            ↓ scorer + scheduler
        Mastery records
            ↓ context builder (+ feedback hints)
        Generation policy
            ↓ cache (miss → provider)
        Exercise content
        ```
        """,
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS middleware for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================
    # Error mapping
    # ========================================

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc), "field": exc.field})

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(GenerationFailed)
    async def generation_failed_handler(request: Request, exc: GenerationFailed) -> JSONResponse:
        headers = {"Retry-After": "30"} if exc.retryable else None
        return JSONResponse(
            status_code=503,
            content={"detail": GenerationFailed.user_message, "reason": exc.reason, "retryable": exc.retryable},
            headers=headers,
        )

    # ========================================
    # Health & Status Endpoints
    # ========================================

    @app.get("/", tags=["Health"])
    def root() -> dict[str, str]:
        """Root endpoint returning service info."""
        return {
            "service": "vocab-mastery-engine",
            "version": "0.1.0",
            "status": "ok",
        }

    @app.get("/health", tags=["Health"])
    def health_check(request: Request) -> dict[str, Any]:
        """Health check with an actual database round trip."""
        db_status, db_error = _check_database_health(request.app.state.engine)

        result: dict[str, Any] = {
            "status": "healthy" if db_status == "ok" else "unhealthy",
            "timestamp": utcnow().isoformat(),
            "components": {
                "database": db_status,
                "generation": "configured" if settings.has_generation_configured() else "not_configured",
            },
        }
        if db_error:
            result["errors"] = {"database": db_error}
        return result

    # ========================================
    # Import and mount routers
    # ========================================

    from src.api.routers import content_router, feedback_router, mastery_router

    app.include_router(mastery_router.router, prefix="/api/mastery", tags=["Mastery"])
    app.include_router(content_router.router, prefix="/api/content", tags=["Content"])
    app.include_router(feedback_router.router, prefix="/api/feedback", tags=["Feedback"])

    return app


app = create_app()
