"""Wires the engine from settings."""

from __future__ import annotations

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from config import Settings, get_settings
from src.db.database import get_session_factory
from src.engine.service import MasteryEngine
from src.feedback.learner import FeedbackLearner
from src.feedback.store import FeedbackStore
from src.generation.cache import GenerationCache
from src.generation.context_builder import PerformanceContextBuilder
from src.generation.provider import GenerationProvider, HttpGenerationProvider
from src.mastery.scheduler import ReviewScheduler
from src.mastery.scorer import MasteryScorer
from src.mastery.store import MasteryStore


def build_engine(
    settings: Settings | None = None,
    session_factory: sessionmaker[Session] | None = None,
    provider: GenerationProvider | None = None,
    rebuild_feedback: bool = True,
) -> MasteryEngine:
    """
    Build a fully wired MasteryEngine.

    Args:
        settings: Settings to use (cached settings if None)
        session_factory: Session factory (default database if None)
        provider: Generation provider (HTTP provider from settings if None)
        rebuild_feedback: Rebuild concept patterns from stored events

    Returns:
        Ready-to-use engine
    """
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()

    mastery_store = MasteryStore(session_factory)
    scheduler = ReviewScheduler.from_settings(settings)
    scorer = MasteryScorer.from_settings(mastery_store, scheduler, settings)
    feedback = FeedbackLearner.from_settings(FeedbackStore(session_factory), mastery_store, settings)
    context_builder = PerformanceContextBuilder.from_settings(mastery_store, settings, hint_source=feedback)
    cache = GenerationCache.from_settings(session_factory, settings)
    provider = provider or HttpGenerationProvider.from_settings(settings)

    retry_window = settings.generation_retry_window_seconds()
    if retry_window > settings.generation_timeout_seconds:
        logger.warning(
            f"Provider retries need up to {retry_window:.0f}s but requests are "
            f"cut off after {settings.generation_timeout_seconds:.0f}s; later attempts will never run"
        )

    if rebuild_feedback:
        feedback.rebuild()

    logger.debug(
        f"Engine ready (streak threshold {settings.mastery_streak_threshold}, "
        f"cache max {settings.cache_max_entries}, provider {type(provider).__name__})"
    )
    return MasteryEngine(
        mastery_store=mastery_store,
        scorer=scorer,
        context_builder=context_builder,
        cache=cache,
        feedback=feedback,
        provider=provider,
        weak_threshold=settings.mastery_weak_threshold,
        generation_timeout_seconds=settings.generation_timeout_seconds,
        cache_timeout_seconds=settings.cache_timeout_seconds,
        stale_days=settings.mastery_stale_days,
    )
