"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests:
an in-memory SQLite database, a controllable clock, a fake generation
provider and a fully wired engine.
"""
import asyncio
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.db.database import create_db_engine, create_session_factory, init_db  # noqa: E402
from src.engine.service import MasteryEngine  # noqa: E402
from src.feedback.learner import FeedbackLearner  # noqa: E402
from src.feedback.store import FeedbackStore  # noqa: E402
from src.generation.cache import GenerationCache  # noqa: E402
from src.generation.context_builder import PerformanceContextBuilder  # noqa: E402
from src.mastery.scheduler import ReviewScheduler  # noqa: E402
from src.mastery.scorer import MasteryScorer  # noqa: E402
from src.mastery.store import MasteryStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (full engine on SQLite)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# ========================================
# Helpers
# ========================================


class FakeClock:
    """Deterministic naive-UTC clock that tests can move forward."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 5, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeProvider:
    """Generation provider double that records calls."""

    def __init__(self, payload=None, error: Exception | None = None, delay: float = 0.0):
        self.payload = {"sentence": "El ___ es rojo.", "correct_answer": "cardenal"} if payload is None else payload
        self.error = error
        self.delay = delay
        self.calls: list[tuple] = []
        self.closed = False

    async def generate(self, policy, hints):
        self.calls.append((policy, list(hints)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload

    async def close(self):
        self.closed = True


# ========================================
# Fixtures
# ========================================


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database with all tables."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mastery_store(session_factory):
    return MasteryStore(session_factory)


@pytest.fixture
def scheduler():
    return ReviewScheduler()


@pytest.fixture
def scorer(mastery_store, scheduler, clock):
    return MasteryScorer(mastery_store, scheduler, clock=clock)


@pytest.fixture
def feedback_store(session_factory):
    return FeedbackStore(session_factory)


@pytest.fixture
def feedback_learner(feedback_store, mastery_store, clock):
    return FeedbackLearner(feedback_store, mastery_store, clock=clock)


@pytest.fixture
def context_builder(mastery_store, feedback_learner, clock):
    return PerformanceContextBuilder(mastery_store, hint_source=feedback_learner, clock=clock)


@pytest.fixture
def cache(session_factory, clock):
    return GenerationCache(session_factory, clock=clock)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_engine(mastery_store, scorer, context_builder, cache, feedback_learner, clock):
    """Factory for engines sharing the test database, with a chosen provider."""

    def _make(provider=None, **kwargs) -> MasteryEngine:
        return MasteryEngine(
            mastery_store=mastery_store,
            scorer=scorer,
            context_builder=context_builder,
            cache=cache,
            feedback=feedback_learner,
            provider=provider or FakeProvider(),
            clock=clock,
            **kwargs,
        )

    return _make


@pytest.fixture
def engine(make_engine, provider):
    return make_engine(provider)


@pytest.fixture
def make_provider():
    """Factory for FakeProvider instances (payload / error / delay)."""
    return FakeProvider
