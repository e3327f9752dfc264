"""
Engine Module - Facade over mastery, generation and feedback.

Usage:
    from src.engine import build_engine

    engine = build_engine()
    engine.record_exposure("learner-1", "el-pico", True, 2300)
    content = await engine.request_content("learner-1", "contextual_fill")
"""

from src.engine.factory import build_engine
from src.engine.service import GeneratedContent, MasteryEngine

__all__ = ["GeneratedContent", "MasteryEngine", "build_engine"]
