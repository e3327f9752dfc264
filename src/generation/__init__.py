"""Adaptive content generation.

Pipeline:
1. PerformanceContextBuilder turns learner history into a GenerationPolicy
2. GenerationCache serves content already generated for an equivalent policy
3. On a miss, the provider renders the prompt (plus feedback hints) and generates

Usage:
    from src.generation import PerformanceContextBuilder, GenerationCache

    policy = builder.build_context("learner-1", "contextual_fill")
    hit = cache.get(policy)
"""
from src.generation.cache import CachedContent, GenerationCache
from src.generation.context_builder import PerformanceContextBuilder, TopicStats
from src.generation.policy import ExerciseType, GenerationPolicy, Level, compute_cache_key
from src.generation.provider import GenerationProvider, HttpGenerationProvider

__all__ = [
    "CachedContent",
    "ExerciseType",
    "GenerationCache",
    "GenerationPolicy",
    "GenerationProvider",
    "HttpGenerationProvider",
    "Level",
    "PerformanceContextBuilder",
    "TopicStats",
    "compute_cache_key",
]
