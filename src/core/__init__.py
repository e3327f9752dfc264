"""
Core Module - Shared building blocks for the engine.

Components:
- errors: Error taxonomy shared by every layer
- clock: Naive UTC timestamps used for persistence
- locks: Per-key locks for read-modify-write sections
- logging_config: loguru sink setup for entry points
"""
