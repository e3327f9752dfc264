"""
Engine error taxonomy.

- InvalidInput: malformed identifiers or out-of-range values (caller's fault)
- NotFound: explicit lookups that found nothing
- ProviderError / ProviderTimeout: the external generation service failed
- CacheUnavailable: cache backend failure, always degraded to a miss
- GenerationFailed: content could not be produced, retry later
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all engine errors."""


class InvalidInput(EngineError):
    """Raised when a caller passes malformed identifiers or values."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class NotFound(EngineError):
    """Raised by explicit lookups when nothing matches."""


class ProviderError(EngineError):
    """The generation provider returned an error or unusable content."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ProviderTimeout(ProviderError):
    """The generation provider did not answer in time."""


class CacheUnavailable(EngineError):
    """The cache backend could not be reached. Never surfaced to callers."""


class GenerationFailed(EngineError):
    """Content could not be produced; the caller should retry later."""

    user_message = "content unavailable, retry later"

    def __init__(self, reason: str, retryable: bool = True):
        self.reason = reason
        self.retryable = retryable
        super().__init__(f"{self.user_message} ({reason})")
