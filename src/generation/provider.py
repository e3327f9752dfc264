"""
Content generation provider.

The engine only needs ``generate(policy, hints) -> payload``. The HTTP
provider posts the rendered prompt to a generation service with bounded
retries and exponential backoff.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import httpx
from loguru import logger

from src.core.errors import ProviderError, ProviderTimeout
from src.generation.policy import GenerationPolicy
from src.generation.prompts import get_prompt, get_system_prompt


class GenerationProvider(Protocol):
    """External capability that turns a policy into exercise content."""

    async def generate(self, policy: GenerationPolicy, hints: list[str]) -> dict[str, Any]: ...


class HttpGenerationProvider:
    """HTTP client for the content generation service."""

    def __init__(
        self,
        api_url: str,
        api_key: str | None = None,
        model: str = "gpt-4-turbo",
        timeout_seconds: float = 8.0,
        retry_attempts: int = 3,
        backoff_base_seconds: float = 1.0,
    ):
        """
        Initialize the provider.

        Args:
            api_url: Base URL of the generation service
            api_key: Bearer token (optional)
            model: Model identifier forwarded with each request
            timeout_seconds: Timeout for each attempt
            retry_attempts: Attempts before giving up
            backoff_base_seconds: First retry delay; doubles per attempt
        """
        self.api_url = api_url.rstrip("/")
        self.model = model
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_base_seconds = backoff_base_seconds
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
            follow_redirects=True,
        )

    @classmethod
    def from_settings(cls, settings) -> HttpGenerationProvider:
        return cls(
            api_url=settings.generation_api_url,
            api_key=settings.generation_api_key,
            model=settings.generation_model,
            timeout_seconds=settings.generation_attempt_timeout_seconds,
            retry_attempts=settings.generation_retry_attempts,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    def build_request(self, policy: GenerationPolicy, hints: list[str]) -> dict[str, Any]:
        return {
            "model": self.model,
            "system_prompt": get_system_prompt(),
            "prompt": get_prompt(policy, hints),
            "exercise_type": policy.normalized()["exercise_type"],
            "policy": policy.to_dict(),
            "response_format": "json",
        }

    async def generate(self, policy: GenerationPolicy, hints: list[str]) -> dict[str, Any]:
        """
        Generate content with retry logic.

        Retries timeouts, transport errors and 5xx responses with exponential
        backoff; 4xx responses fail immediately.

        Returns:
            Content payload (JSON object)

        Raises:
            ProviderTimeout: Every attempt timed out
            ProviderError: Client error, exhausted retries or unusable payload
        """
        payload = self.build_request(policy, hints)
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            wait_time = self.backoff_base_seconds * 2**attempt
            try:
                response = await self.client.post(f"{self.api_url}/v1/generate", json=payload)
                response.raise_for_status()
                return self._parse(response)

            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(
                    f"Generation timeout on attempt {attempt + 1}/{self.retry_attempts}. "
                    f"Retrying in {wait_time}s..."
                )

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code < 500:
                    # Don't retry on 4xx client errors
                    logger.error(f"Generation client error: {e.response.status_code}")
                    raise ProviderError(
                        f"generation service rejected request: {e.response.status_code}",
                        status_code=e.response.status_code,
                    ) from e
                logger.warning(
                    f"Generation server error {e.response.status_code} on attempt "
                    f"{attempt + 1}/{self.retry_attempts}. Retrying in {wait_time}s..."
                )

            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    f"Generation request error on attempt {attempt + 1}/{self.retry_attempts}: {e}. "
                    f"Retrying in {wait_time}s..."
                )

            if attempt < self.retry_attempts - 1:
                await asyncio.sleep(wait_time)

        # All retries exhausted
        error_msg = f"Generation failed after {self.retry_attempts} attempts"
        logger.error(f"{error_msg}: {last_error}")
        if isinstance(last_error, httpx.TimeoutException):
            raise ProviderTimeout(error_msg) from last_error
        status = last_error.response.status_code if isinstance(last_error, httpx.HTTPStatusError) else None
        raise ProviderError(error_msg, status_code=status) from last_error

    @staticmethod
    def _parse(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("generation service returned invalid JSON") from e
        if isinstance(data, dict) and isinstance(data.get("content"), dict):
            data = data["content"]
        if not isinstance(data, dict) or not data:
            raise ProviderError("generation service returned no content object")
        return data
