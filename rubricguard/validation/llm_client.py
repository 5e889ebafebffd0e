"""
LLM Client for the judgment service.

Provides an async wrapper around the OpenAI SDK for any OpenAI-compatible
endpoint. Includes retry logic with exponential backoff.
"""

import asyncio
import logging

from openai import APIConnectionError, APIStatusError, AsyncOpenAI, RateLimitError

from rubricguard.config import Settings, get_settings

LOG = logging.getLogger(__name__)


class LLMError(Exception):
    """Raised when LLM API call fails."""

    def __init__(self, message: str, cause: Exception | None = None, retryable: bool = False):
        self.cause = cause
        self.retryable = retryable
        super().__init__(message)


class LLMClient:
    """
    Async client for the judgment LLM.

    Uses the OpenAI SDK with a configurable base URL.
    Implements retry logic with exponential backoff.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the LLM client.

        Args:
            settings: Configuration settings. Uses global settings if not provided.

        Raises:
            LLMError: If no API key is configured.
        """
        self._settings = settings or get_settings()
        if not self._settings.llm_api_key:
            raise LLMError("No API key configured for the judgment service")

        self._client = AsyncOpenAI(
            api_key=self._settings.llm_api_key,
            base_url=self._settings.llm_base_url,
        )

        # Retry configuration
        self._max_retries = self._settings.llm_max_retries
        self._base_delay = 1.0  # seconds
        self._max_delay = 30.0  # seconds

    @property
    def model(self) -> str:
        return self._settings.llm_model

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """
        Generate a JSON response from the LLM.

        Args:
            system_prompt: System message defining the LLM's role.
            user_prompt: User message with the actual request.
            temperature: Override temperature (uses config default if None).
            max_tokens: Maximum tokens in response.

        Returns:
            The generated text response.

        Raises:
            LLMError: If generation fails after all retries.
        """
        temp = temperature if temperature is not None else self._settings.llm_temperature

        messages: list[dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        return await self._call_with_retry(messages, temp, max_tokens)

    async def _call_with_retry(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> str:
        """
        Call the API with exponential backoff retry.

        Raises:
            LLMError: If all retries fail.
        """
        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.chat.completions.create(
                    model=self._settings.llm_model,
                    messages=messages,  # type: ignore[arg-type]
                    temperature=temperature,
                    max_tokens=max_tokens,
                    response_format={"type": "json_object"},
                )

                if response.choices and response.choices[0].message.content:
                    return response.choices[0].message.content

                raise LLMError("Empty response from LLM")

            except LLMError:
                raise

            except (RateLimitError, APIConnectionError) as e:
                last_error = e
                if attempt < self._max_retries:
                    delay = self._calculate_delay(attempt)
                    LOG.warning("Judgment request failed (%s), retrying in %.1fs", e, delay)
                    await asyncio.sleep(delay)
                    continue
                raise LLMError(
                    f"Request failed after {self._max_retries} retries: {e}",
                    cause=e,
                    retryable=True,
                ) from e

            except APIStatusError as e:
                # Don't retry on client errors (4xx except 429)
                if 400 <= e.status_code < 500 and e.status_code != 429:
                    raise LLMError(f"API error: {e.message}", cause=e, retryable=False) from e

                last_error = e
                if attempt < self._max_retries:
                    await asyncio.sleep(self._calculate_delay(attempt))
                    continue
                raise LLMError(
                    f"API error after {self._max_retries} retries: {e.message}",
                    cause=e,
                    retryable=True,
                ) from e

        raise LLMError(f"Failed after {self._max_retries} retries", cause=last_error)

    def _calculate_delay(self, attempt: int) -> float:
        """Delay in seconds for exponential backoff."""
        delay = self._base_delay * (2**attempt)
        return min(delay, self._max_delay)

    async def health_check(self) -> bool:
        """
        Check if the API is reachable.

        Returns:
            True if API is healthy, False otherwise.
        """
        try:
            response = await self._client.chat.completions.create(
                model=self._settings.llm_model,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=5,
            )
            return bool(response.choices)
        except Exception as e:
            LOG.warning("Health check failed: %s", e)
            return False
