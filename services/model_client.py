"""Model invocation adapter for OpenAI chat completions.

Every AI call in the pipeline goes through ``ModelClient.invoke``. The adapter
never raises: each failure path becomes a ``ModelResponse`` with ``error`` set.

Retry policy:
    - Only errors carrying the overload signature (503 / overloaded /
      service unavailable) are retried. Any other error returns at once.
    - Backoff before retry n is 2^n * 1.5s plus uniform jitter in [0, 2s).
    - ``max_retries`` caps the total number of attempts.

The OpenAI client is created with its own retries disabled so this adapter
owns the retry policy end to end.
"""
import asyncio
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from openai import AsyncOpenAI
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3

# Backoff: 3s, 6s, 12s ... plus jitter in [0, 2s)
BACKOFF_MULTIPLIER_SECONDS = 3
BACKOFF_JITTER_SECONDS = 2

OVERLOAD_PATTERN = re.compile(r"503|overloaded|service unavailable|unavailable", re.IGNORECASE)
OVERLOAD_STATUS_CODES = {503, 529}


class EmptyResponseError(Exception):
    """Raised when the model returns no text. Not retried."""


@dataclass
class ModelResponse:
    """Outcome of a single adapter invocation: ``text`` or ``error``."""
    text: str = ""
    error: Optional[str] = None
    model: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def is_overload_error(error: BaseException | str) -> bool:
    """Return True if the error carries the overload signature."""
    if isinstance(error, BaseException):
        if getattr(error, "status_code", None) in OVERLOAD_STATUS_CODES:
            return True
        message = str(error)
    else:
        message = error
    return bool(OVERLOAD_PATTERN.search(message or ""))


class ModelClient:
    """Adapter around ``AsyncOpenAI`` owning retry/backoff and model fallback.

    Two model tiers are configured:
        reasoning_model: high capability (OPENAI_MODEL, default gpt-4o)
        fast_model: low capability (OPENAI_FAST_MODEL, default gpt-4o-mini)
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        reasoning_model: Optional[str] = None,
        fast_model: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        temperature: float = 0.3,
    ):
        """Initialize the adapter.

        Args:
            client: Object exposing ``chat.completions.create``. Defaults to an
                ``AsyncOpenAI`` built from OPENAI_API_KEY.
            reasoning_model: Override for the high capability model.
            fast_model: Override for the low capability model.
            sleep: Awaitable used for backoff delays (injectable for tests).
            temperature: Sampling temperature for every call.
        """
        if client is None:
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError("OPENAI_API_KEY environment variable is required")
            client = AsyncOpenAI(api_key=api_key, max_retries=0)

        self.client = client
        self.reasoning_model = reasoning_model or os.getenv("OPENAI_MODEL", "gpt-4o")
        self.fast_model = fast_model or os.getenv("OPENAI_FAST_MODEL", "gpt-4o-mini")
        self.temperature = temperature
        self._sleep = sleep

        logger.info(
            f"ModelClient initialized: reasoning_model={self.reasoning_model}, "
            f"fast_model={self.fast_model}"
        )

    async def invoke(
        self,
        prompt: str,
        system_instruction: str,
        model: Optional[str] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> ModelResponse:
        """Send one prompt with a system instruction and return text or error.

        Args:
            prompt: The user prompt.
            system_instruction: System-level instructions for the model.
            model: Model name; defaults to the reasoning model.
            max_retries: Maximum number of attempts (at least 1).

        Returns:
            ModelResponse with ``text`` on success or ``error`` on failure.
        """
        model_name = model or self.reasoning_model
        attempts = max(1, max_retries)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=BACKOFF_MULTIPLIER_SECONDS, exp_base=2)
            + wait_random(0, BACKOFF_JITTER_SECONDS),
            retry=retry_if_exception(is_overload_error),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    text = await self._generate(prompt, system_instruction, model_name)
            return ModelResponse(text=text, model=model_name)
        except Exception as e:
            logger.error(
                f"Model invocation failed: model={model_name}, "
                f"overload={is_overload_error(e)}, error={e}"
            )
            return ModelResponse(error=str(e) or type(e).__name__, model=model_name)

    async def invoke_with_fallback(
        self,
        prompt: str,
        system_instruction: str,
        model: Optional[str] = None,
        fallback_model: Optional[str] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        fallback_retries: int = DEFAULT_MAX_RETRIES,
    ) -> ModelResponse:
        """Invoke the primary model, degrading to the fallback model on overload.

        The fallback runs only when the primary invocation failed with the
        overload signature. Any other failure is returned as is.
        """
        primary = model or self.reasoning_model
        fallback = fallback_model or self.fast_model

        response = await self.invoke(prompt, system_instruction, primary, max_retries)
        if response.ok or primary == fallback or not is_overload_error(response.error):
            return response

        logger.warning(f"Model overloaded, falling back: primary={primary}, fallback={fallback}")
        response = await self.invoke(prompt, system_instruction, fallback, fallback_retries)
        if response.ok:
            logger.info(f"Fallback model succeeded: model={fallback}")
        return response

    async def _generate(self, prompt: str, system_instruction: str, model: str) -> str:
        completion = await self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt},
            ],
            temperature=self.temperature,
        )
        text = completion.choices[0].message.content if completion.choices else None
        if not text or not text.strip():
            raise EmptyResponseError("Model returned an empty response")
        return text

    @staticmethod
    def _log_retry(retry_state) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Model overloaded, retrying: attempt={retry_state.attempt_number}, "
            f"delay={delay:.1f}s, error={error}"
        )
