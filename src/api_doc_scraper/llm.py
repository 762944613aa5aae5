"""LLM client wrapper around litellm.

Provides a unified interface for calling any model litellm supports,
plus the retry policy used by triage and extraction: each attempt runs
at the next temperature in a schedule and its result must pass a
validator before it is accepted.
"""

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from litellm import Timeout as LiteLlmTimeout
from litellm import completion

from api_doc_scraper.config import LlmConfig

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

T = TypeVar("T")

_FENCE_RE = re.compile(r"^```(?:json|JSON)?\s*\n?(.*?)\n?```\s*$", re.DOTALL)


class LlmError(Exception):
    """The language model call failed or timed out."""


class LlmResponseError(LlmError):
    """The model answered, but not with usable JSON."""


class LlmTimeoutError(LlmError):
    """The model did not answer in time."""


class RetryExhaustedError(LlmError):
    """Every attempt allowed by a RetryPolicy failed."""

    def __init__(self, attempts: int, last_error: BaseException | None):
        message = f"All {attempts} attempts failed"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def parse_json_response(text: str | None) -> Any:
    """Parse model output as JSON, tolerating Markdown code fences."""
    if not text or not text.strip():
        raise LlmResponseError("Empty response from model")
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        cleaned = match.group(1).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    # Prose around a JSON object
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            pass
    raise LlmResponseError(f"Model response is not valid JSON: {cleaned[:200]!r}")


class LlmClient:
    """Wrapper for LLM API calls via litellm."""

    def __init__(
        self,
        model: str | None = None,
        max_output_tokens: int = 8192,
        timeout_seconds: float = 120.0,
    ):
        self.model = model or DEFAULT_MODEL
        self.max_output_tokens = max_output_tokens
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, config: LlmConfig) -> "LlmClient":
        return cls(
            model=config.model,
            max_output_tokens=config.max_output_tokens,
            timeout_seconds=config.timeout_seconds,
        )

    def call(
        self,
        system: str,
        user: str,
        temperature: float | None = None,
        response_schema: dict[str, Any] | None = None,
    ) -> str:
        """Send a system+user message to the LLM and return the response text."""
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": self.max_output_tokens,
            "timeout": self.timeout_seconds,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if response_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": response_schema},
            }
        response = completion(**kwargs)
        return response.choices[0].message.content

    async def generate_json(
        self,
        system: str,
        user: str,
        temperature: float | None = None,
        response_schema: dict[str, Any] | None = None,
    ) -> Any:
        """Run ``call`` off the event loop and parse the answer as JSON."""
        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(self.call, system, user, temperature, response_schema),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, LiteLlmTimeout) as e:
            raise LlmTimeoutError(f"Model call timed out after {self.timeout_seconds}s") from e
        return parse_json_response(text)


@dataclass
class RetryOutcome(Generic[T]):
    value: T
    attempts: int
    temperature: float


@dataclass
class RetryPolicy:
    """Bounded retries with a per-attempt temperature schedule.

    The last temperature is reused once the schedule runs out. A result
    the validator rejects counts as a failed attempt.
    """

    max_attempts: int = 3
    temperatures: list[float] = field(default_factory=lambda: [0.2, 0.1, 0.0])
    validator: Callable[[Any], bool] | None = None

    def temperature_for(self, attempt: int) -> float:
        if not self.temperatures:
            return 0.0
        return self.temperatures[min(attempt, len(self.temperatures) - 1)]

    async def run(self, attempt_fn: Callable[[float], Awaitable[T]]) -> RetryOutcome[T]:
        last_error: BaseException | None = None
        for attempt in range(self.max_attempts):
            temperature = self.temperature_for(attempt)
            try:
                value = await attempt_fn(temperature)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug("Attempt %d/%d failed", attempt + 1, self.max_attempts, exc_info=True)
                last_error = e
                continue
            if self.validator is not None and not self.validator(value):
                last_error = LlmResponseError("Response failed validation")
                logger.debug("Attempt %d/%d returned an unusable result", attempt + 1, self.max_attempts)
                continue
            return RetryOutcome(value=value, attempts=attempt + 1, temperature=temperature)
        raise RetryExhaustedError(self.max_attempts, last_error)
