"""
Resilient provider calls for text generation.

A task names an ordered list of candidate models. Each candidate is tried once,
in order, and its response is classified into a CallOutcome:

- 429 -> RateLimited; throttling is treated as provider-wide, so the loop stops
- other non-2xx, transport failures, empty completions -> RecoverableFailure
- a usable completion -> Success

Candidate iteration lives in `run_candidates`, which the image pipeline reuses.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

import httpx
import openai
from openai import AsyncOpenAI

from .config import Settings, get_settings
from .errors import (
    AccountError,
    ConfigurationError,
    ContentError,
    ProvidersUnavailableError,
    RateLimitError,
)
from .outcomes import (
    CallOutcome,
    FatalFailure,
    RateLimited,
    RecoverableFailure,
    Success,
)
from .tasks import GenerationTask

logger = logging.getLogger(__name__)

Attempt = Callable[[str], Awaitable[CallOutcome]]


def require_credential(value: Optional[str], name: str) -> str:
    if not value:
        raise ConfigurationError(name)
    return value


def parse_retry_after(value: Optional[str], default: int) -> int:
    """Seconds from a Retry-After header; HTTP-date forms fall back to ``default``."""
    if not value:
        return default
    try:
        seconds = float(value.strip())
    except ValueError:
        return default
    return max(0, math.ceil(seconds))


async def run_candidates(
    task_name: str, candidates: Sequence[str], attempt: Attempt
) -> Any:
    """
    Try each candidate once, in order, and return the first successful payload.

    RateLimited and FatalFailure stop the loop immediately; recoverable failures
    move on to the next candidate. Exhaustion raises ProvidersUnavailableError,
    carrying the wait hint of the last candidate when it reported one.
    """
    last_failure: Optional[str] = None
    last_wait: Optional[int] = None
    for candidate in candidates:
        logger.info("%s: trying %s", task_name, candidate)
        outcome = await attempt(candidate)
        if isinstance(outcome, Success):
            logger.info("%s: %s succeeded", task_name, candidate)
            return outcome.payload
        if isinstance(outcome, RateLimited):
            logger.warning(
                "%s: rate limited on %s (retry after %ss); not trying further candidates",
                task_name,
                candidate,
                outcome.retry_after,
            )
            raise RateLimitError(outcome.retry_after)
        if isinstance(outcome, FatalFailure):
            logger.error("%s: fatal failure on %s: %s", task_name, candidate, outcome.message)
            if outcome.status_code is not None:
                raise AccountError(outcome.message, status_code=outcome.status_code)
            raise ContentError(outcome.message)
        if outcome.wait_hint is not None:
            logger.warning(
                "%s: %s failed: %s (ready in ~%ss)",
                task_name,
                candidate,
                outcome.message,
                outcome.wait_hint,
            )
        else:
            logger.warning("%s: %s failed: %s", task_name, candidate, outcome.message)
        last_failure = outcome.message
        last_wait = None if outcome.wait_hint is None else max(1, math.ceil(outcome.wait_hint))
    raise ProvidersUnavailableError(task_name, last_failure, retry_after=last_wait)


def build_text_client(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> AsyncOpenAI:
    """OpenAI SDK client pointed at the OpenRouter-compatible endpoint."""
    settings = settings or get_settings()
    api_key = require_credential(settings.openrouter_api_key, "OPENROUTER_API_KEY")
    return AsyncOpenAI(
        api_key=api_key,
        base_url=settings.openrouter_base_url,
        timeout=settings.request_timeout,
        # Each candidate is attempted exactly once.
        max_retries=0,
        http_client=http_client,
    )


def _completion_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return content.strip() if isinstance(content, str) else ""


def _error_summary(exc: openai.APIStatusError) -> str:
    body = exc.body
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return exc.message


class TextPipeline:
    """Runs GenerationTasks against a chat-completions endpoint."""

    def __init__(self, client: AsyncOpenAI, *, default_retry_after: int = 1):
        self._client = client
        self._default_retry_after = default_retry_after

    async def invoke(
        self,
        task: GenerationTask,
        candidate: str,
        body: str,
        context: Mapping[str, Any] | None = None,
    ) -> CallOutcome:
        prompt = task.build_prompt(body, context)
        try:
            response = await self._client.chat.completions.create(
                model=candidate,
                messages=[{"role": "user", "content": prompt}],
            )
        except openai.RateLimitError as exc:
            retry_after = parse_retry_after(
                exc.response.headers.get("retry-after"), self._default_retry_after
            )
            return RateLimited(retry_after)
        except openai.APIStatusError as exc:
            logger.warning(
                "Provider error (%s, HTTP %s): %s", candidate, exc.status_code, exc.body
            )
            return RecoverableFailure(f"HTTP {exc.status_code}: {_error_summary(exc)}")
        except openai.APIConnectionError as exc:
            logger.warning("Transport error (%s): %s", candidate, exc)
            return RecoverableFailure(str(exc))
        except openai.APIError as exc:
            logger.warning("Unreadable provider response (%s): %s", candidate, exc)
            return RecoverableFailure(str(exc))

        text = _completion_text(response)
        if not text:
            return RecoverableFailure("no usable content")
        return Success(text)

    async def run_task(
        self,
        task: GenerationTask,
        body: str,
        context: Mapping[str, Any] | None = None,
    ) -> str:
        async def attempt(candidate: str) -> CallOutcome:
            return await self.invoke(task, candidate, body, context)

        return await run_candidates(task.kind, task.candidates, attempt)
