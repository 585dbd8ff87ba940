"""
Ollama client — one non-streaming /api/generate call per attempt.

The backend usually shares a GPU with other workloads, so the common failure
is transient VRAM exhaustion. Retries therefore use a fixed delay long enough
for memory to be freed, not exponential backoff:

    ATTEMPT(n) ──ok──────────────────────▶ SUCCEEDED
        │  retryable and n < max_retries
        ▼
     WAITING ──retry_delay──▶ ATTEMPT(n+1)
        │
    otherwise ───────────────────────────▶ FAILED (GenerationError)

Retryable: transport errors, HTTP 500/503, and backend errors that mention
memory/resource/GPU exhaustion. Anything else fails on first sight, as does a
response without `done: true`.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

import aiohttp

from marvinous.core.config import OllamaConfig
from marvinous.core.errors import BackendUnreachable, GenerationError

logger = logging.getLogger("marvinous.llm.ollama")

RETRYABLE_STATUSES = frozenset({500, 503})
RESOURCE_ERROR_RE = re.compile(r"memory|resource|cuda|gpu|vram|\boom\b", re.IGNORECASE)
HEALTH_TIMEOUT_SECS = 10


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    retry_delay: float = 30.0

    @classmethod
    def from_config(cls, config: OllamaConfig) -> "RetryPolicy":
        return cls(max_retries=config.max_retries, retry_delay=config.retry_delay_secs)


class RetryState(Enum):
    ATTEMPT = "attempt"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class AttemptOutcome:
    text: Optional[str] = None
    error: str = ""
    retryable: bool = False
    status: Optional[int] = None


def is_resource_error(message: str) -> bool:
    return bool(RESOURCE_ERROR_RE.search(message or ""))


class OllamaClient:
    """Generation client for a local Ollama server."""

    def __init__(
        self,
        endpoint: str,
        model: str,
        timeout_secs: float = 120,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.model = model
        self.timeout_secs = timeout_secs
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: OllamaConfig, **kwargs) -> "OllamaClient":
        return cls(
            endpoint=config.endpoint,
            model=config.model,
            timeout_secs=config.timeout_secs,
            policy=RetryPolicy.from_config(config),
            **kwargs,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "OllamaClient":
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def health_check(self) -> None:
        """GET /api/tags to confirm the backend answers; raises BackendUnreachable."""
        url = f"{self.endpoint}/api/tags"
        session = await self._get_session()
        try:
            async with session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=min(HEALTH_TIMEOUT_SECS, self.timeout_secs)),
            ) as resp:
                if resp.status >= 400:
                    raise BackendUnreachable(f"Health check failed: HTTP {resp.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BackendUnreachable(f"Ollama not reachable at {self.endpoint}: {e}") from e

    async def generate(self, prompt: str) -> str:
        """Return the finished narrative or raise GenerationError."""
        state = RetryState.ATTEMPT
        attempt = 0
        outcome = AttemptOutcome()

        while True:
            if state is RetryState.ATTEMPT:
                attempt += 1
                logger.debug(f"Generation attempt {attempt}/{self.policy.max_retries} ({len(prompt)} chars)")
                outcome = await self._attempt(prompt)
                if outcome.text is not None:
                    state = RetryState.SUCCEEDED
                elif outcome.retryable and attempt < self.policy.max_retries:
                    state = RetryState.WAITING
                else:
                    state = RetryState.FAILED

            elif state is RetryState.WAITING:
                logger.warning(
                    f"Attempt {attempt}/{self.policy.max_retries} failed: {outcome.error}, "
                    f"retrying in {self.policy.retry_delay:g}s"
                )
                await self._sleep(self.policy.retry_delay)
                state = RetryState.ATTEMPT

            elif state is RetryState.SUCCEEDED:
                logger.debug(f"Received response ({len(outcome.text)} chars) on attempt {attempt}")
                return outcome.text

            else:
                if outcome.retryable:
                    message = f"Gave up after {attempt} attempts: {outcome.error}"
                else:
                    message = outcome.error
                raise GenerationError(message, attempts=attempt, status=outcome.status)

    async def _attempt(self, prompt: str) -> AttemptOutcome:
        """One POST to /api/generate, classified into success / retryable / terminal."""
        url = f"{self.endpoint}/api/generate"
        payload = {"model": self.model, "prompt": prompt, "stream": False}

        try:
            session = await self._get_session()
            async with session.post(
                url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout_secs),
            ) as resp:
                raw = await resp.read()
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return AttemptOutcome(error=f"HTTP request failed: {e!r}", retryable=True)

        if status >= 400:
            body = raw.decode("utf-8", errors="replace")
            return AttemptOutcome(
                error=f"HTTP {status}: {body[:200]}",
                retryable=status in RETRYABLE_STATUSES,
                status=status,
            )

        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            return AttemptOutcome(error=f"Failed to parse response: {e}", status=status)
        if not isinstance(data, dict):
            return AttemptOutcome(error="Failed to parse response: not a JSON object", status=status)

        error = data.get("error")
        if error:
            return AttemptOutcome(
                error=f"Ollama returned an error: {error}",
                retryable=is_resource_error(str(error)),
                status=status,
            )

        if data.get("done") is not True:
            return AttemptOutcome(error="Failed to parse response: response marked as incomplete", status=status)

        text = data.get("response")
        if not isinstance(text, str):
            return AttemptOutcome(error="Failed to parse response: missing 'response' text", status=status)

        return AttemptOutcome(text=text, status=status)
