import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from syncnotes.core.config import settings
from syncnotes.guardrails.errors import TimeoutFailure, TransportFailure

T = TypeVar("T")

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Deadline per attempt, number of retries after the first attempt, and the base of the exponential backoff (all seconds)."""

    deadline_seconds: float
    max_retries: int
    backoff_seconds: float = 1.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff_after(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based). No ceiling."""
        return self.backoff_seconds * (2 ** (attempt - 1))


TRANSCRIPTION_POLICY = RetryPolicy(
    deadline_seconds=settings.transcription_timeout_seconds,
    max_retries=settings.transcription_retries,
    backoff_seconds=settings.retry_backoff_seconds,
)
MIND_MAP_POLICY = RetryPolicy(
    deadline_seconds=settings.mind_map_timeout_seconds,
    max_retries=settings.mind_map_retries,
    backoff_seconds=settings.retry_backoff_seconds,
)
CHAT_POLICY = RetryPolicy(
    deadline_seconds=settings.chat_timeout_seconds,
    max_retries=settings.chat_retries,
    backoff_seconds=settings.retry_backoff_seconds,
)


def _discard_late_result(task: "asyncio.Future") -> None:
    # Abandoned attempts still finish; read the outcome so asyncio does not warn about it.
    if task.cancelled():
        return
    err = task.exception()
    if err is not None:
        logger.debug("request_guard.abandoned_attempt_failed", error=str(err))


class RequestGuard:
    """Runs an async external call with a per-attempt deadline and exponential backoff between attempts.

    The deadline is soft: when the timer wins the race the attempt counts as a
    TimeoutFailure, but the underlying call keeps running and its eventual
    result is dropped. Nothing is cancelled.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.policy = policy
        self._sleep = sleep or asyncio.sleep

    async def _race_deadline(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        task = asyncio.ensure_future(operation())
        done, _ = await asyncio.wait({task}, timeout=self.policy.deadline_seconds)
        if task in done:
            return task.result()
        task.add_done_callback(_discard_late_result)
        raise TimeoutFailure(
            f"{label} timed out after {self.policy.deadline_seconds:g}s",
            elapsed_seconds=self.policy.deadline_seconds,
        )

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "request") -> T:
        """Call operation() until it succeeds or max_retries + 1 attempts have failed.
        Timeouts are raised as TimeoutFailure (with total elapsed time) and any other error as TransportFailure chained from the last cause."""
        started = time.perf_counter()
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._race_deadline(operation, label)
            except Exception as e:
                logger.warning(
                    "request_guard.attempt_failed",
                    label=label,
                    attempt=attempt,
                    max_attempts=self.policy.max_attempts,
                    error=str(e),
                )
                if attempt >= self.policy.max_attempts:
                    elapsed = time.perf_counter() - started
                    if isinstance(e, TimeoutFailure):
                        raise TimeoutFailure(
                            f"{label} timed out after {attempt} attempt(s) ({elapsed:.1f}s elapsed)",
                            elapsed_seconds=elapsed,
                            attempts=attempt,
                        ) from e
                    raise TransportFailure(f"{label} failed after {attempt} attempt(s): {e}") from e
                await self._sleep(self.policy.backoff_after(attempt))
