import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Tuple

from fastapi import HTTPException
from starlette.requests import Request


class SimpleRateLimiter:
    """Sliding-window rate limiter, in-memory (per process), keyed by client IP and scope.
    Why available: Every analysis or chat request fans out into paid inference calls with retries, so clients must not hammer them.
    Scopes keep a burst of chat questions from eating the analysis allowance."""

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self.storage: Dict[Tuple[str, str], Deque[float]] = defaultdict(deque)

    def check(self, request: Request, scope: str = "default") -> None:
        """Raise 429 with Retry-After if this client used up the scope's window; otherwise record the call."""
        now = self._clock()
        ip = request.client.host if request.client else "unknown"
        hits = self.storage[(ip, scope)]

        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

        if len(hits) >= self.max_requests:
            retry_after = max(1, int(self.window_seconds - (now - hits[0])))
            raise HTTPException(
                status_code=429,
                detail="Rate limit exceeded. Please retry later.",
                headers={"Retry-After": str(retry_after)},
            )

        hits.append(now)

    def reset(self) -> None:
        self.storage.clear()
