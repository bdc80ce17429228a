"""Sliding-window rate limiting per user."""
import time
from typing import Callable


class SlidingWindowRateLimiter:
    """
    Allow at most ``max_requests`` per user within the trailing window.

    Timestamps are kept per user and pruned on each check.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: dict[str, list[float]] = {}

    def is_allowed(self, user_id: str) -> bool:
        """Record a request for ``user_id`` if it fits in the window."""
        now = self._clock()
        recent = [
            ts for ts in self._requests.get(user_id, [])
            if now - ts < self.window_seconds
        ]

        if len(recent) >= self.max_requests:
            self._requests[user_id] = recent
            return False

        recent.append(now)
        self._requests[user_id] = recent
        return True

    def remaining(self, user_id: str) -> int:
        """Requests ``user_id`` may still make inside the current window."""
        now = self._clock()
        used = sum(
            1 for ts in self._requests.get(user_id, [])
            if now - ts < self.window_seconds
        )
        return max(0, self.max_requests - used)

    def cleanup(self) -> None:
        """Forget users with no requests inside the window."""
        now = self._clock()
        for user_id in list(self._requests):
            recent = [ts for ts in self._requests[user_id] if now - ts < self.window_seconds]
            if recent:
                self._requests[user_id] = recent
            else:
                del self._requests[user_id]
