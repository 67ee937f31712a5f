"""Simple in-memory rate limiter for login endpoints."""

import time
from collections import defaultdict


class RateLimiter:
    """Sliding window rate limiter keyed by identifier (e.g., IP address)."""

    def __init__(self, max_attempts: int = 5, window_seconds: int = 300, max_keys: int = 10000):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.max_keys = max_keys
        self._attempts: dict[str, list[float]] = defaultdict(list)

    def _prune(self, key: str, now: float) -> list[float]:
        cutoff = now - self.window_seconds
        recent = [t for t in self._attempts[key] if t > cutoff]
        self._attempts[key] = recent
        return recent

    def is_rate_limited(self, key: str) -> bool:
        """True once ``key`` has used up its attempts in the current window."""
        return len(self._prune(key, time.time())) >= self.max_attempts

    def record_attempt(self, key: str) -> None:
        now = time.time()
        self._prune(key, now).append(now)

        if len(self._attempts) > self.max_keys:
            for stale in [k for k in list(self._attempts) if not self._prune(k, now)]:
                del self._attempts[stale]

    def reset(self, key: str) -> None:
        self._attempts.pop(key, None)
