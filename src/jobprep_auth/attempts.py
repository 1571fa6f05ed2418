"""In-memory attempt limiter for rejected one-time codes."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from .ports import IAttemptLimiter

if TYPE_CHECKING:
    from collections.abc import Callable


class InMemoryAttemptLimiter(IAttemptLimiter):
    """Counts rejected codes per key and tracks lockouts.

    Single-process only. A shared store (e.g. Redis) is needed when several
    workers serve the same accounts.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._failures: dict[str, int] = {}
        self._locked_until: dict[str, float] = {}

    async def record_failure(self, key: str) -> int:
        count = self._failures.get(key, 0) + 1
        self._failures[key] = count
        return count

    async def lock(self, key: str, seconds: float) -> None:
        self._locked_until[key] = self._clock() + seconds

    async def locked_for(self, key: str) -> float | None:
        until = self._locked_until.get(key)
        if until is None:
            return None
        remaining = until - self._clock()
        if remaining <= 0:
            # Lock elapsed, start counting from zero again
            del self._locked_until[key]
            self._failures.pop(key, None)
            return None
        return remaining

    async def clear(self, key: str) -> None:
        self._failures.pop(key, None)
        self._locked_until.pop(key, None)


__all__: list[str] = ["InMemoryAttemptLimiter"]
