"""Single-flight guards for session operations."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class SingleFlight:
    """In-progress flag with a TryBegin/End protocol.

    ``try_begin`` returns ``False`` while another holder is active; the caller
    rejects its request instead of queueing it.
    """

    def __init__(self, name: str) -> None:
        if not name:
            raise ValueError("name must not be empty")
        self._name = name
        self._active = False
        self._started_at: float | None = None
        self._rejected = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def in_progress(self) -> bool:
        return self._active

    @property
    def rejected(self) -> int:
        """Number of ``try_begin`` calls refused so far."""
        return self._rejected

    def try_begin(self) -> bool:
        if self._active:
            self._rejected += 1
            return False
        self._active = True
        self._started_at = time.monotonic()
        return True

    def end(self) -> None:
        if not self._active:
            raise RuntimeError(f"{self._name}: end called without a matching try_begin")
        self._active = False
        self._started_at = None

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[bool]:
        """Yield whether the flight was acquired; release it on exit when it was."""
        acquired = self.try_begin()
        try:
            yield acquired
        finally:
            if acquired:
                self.end()

    def snapshot(self) -> dict[str, object]:
        elapsed = None if self._started_at is None else time.monotonic() - self._started_at
        return {
            "name": self._name,
            "in_progress": self._active,
            "elapsed_seconds": elapsed,
            "rejected": self._rejected,
        }


__all__ = ["SingleFlight"]
