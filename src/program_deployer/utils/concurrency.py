"""Async concurrency primitives used by the admission gate and housekeeping loops."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable


class PermitTimeoutError(TimeoutError):
    """Raised when a permit could not be obtained within the allowed wait."""


class BoundedSemaphore:
    """Small wrapper over ``asyncio.Semaphore`` with usage diagnostics and timed waits."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0
        self._waiting = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def available(self) -> int:
        return self._limit - self._in_use

    async def acquire(self, timeout_seconds: float | None = None) -> None:
        # Cancellation or timeout while waiting here does not acquire a permit.
        self._waiting += 1
        try:
            if timeout_seconds is None:
                await self._semaphore.acquire()
            else:
                try:
                    await asyncio.wait_for(self._semaphore.acquire(), timeout=timeout_seconds)
                except TimeoutError as exc:
                    raise PermitTimeoutError(
                        f"no permit available within {timeout_seconds} seconds"
                    ) from exc
        finally:
            self._waiting -= 1
        self._in_use += 1

    def release(self) -> None:
        if self._in_use <= 0:
            raise RuntimeError("release called more times than acquire")
        self._in_use -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def permit(self, timeout_seconds: float | None = None) -> AsyncIterator[None]:
        await self.acquire(timeout_seconds)
        try:
            yield
        finally:
            self.release()

    def snapshot(self) -> dict[str, int]:
        return {
            "limit": self._limit,
            "in_use": self._in_use,
            "available": self.available,
            "waiting": self._waiting,
        }


async def run_periodically(
    interval_seconds: float,
    action: Callable[[], Awaitable[object]],
    *,
    stop_event: asyncio.Event,
) -> None:
    """Run ``action`` every ``interval_seconds`` until ``stop_event`` is set."""

    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be > 0")

    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except TimeoutError:
            await action()


__all__ = [
    "BoundedSemaphore",
    "PermitTimeoutError",
    "run_periodically",
]
