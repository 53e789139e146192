"""Per-process admission gate bounding concurrent deployments."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import structlog

from program_deployer.domain.errors import DeployError, ErrorKind
from program_deployer.utils.concurrency import BoundedSemaphore, PermitTimeoutError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class AdmissionGate:
    """Caps in-flight deployments; waiters give up after ``timeout_seconds``."""

    def __init__(
        self,
        max_concurrent: int = 5,
        *,
        timeout_seconds: float = 30.0,
        logger: Any | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._semaphore = BoundedSemaphore(max_concurrent)
        self._timeout_seconds = timeout_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def max_concurrent(self) -> int:
        return self._semaphore.limit

    @asynccontextmanager
    async def admit(self) -> AsyncIterator[None]:
        try:
            await self._semaphore.acquire(self._timeout_seconds)
        except PermitTimeoutError as exc:
            self._logger.warning(
                "admission_rejected",
                max_concurrent=self.max_concurrent,
                timeout_seconds=self._timeout_seconds,
            )
            raise DeployError(
                ErrorKind.TIMEOUT,
                f"No deployment slot became available within {self._timeout_seconds:g}s",
                details={
                    "max_concurrent_deployments": self.max_concurrent,
                    "admission_timeout_seconds": self._timeout_seconds,
                },
            ) from exc
        try:
            yield
        finally:
            self._semaphore.release()

    def snapshot(self) -> dict[str, int]:
        return self._semaphore.snapshot()


__all__ = ["AdmissionGate"]
