"""
program-deployer — classified deployment failures.

File: src/program_deployer/domain/errors.py

Purpose
- Define the fixed failure taxonomy and the single exception type that carries it.

Functional requirements
- Every failure that leaves the engine is a ``DeployError`` tagged with an ``ErrorKind``.
- Each kind maps to exactly one HTTP-style status code.
- Consumers dispatch on ``error.kind``; there is no subclass hierarchy to match on.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final

GENERIC_SYSTEM_MESSAGE: Final[str] = "An unexpected error occurred"


class ErrorKind(StrEnum):
    """Deployment failure taxonomy. Values are the wire codes."""

    INVALID_INPUT = "INVALID_INPUT"
    CLONE_FAILED = "CLONE_FAILED"
    NOT_ANCHOR_PROJECT = "NOT_ANCHOR_PROJECT"
    BUILD_FAILED = "BUILD_FAILED"
    DEPLOY_FAILED = "DEPLOY_FAILED"
    WALLET_ERROR = "WALLET_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    SYSTEM_ERROR = "SYSTEM_ERROR"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS: Final[Mapping[ErrorKind, int]] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.CLONE_FAILED: 500,
    ErrorKind.NOT_ANCHOR_PROJECT: 400,
    ErrorKind.BUILD_FAILED: 500,
    ErrorKind.DEPLOY_FAILED: 500,
    ErrorKind.WALLET_ERROR: 500,
    ErrorKind.NETWORK_ERROR: 503,
    ErrorKind.TIMEOUT: 408,
    ErrorKind.INSUFFICIENT_BALANCE: 500,
    ErrorKind.SYSTEM_ERROR: 500,
}


class DeployError(RuntimeError):
    """Classified failure raised by any stage of a deployment."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        details: Any = None,
        logs: Sequence[str] | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        self.kind = ErrorKind(kind)
        self.message = message
        self.details = details
        self.logs: tuple[str, ...] | None = tuple(logs) if logs is not None else None
        self.timestamp = timestamp if timestamp is not None else datetime.now(tz=UTC)
        super().__init__(f"[{self.kind.value}] {message}")

    @property
    def http_status(self) -> int:
        return self.kind.http_status

    def to_payload(self, *, expose_message: bool = True) -> dict[str, Any]:
        """Render the ``error`` object of a failure response."""

        message = self.message
        details = self.details
        if not expose_message and self.kind is ErrorKind.SYSTEM_ERROR:
            message = GENERIC_SYSTEM_MESSAGE
            details = None
        return {
            "code": self.kind.value,
            "message": message,
            "details": details,
            "logs": list(self.logs) if self.logs is not None else None,
            "timestamp": _iso8601z(self.timestamp),
        }


def wrap_error(
    exc: BaseException,
    kind: ErrorKind,
    message: str,
    *,
    logs: Sequence[str] | None = None,
) -> DeployError:
    """Classify ``exc`` as ``kind`` unless it already carries a classification.

    The original text is kept in ``details`` so operators can see what went wrong
    underneath the stage-level message.
    """

    if isinstance(exc, DeployError):
        return exc
    return DeployError(kind, f"{message}: {exc}", details=str(exc) or None, logs=logs)


def _iso8601z(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = [
    "GENERIC_SYSTEM_MESSAGE",
    "DeployError",
    "ErrorKind",
    "wrap_error",
]
