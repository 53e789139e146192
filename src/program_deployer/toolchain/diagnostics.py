"""Condense noisy build and deploy output into the lines an operator needs."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Final

UNKNOWN_BUILD_ERROR: Final[str] = "Build failed with unknown error"
UNKNOWN_DEPLOY_ERROR: Final[str] = "Deployment failed with unknown error"

_BUILD_MARKERS: Final[tuple[str, ...]] = (
    "error:",
    "error[",
    "could not find",
    "cannot find",
    "Error:",
)
_DEPLOY_MARKERS: Final[tuple[str, ...]] = (
    "Error:",
    "error:",
    "RPC",
    "rpc",
    "insufficient",
    "balance",
)


def condense_build_errors(output: str | Iterable[str]) -> str:
    return _condense(output, _BUILD_MARKERS, UNKNOWN_BUILD_ERROR)


def condense_deploy_errors(output: str | Iterable[str]) -> str:
    return _condense(output, _DEPLOY_MARKERS, UNKNOWN_DEPLOY_ERROR)


def _condense(output: str | Iterable[str], markers: tuple[str, ...], fallback: str) -> str:
    lines = output.splitlines() if isinstance(output, str) else list(output)
    # A line is reported once even when several markers match it.
    picked = [line.strip() for line in lines if any(marker in line for marker in markers)]
    picked = [line for line in picked if line]
    return "\n".join(picked) if picked else fallback


__all__ = [
    "UNKNOWN_BUILD_ERROR",
    "UNKNOWN_DEPLOY_ERROR",
    "condense_build_errors",
    "condense_deploy_errors",
]
