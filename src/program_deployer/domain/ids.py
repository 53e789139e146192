"""Deployment identifier generation and validation."""

from __future__ import annotations

import re
import uuid
from typing import Final

DEPLOYMENT_ID_PATTERN_DESCRIPTION: Final[str] = "8-4-4-4-12 lowercase hex (UUID4)"

_DEPLOYMENT_ID_RE: Final[re.Pattern[str]] = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$"
)


def generate_deployment_id() -> str:
    """Return a fresh 128-bit random deployment id in canonical UUID form."""

    return str(uuid.uuid4())


def is_deployment_id(value: object) -> bool:
    return isinstance(value, str) and _DEPLOYMENT_ID_RE.fullmatch(value) is not None


def validate_deployment_id(value: object) -> str:
    """Return ``value`` if it is a canonical deployment id, else raise ``ValueError``."""

    if not isinstance(value, str):
        raise ValueError(f"deployment id must be a string, got {type(value).__name__}")
    normalized = value.strip().lower()
    if not is_deployment_id(normalized):
        raise ValueError(
            f"invalid deployment id {value!r}; expected {DEPLOYMENT_ID_PATTERN_DESCRIPTION}"
        )
    return normalized


__all__ = [
    "DEPLOYMENT_ID_PATTERN_DESCRIPTION",
    "generate_deployment_id",
    "is_deployment_id",
    "validate_deployment_id",
]
