"""
program-deployer — identifier extraction from deploy output.

File: src/program_deployer/toolchain/extraction.py

Purpose
- Pull the program id and transaction signature out of free-form ``anchor deploy``
  output with an explicit, two-tier policy whose outcome is reported to callers.

Functional requirements
- Tier one matches labeled tokens (``Program Id: <id>``); the whole token after the
  label is captured, never a truncated prefix.
- Tier two scans for bare base58 tokens in the identifier's length range.
- Labels are tried in priority order and the first label that matches wins, even
  when a lower-priority label appears earlier in the output.
- Every candidate of the winning tier is recorded so ambiguity is visible.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final

from program_deployer.domain.models import ExtractionOutcome, ExtractionStrategy

BASE58_ALPHABET: Final[str] = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_CLASS: Final[str] = "[1-9A-HJ-NP-Za-km-z]"


def _token(min_length: int, max_length: int) -> str:
    return rf"({_BASE58_CLASS}{{{min_length},{max_length}}})(?![A-Za-z0-9])"


@dataclass(frozen=True, slots=True)
class IdentifierExtractor:
    """Two-tier extraction policy for one kind of base58 identifier."""

    name: str
    labeled_patterns: tuple[re.Pattern[str], ...]
    fallback_pattern: re.Pattern[str]

    @classmethod
    def build(
        cls,
        name: str,
        labels: Sequence[str],
        *,
        min_length: int,
        max_length: int,
    ) -> IdentifierExtractor:
        token = _token(min_length, max_length)
        return cls(
            name=name,
            labeled_patterns=tuple(re.compile(label + token, re.IGNORECASE) for label in labels),
            fallback_pattern=re.compile(rf"(?<![A-Za-z0-9]){token}"),
        )

    def extract(self, output: str) -> ExtractionOutcome:
        labeled = self._labeled_matches(output)
        if labeled:
            return ExtractionOutcome(
                value=labeled[0],
                strategy=ExtractionStrategy.LABELED,
                candidates=tuple(labeled),
            )

        fallback = [match.group(1) for match in self.fallback_pattern.finditer(output)]
        if fallback:
            return ExtractionOutcome(
                value=fallback[0],
                strategy=ExtractionStrategy.FALLBACK,
                candidates=tuple(fallback),
            )
        return ExtractionOutcome(value=None, strategy=ExtractionStrategy.NONE)

    def _labeled_matches(self, output: str) -> list[str]:
        seen: set[int] = set()
        matches: list[str] = []
        for pattern in self.labeled_patterns:
            for match in pattern.finditer(output):
                # Overlapping labels can capture the same token twice.
                if match.start(1) not in seen:
                    seen.add(match.start(1))
                    matches.append(match.group(1))
        return matches


PROGRAM_ID_EXTRACTOR: Final[IdentifierExtractor] = IdentifierExtractor.build(
    "program_id",
    (
        r"Program Id:\s*",
        r"Program:\s*",
        r"Deployed:\s*",
        r"program\s+id[:\s]+",
    ),
    min_length=32,
    max_length=44,
)

SIGNATURE_EXTRACTOR: Final[IdentifierExtractor] = IdentifierExtractor.build(
    "signature",
    (
        r"Signature:\s*",
        r"\bsignature[:\s]+",
        r"\btx[:\s]+",
    ),
    min_length=64,
    max_length=88,
)


def extract_program_id(output: str) -> ExtractionOutcome:
    return PROGRAM_ID_EXTRACTOR.extract(output)


def extract_signature(output: str) -> ExtractionOutcome:
    return SIGNATURE_EXTRACTOR.extract(output)


__all__ = [
    "BASE58_ALPHABET",
    "PROGRAM_ID_EXTRACTOR",
    "SIGNATURE_EXTRACTOR",
    "IdentifierExtractor",
    "extract_program_id",
    "extract_signature",
]
