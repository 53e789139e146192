"""Anchor workspace validation and manifest program discovery."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Final

import structlog

from program_deployer.constants import MANIFEST_FILENAME, PROGRAMS_DIRNAME
from program_deployer.domain.errors import DeployError, ErrorKind
from program_deployer.domain.models import ProgramEntry, ProjectConfig

_LOGGER = structlog.get_logger(__name__)

_PROGRAM_TABLE_RE: Final[re.Pattern[str]] = re.compile(
    r"^[ \t]*\[programs\.([A-Za-z0-9_-]+)\][ \t]*$", re.MULTILINE
)
_TABLE_HEADER_RE: Final[re.Pattern[str]] = re.compile(r"^[ \t]*\[", re.MULTILINE)
_ENTRY_RE: Final[re.Pattern[str]] = re.compile(r'^[ \t]*([\w-]+)\s*=\s*"([^"]+)"', re.MULTILINE)

# Anchor.toml names the main cluster "mainnet".
_MANIFEST_CLUSTER_ALIASES: Final[dict[str, str]] = {"mainnet-beta": "mainnet"}


def validate_project(workspace: str | Path, network: str | None = None) -> ProjectConfig:
    """Confirm ``workspace`` is an Anchor project and read its declared programs.

    The manifest is only descriptive: a missing or empty ``[programs.*]`` table is
    not an error, the deploy output is authoritative for the program id.
    """

    root = Path(workspace)
    manifest_path = root / MANIFEST_FILENAME
    programs_dir = root / PROGRAMS_DIRNAME

    if not manifest_path.is_file():
        raise DeployError(
            ErrorKind.NOT_ANCHOR_PROJECT,
            f"Not an Anchor project: {MANIFEST_FILENAME} not found",
            details={"missing": MANIFEST_FILENAME},
        )
    if not programs_dir.is_dir():
        raise DeployError(
            ErrorKind.NOT_ANCHOR_PROJECT,
            f"Not an Anchor project: {PROGRAMS_DIRNAME}/ directory not found",
            details={"missing": f"{PROGRAMS_DIRNAME}/"},
        )

    try:
        manifest_text = manifest_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DeployError(
            ErrorKind.NOT_ANCHOR_PROJECT,
            f"Unable to read {MANIFEST_FILENAME}: {exc}",
        ) from exc

    cluster, programs = parse_program_entries(manifest_text, network)
    program_dirs = tuple(
        sorted(entry.name for entry in programs_dir.iterdir() if entry.is_dir())
    )

    _LOGGER.info(
        "project_validated",
        cluster=cluster,
        programs=[entry.name for entry in programs],
        program_dirs=list(program_dirs),
    )
    return ProjectConfig(
        root=root,
        manifest_path=manifest_path,
        cluster=cluster,
        programs=programs,
        program_dirs=program_dirs,
    )


def parse_program_entries(
    manifest_text: str,
    network: str | None = None,
) -> tuple[str | None, tuple[ProgramEntry, ...]]:
    """Return ``(cluster, entries)`` from the best ``[programs.<cluster>]`` table.

    The table matching ``network`` wins; otherwise the first program table in the
    manifest is used. No table yields ``(None, ())``.
    """

    tables = _program_tables(manifest_text)
    if not tables:
        return None, ()

    wanted = {network, _MANIFEST_CLUSTER_ALIASES.get(network or "")} - {None}
    selected = next((item for item in tables if item[0] in wanted), tables[0])
    cluster, body = selected
    entries = tuple(
        ProgramEntry(name=match.group(1), program_id=match.group(2))
        for match in _ENTRY_RE.finditer(body)
    )
    return cluster, entries


def _program_tables(manifest_text: str) -> list[tuple[str, str]]:
    tables: list[tuple[str, str]] = []
    for match in _PROGRAM_TABLE_RE.finditer(manifest_text):
        body_start = match.end()
        next_header = _TABLE_HEADER_RE.search(manifest_text, body_start)
        body_end = next_header.start() if next_header is not None else len(manifest_text)
        tables.append((match.group(1), manifest_text[body_start:body_end]))
    return tables


__all__ = ["parse_program_entries", "validate_project"]
