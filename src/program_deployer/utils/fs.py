"""
program-deployer — filesystem utilities

File: src/program_deployer/utils/fs.py

Purpose
- Owner-only atomic writes for key material, guarded deletion, and size/age probes
  used by workspace housekeeping.

Functional requirements
- Atomic writes use temp files in the destination directory and replace in a single step.
- Private writes leave the target readable and writable by the owner only.
- Deletion refuses paths outside the given root.
- Size accounting never follows symbolic links.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import stat
import tempfile
import time
from pathlib import Path
from typing import Final

PathLike = str | os.PathLike[str]

PRIVATE_FILE_MODE: Final[int] = 0o600
PRIVATE_DIR_MODE: Final[int] = 0o700

__all__ = [
    "PRIVATE_DIR_MODE",
    "PRIVATE_FILE_MODE",
    "atomic_write",
    "directory_size_bytes",
    "ensure_private_directory",
    "is_within",
    "path_age_seconds",
    "safe_delete",
    "write_private_file",
]


def atomic_write(
    path: PathLike,
    data: bytes | str,
    *,
    encoding: str = "utf-8",
    mode: int | None = None,
) -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory (``mkstemp`` creates it as 0600),
    2. optionally chmod to ``mode``, write + flush + fsync,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    try:
        if mode is not None:
            os.fchmod(fd, mode)
        payload = data if isinstance(data, bytes) else data.encode(encoding)
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())

        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def write_private_file(path: PathLike, data: bytes | str) -> Path:
    """Atomically write ``data`` so that only the owner can read or write it."""

    target = Path(path)
    atomic_write(target, data, mode=PRIVATE_FILE_MODE)
    return target


def ensure_private_directory(path: PathLike) -> Path:
    """Create ``path`` (and parents) if needed and restrict it to the owner."""

    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True, mode=PRIVATE_DIR_MODE)
    current = stat.S_IMODE(directory.stat().st_mode)
    if current != PRIVATE_DIR_MODE:
        os.chmod(directory, PRIVATE_DIR_MODE)
    return directory


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Return ``True`` if ``child`` resolves to a location inside ``parent``.

    ``child`` does not need to exist; ``parent`` does.
    """

    try:
        resolved_parent = Path(parent).resolve(strict=True)
    except FileNotFoundError:
        return False
    if not resolved_parent.is_dir():
        return False

    resolved_child = Path(child).resolve(strict=False)
    return _is_relative_to(resolved_child, resolved_parent)


def safe_delete(path: PathLike, root: PathLike) -> bool:
    """
    Delete ``path`` only if it is contained within ``root``.

    Returns ``False`` when there was nothing to delete. Symlinks are unlinked
    without traversing into their targets.
    """

    workspace = Path(root).resolve(strict=True)
    if not workspace.is_dir():
        raise NotADirectoryError(f"{workspace!s} is not a directory")

    target = Path(path)
    if not target.exists() and not target.is_symlink():
        return False

    parent_resolved = target.parent.resolve(strict=True)
    candidate = parent_resolved / target.name
    if candidate == workspace or not _is_relative_to(candidate, workspace):
        raise ValueError(f"refusing to delete path outside root: {target!s}")

    if target.is_symlink():
        target.unlink()
        return True

    if target.is_dir():
        shutil.rmtree(target)
        return True

    target.unlink()
    return True


def directory_size_bytes(path: PathLike) -> int:
    """Sum of regular-file sizes under ``path``; links are counted, not followed."""

    total = 0
    for dirpath, _dirnames, filenames in os.walk(path, followlinks=False):
        for filename in filenames:
            with contextlib.suppress(OSError):
                info = os.lstat(os.path.join(dirpath, filename))
                if stat.S_ISREG(info.st_mode):
                    total += info.st_size
    return total


def path_age_seconds(path: PathLike, *, now: float | None = None) -> float:
    """Seconds since ``path`` was last modified (symlinks are not followed)."""

    reference = time.time() if now is None else now
    return max(0.0, reference - os.lstat(path).st_mtime)


def _is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True
