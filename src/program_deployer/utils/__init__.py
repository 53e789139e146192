"""Utility exports for filesystem and concurrency helpers."""

from program_deployer.utils.concurrency import (
    BoundedSemaphore,
    PermitTimeoutError,
    run_periodically,
)
from program_deployer.utils.fs import (
    atomic_write,
    directory_size_bytes,
    ensure_private_directory,
    is_within,
    path_age_seconds,
    safe_delete,
    write_private_file,
)

__all__ = [
    "BoundedSemaphore",
    "PermitTimeoutError",
    "atomic_write",
    "directory_size_bytes",
    "ensure_private_directory",
    "is_within",
    "path_age_seconds",
    "run_periodically",
    "safe_delete",
    "write_private_file",
]
