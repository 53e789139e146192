"""
program-deployer — repository acquisition and workspace housekeeping.

File: src/program_deployer/workspace/repository.py

Purpose
- Materialize a shallow clone of the requested repository in a per-deployment
  workspace, enforce the size ceiling, and remove workspaces again.

Functional requirements
- One workspace per deployment id under the temp root; a stale directory with the
  same id is replaced.
- Oversized clones are deleted before ``CLONE_FAILED`` is raised.
- Unclassified failures become ``CLONE_FAILED``; classified ones pass through.
- Stale workspaces left behind by crashed runs are swept by age.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import structlog

from program_deployer.domain.errors import DeployError, ErrorKind, wrap_error
from program_deployer.sandbox.process_runner import split_command
from program_deployer.utils.concurrency import run_periodically
from program_deployer.utils.fs import directory_size_bytes, path_age_seconds, safe_delete

if TYPE_CHECKING:
    from program_deployer.sandbox.process_runner import CommandRunner

_BYTES_PER_MB: Final[int] = 1024 * 1024
_GIT_ENVIRONMENT: Final[dict[str, str]] = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_ASKPASS": "echo",
}


class RepositoryAcquirer:
    """Clone repositories into per-deployment workspaces under ``temp_root``."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        temp_root: str | Path,
        git_command: Sequence[str] | str = "git",
        clone_timeout_seconds: float = 120.0,
        max_size_mb: float = 500.0,
        clone_depth: int = 1,
        logger: Any | None = None,
    ) -> None:
        if max_size_mb <= 0:
            raise ValueError("max_size_mb must be > 0")
        if clone_depth < 1:
            raise ValueError("clone_depth must be >= 1")
        self._runner = runner
        self._temp_root = Path(temp_root)
        self._git = split_command(git_command)
        self._clone_timeout_seconds = clone_timeout_seconds
        self._max_size_mb = max_size_mb
        self._clone_depth = clone_depth
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def temp_root(self) -> Path:
        return self._temp_root

    def workspace_path(self, deployment_id: str) -> Path:
        """Location the workspace of ``deployment_id`` has (or would have)."""

        return self._temp_root / deployment_id

    async def clone(self, repo_url: str, deployment_id: str) -> Path:
        """Shallow-clone ``repo_url`` into the workspace of ``deployment_id``."""

        workspace = self.workspace_path(deployment_id)
        try:
            self._temp_root.mkdir(parents=True, exist_ok=True)
            if workspace.exists() or workspace.is_symlink():
                self._logger.info("workspace_replaced", workspace=workspace)
                await asyncio.to_thread(safe_delete, workspace, self._temp_root)

            self._logger.info("repository_clone_started", repo_url=repo_url, workspace=workspace)
            await self._runner.execute(
                [
                    *self._git,
                    "clone",
                    "--depth",
                    str(self._clone_depth),
                    repo_url,
                    str(workspace),
                ],
                env=_GIT_ENVIRONMENT,
                timeout_seconds=self._clone_timeout_seconds,
            )

            size_bytes = await asyncio.to_thread(directory_size_bytes, workspace)
        except DeployError:
            raise
        except Exception as exc:
            raise wrap_error(exc, ErrorKind.CLONE_FAILED, "Failed to clone repository") from exc

        size_mb = size_bytes / _BYTES_PER_MB
        if size_mb > self._max_size_mb:
            await asyncio.to_thread(self.remove_workspace, workspace)
            raise DeployError(
                ErrorKind.CLONE_FAILED,
                f"Repository too large: {size_mb:.2f}MB exceeds {self._max_size_mb:g}MB",
                details={"size_mb": round(size_mb, 2), "max_size_mb": self._max_size_mb},
            )

        self._logger.info(
            "repository_cloned",
            workspace=workspace,
            size_mb=round(size_mb, 2),
        )
        return workspace

    def remove_workspace(self, workspace: str | Path) -> bool:
        """Best-effort removal of a workspace; never raises. Returns whether it deleted."""

        try:
            if not self._temp_root.is_dir():
                return False
            removed = safe_delete(workspace, self._temp_root)
        except Exception as exc:  # noqa: BLE001 - cleanup must not mask the run outcome.
            self._logger.warning(
                "workspace_cleanup_failed", workspace=Path(workspace), error=str(exc)
            )
            return False
        if removed:
            self._logger.info("workspace_removed", workspace=Path(workspace))
        return removed

    def sweep_stale_workspaces(
        self,
        max_age_hours: float = 24.0,
        *,
        now: float | None = None,
    ) -> tuple[Path, ...]:
        """Remove temp-root entries older than ``max_age_hours``; never raises."""

        if not self._temp_root.is_dir():
            return ()

        cutoff_seconds = max_age_hours * 3600.0
        removed: list[Path] = []
        try:
            entries = sorted(self._temp_root.iterdir())
        except OSError as exc:
            self._logger.warning("workspace_sweep_failed", error=str(exc))
            return ()

        for entry in entries:
            try:
                if path_age_seconds(entry, now=now) <= cutoff_seconds:
                    continue
                if safe_delete(entry, self._temp_root):
                    removed.append(entry)
            except (OSError, ValueError) as exc:
                self._logger.warning("workspace_sweep_entry_failed", entry=entry, error=str(exc))

        if removed:
            self._logger.info("workspace_sweep_completed", removed=len(removed))
        return tuple(removed)

    async def run_periodic_sweep(
        self,
        stop_event: asyncio.Event,
        *,
        interval_hours: float = 6.0,
        max_age_hours: float = 24.0,
    ) -> None:
        """Sweep every ``interval_hours`` until ``stop_event`` is set."""

        async def sweep() -> None:
            await asyncio.to_thread(self.sweep_stale_workspaces, max_age_hours)

        await run_periodically(interval_hours * 3600.0, sweep, stop_event=stop_event)


__all__ = ["RepositoryAcquirer"]
