"""In-memory, bounded history of deployment states."""

from __future__ import annotations

from collections import OrderedDict
from threading import RLock
from typing import Any

from program_deployer.domain.models import Deployment, PipelineStep


class DeploymentTracker:
    """Latest snapshot per deployment id, oldest finished entries evicted first.

    State lives in process memory only and is gone after a restart.
    """

    def __init__(self, max_entries: int = 256) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self._max_entries = max_entries
        self._entries: OrderedDict[str, dict[str, Any]] = OrderedDict()
        self._lock = RLock()

    def record(self, deployment: Deployment) -> None:
        snapshot = deployment.snapshot()
        with self._lock:
            self._entries[deployment.deployment_id] = snapshot
            self._evict()

    def get(self, deployment_id: str) -> dict[str, Any] | None:
        with self._lock:
            snapshot = self._entries.get(deployment_id)
            return dict(snapshot) if snapshot is not None else None

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for item in self._entries.values() if not _is_terminal(item))

    def recent(self, limit: int = 20) -> list[dict[str, Any]]:
        with self._lock:
            items = list(self._entries.values())[-limit:]
        return [dict(item) for item in reversed(items)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict(self) -> None:
        while len(self._entries) > self._max_entries:
            victim = next(
                (key for key, item in self._entries.items() if _is_terminal(item)),
                next(iter(self._entries)),
            )
            del self._entries[victim]


def _is_terminal(snapshot: dict[str, Any]) -> bool:
    return PipelineStep(snapshot["status"]).is_terminal


__all__ = ["DeploymentTracker"]
