"""
program-deployer — framework-agnostic service boundary.

File: src/program_deployer/service/api.py

Purpose
- Map request payloads onto the pipeline and pipeline outcomes onto
  ``(status, body)`` responses that any HTTP layer can serve unchanged.

Functional requirements
- Success: ``200`` with ``{success: true, deployment_id, data}``.
- Failure: the error kind's status with ``{success: false, error}``.
- Unclassified exceptions become ``SYSTEM_ERROR``; in production their message is
  replaced by a generic one and the original is only logged.
- Stale workspaces are swept at start and then periodically until stop.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from program_deployer.domain.errors import DeployError, ErrorKind, wrap_error
from program_deployer.domain.ids import generate_deployment_id, validate_deployment_id
from program_deployer.domain.models import Network
from program_deployer.observability.logging import correlation_scope
from program_deployer.service.validation import parse_deployment_request

if TYPE_CHECKING:
    from program_deployer.control_plane.pipeline import DeploymentPipeline


@dataclass(frozen=True, slots=True)
class ApiResponse:
    status: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class DeployService:
    """Request handlers plus the housekeeping lifecycle of one service instance."""

    def __init__(
        self,
        pipeline: DeploymentPipeline,
        *,
        environment: str = "development",
        default_network: Network = Network.DEVNET,
        sweep_interval_hours: float = 6.0,
        workspace_max_age_hours: float = 24.0,
        logger: Any | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._environment = environment
        self._default_network = default_network
        self._sweep_interval_hours = sweep_interval_hours
        self._workspace_max_age_hours = workspace_max_age_hours
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._started_monotonic = time.monotonic()
        self._stop_event: asyncio.Event | None = None
        self._sweeper: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        pipeline: DeploymentPipeline,
    ) -> DeployService:
        service = config["service"]
        return cls(
            pipeline,
            environment=str(service["environment"]),
            default_network=Network(config["networks"]["default"]),
            sweep_interval_hours=float(service["sweep_interval_hours"]),
            workspace_max_age_hours=float(service["workspace_max_age_hours"]),
        )

    @property
    def expose_internal_errors(self) -> bool:
        return self._environment != "production"

    async def start(self) -> None:
        """Sweep leftovers from earlier runs and schedule the periodic sweep."""

        if self._sweeper is not None:
            return
        await asyncio.to_thread(
            self._pipeline.repository.sweep_stale_workspaces, self._workspace_max_age_hours
        )
        self._stop_event = asyncio.Event()
        self._sweeper = asyncio.create_task(
            self._pipeline.repository.run_periodic_sweep(
                self._stop_event,
                interval_hours=self._sweep_interval_hours,
                max_age_hours=self._workspace_max_age_hours,
            )
        )
        self._logger.info("service_started", environment=self._environment)

    async def stop(self) -> None:
        if self._sweeper is None or self._stop_event is None:
            return
        self._stop_event.set()
        await self._sweeper
        self._sweeper = None
        self._stop_event = None
        self._logger.info("service_stopped")

    async def handle_deploy(self, payload: Mapping[str, Any] | None) -> ApiResponse:
        deployment_id = generate_deployment_id()
        with correlation_scope(deployment_id=deployment_id):
            try:
                request = parse_deployment_request(payload, default_network=self._default_network)
                result = await self._pipeline.run(request, deployment_id=deployment_id)
            except DeployError as exc:
                return self._error_response(exc)
            except Exception as exc:
                self._logger.exception("deploy_request_crashed", error_type=type(exc).__name__)
                return self._error_response(
                    wrap_error(exc, ErrorKind.SYSTEM_ERROR, "Unexpected error")
                )

        return ApiResponse(
            status=200,
            body={
                "success": True,
                "deployment_id": deployment_id,
                "data": result.to_payload(),
            },
        )

    def handle_health(self) -> ApiResponse:
        return ApiResponse(
            status=200,
            body={
                "status": "healthy",
                "timestamp": _utc_now_text(),
                "uptime": round(time.monotonic() - self._started_monotonic, 3),
                "deployments": {
                    "active": self._pipeline.tracker.active_count(),
                    "admission": self._pipeline.admission.snapshot(),
                },
            },
        )

    def handle_status(self, deployment_id: str) -> ApiResponse:
        try:
            normalized = validate_deployment_id(deployment_id)
        except ValueError as exc:
            return self._error_response(
                DeployError(
                    ErrorKind.INVALID_INPUT,
                    "Invalid deployment id",
                    details=[{"field": "deployment_id", "message": str(exc)}],
                )
            )

        snapshot = self._pipeline.tracker.get(normalized)
        if snapshot is None:
            return ApiResponse(
                status=200,
                body={
                    "deployment_id": normalized,
                    "status": "unknown",
                    "message": "Deployment status is not tracked by this instance",
                },
            )
        return ApiResponse(status=200, body=snapshot)

    def _error_response(self, error: DeployError) -> ApiResponse:
        if error.kind is ErrorKind.SYSTEM_ERROR and not self.expose_internal_errors:
            self._logger.error("system_error_masked", error=error.message)
        return ApiResponse(
            status=error.http_status,
            body={
                "success": False,
                "error": error.to_payload(expose_message=self.expose_internal_errors),
            },
        )


def _utc_now_text() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = ["ApiResponse", "DeployService"]
