"""
program-deployer — deployment pipeline orchestration.

File: src/program_deployer/control_plane/pipeline.py

Purpose
- Drive one deployment through clone, validation, cluster setup, wallet issue,
  funding, build, deploy and verification, and always tear its artefacts down.

Functional requirements
- Steps run strictly in order; the first failure stops the run.
- Teardown removes the workspace, the deployment keypair and the deployment CLI
  config whatever the outcome, never raises, and never replaces the primary error.
  It runs on a worker thread, off the event loop.
- Failures leave as ``DeployError``; anything unclassified becomes ``SYSTEM_ERROR``.
- Admission happens before any disk artefact is created.
- ``started_at`` is taken when a slot is granted; queueing time is only logged.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from program_deployer.constants import LOG_TAIL_LINES
from program_deployer.control_plane.admission import AdmissionGate
from program_deployer.control_plane.tracker import DeploymentTracker
from program_deployer.domain.errors import DeployError, ErrorKind, wrap_error
from program_deployer.domain.ids import generate_deployment_id
from program_deployer.domain.models import (
    Deployment,
    DeploymentRequest,
    DeploymentResult,
    PipelineStep,
)
from program_deployer.observability.logging import correlation_scope
from program_deployer.workspace.project_validator import validate_project

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from program_deployer.toolchain.anchor_driver import AnchorDriver
    from program_deployer.wallet.funding import WalletFunder
    from program_deployer.wallet.keypairs import WalletManager
    from program_deployer.wallet.solana_cli import SolanaCli
    from program_deployer.workspace.repository import RepositoryAcquirer


class DeploymentPipeline:
    """Runs deployments end to end against injected collaborators."""

    def __init__(
        self,
        *,
        repository: RepositoryAcquirer,
        wallets: WalletManager,
        cli: SolanaCli,
        funder: WalletFunder,
        driver: AnchorDriver,
        admission: AdmissionGate | None = None,
        tracker: DeploymentTracker | None = None,
        log_tail_lines: int = LOG_TAIL_LINES,
        logger: Any | None = None,
    ) -> None:
        self._repository = repository
        self._wallets = wallets
        self._cli = cli
        self._funder = funder
        self._driver = driver
        self._admission = admission if admission is not None else AdmissionGate()
        self._tracker = tracker if tracker is not None else DeploymentTracker()
        self._log_tail_lines = log_tail_lines
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def tracker(self) -> DeploymentTracker:
        return self._tracker

    @property
    def admission(self) -> AdmissionGate:
        return self._admission

    @property
    def repository(self) -> RepositoryAcquirer:
        return self._repository

    async def run(
        self,
        request: DeploymentRequest,
        deployment_id: str | None = None,
    ) -> DeploymentResult:
        deployment = Deployment(
            deployment_id=deployment_id or generate_deployment_id(),
            request=request,
        )
        self._tracker.record(deployment)

        with correlation_scope(deployment_id=deployment.deployment_id):
            self._logger.info(
                "deployment_started",
                repo_url=request.repo_url,
                network=request.network.value,
                wallet_source=request.wallet.source.value,
            )
            try:
                async with self._admission.admit():
                    self._mark_admitted(deployment)
                    result = await self._run_admitted(deployment)
            except DeployError as exc:
                self._mark_failed(deployment, exc)
                raise
            except asyncio.CancelledError:
                self._mark_failed(
                    deployment, DeployError(ErrorKind.SYSTEM_ERROR, "Deployment was cancelled")
                )
                raise
            except Exception as exc:
                error = wrap_error(exc, ErrorKind.SYSTEM_ERROR, "Unexpected deployment failure")
                self._logger.exception("deployment_crashed", error_type=type(exc).__name__)
                self._mark_failed(deployment, error)
                raise error from exc

            deployment.step = PipelineStep.DONE
            deployment.finished_at = result.deployment_time
            self._tracker.record(deployment)
            self._logger.info(
                "deployment_succeeded",
                program_id=result.program_id,
                total_duration_ms=result.total_duration_ms,
            )
            return result

    async def _run_admitted(self, deployment: Deployment) -> DeploymentResult:
        request = deployment.request
        deployment_id = deployment.deployment_id
        network = request.network
        try:
            async with self._step(deployment, PipelineStep.CLONING):
                deployment.workspace = await self._repository.clone(
                    request.repo_url, deployment_id
                )
            workspace = deployment.workspace

            async with self._step(deployment, PipelineStep.VALIDATING):
                await asyncio.to_thread(validate_project, workspace, network.value)

            async with self._step(deployment, PipelineStep.CONFIGURING_CLUSTER):
                await self._cli.configure_cluster(deployment_id, network)

            async with self._step(deployment, PipelineStep.SETTING_UP_WALLET):
                deployment.wallet = await asyncio.to_thread(
                    self._wallets.issue, deployment_id, request.wallet
                )
            wallet = deployment.wallet

            async with self._step(deployment, PipelineStep.FUNDING):
                await self._funder.ensure_funding(
                    wallet.address, network, deployment_id=deployment_id
                )

            async with self._step(deployment, PipelineStep.BUILDING):
                build = await self._driver.build(workspace)

            async with self._step(deployment, PipelineStep.DEPLOYING):
                deployed = await self._driver.deploy(workspace, network, wallet)
            deployment.program_id = deployed.program_id
            deployment.signature = deployed.signature

            async with self._step(deployment, PipelineStep.VERIFYING):
                deployment.verified = await self._driver.verify(
                    deployed.program_id, network, deployment_id=deployment_id
                )
                signature_confirmed = await self._driver.confirm(
                    deployed.signature, network, deployment_id=deployment_id
                )
        finally:
            await asyncio.shield(asyncio.to_thread(self._teardown, deployment))

        finished_at = datetime.now(tz=UTC)
        return DeploymentResult(
            deployment_id=deployment_id,
            program_id=deployed.program_id,
            signature=deployed.signature,
            network=network,
            wallet_address=wallet.address,
            started_at=deployment.started_at,
            deployment_time=finished_at,
            build_duration_ms=build.duration_ms,
            deploy_duration_ms=deployed.duration_ms,
            total_duration_ms=int((finished_at - deployment.started_at).total_seconds() * 1000),
            verified=deployment.verified,
            signature_confirmed=signature_confirmed,
            build_logs=build.log_lines[-self._log_tail_lines :],
            deploy_logs=deployed.log_lines[-self._log_tail_lines :],
            program_id_extraction=deployed.program_id_extraction,
            signature_extraction=deployed.signature_extraction,
        )

    @asynccontextmanager
    async def _step(self, deployment: Deployment, step: PipelineStep) -> AsyncIterator[None]:
        deployment.step = step
        self._tracker.record(deployment)
        started = time.monotonic()
        with correlation_scope(step=step.value):
            self._logger.info("step_started")
            try:
                yield
            finally:
                duration_ms = int((time.monotonic() - started) * 1000)
                deployment.step_durations_ms[step.value] = duration_ms
            self._logger.info("step_completed", duration_ms=duration_ms)

    def _mark_admitted(self, deployment: Deployment) -> None:
        admitted_at = datetime.now(tz=UTC)
        queued_ms = int((admitted_at - deployment.started_at).total_seconds() * 1000)
        deployment.started_at = admitted_at
        self._tracker.record(deployment)
        self._logger.info("deployment_admitted", queued_ms=queued_ms)

    def _teardown(self, deployment: Deployment) -> None:
        deployment_id = deployment.deployment_id
        workspace = deployment.workspace or self._repository.workspace_path(deployment_id)
        self._repository.remove_workspace(workspace)
        self._wallets.cleanup(deployment.wallet)
        self._cli.remove_config(deployment_id)
        self._logger.info("deployment_teardown_completed")

    def _mark_failed(self, deployment: Deployment, error: DeployError) -> None:
        deployment.failed_step = deployment.step
        deployment.step = PipelineStep.FAILED
        deployment.error = error
        deployment.finished_at = datetime.now(tz=UTC)
        self._tracker.record(deployment)
        self._logger.warning(
            "deployment_failed",
            error_code=error.kind.value,
            failed_step=deployment.failed_step.value,
            error=error.message,
        )


__all__ = ["DeploymentPipeline"]
