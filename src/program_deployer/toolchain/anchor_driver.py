"""
program-deployer — Anchor build and deploy driver.

File: src/program_deployer/toolchain/anchor_driver.py

Purpose
- Compile a validated workspace, deploy it to the requested cluster with the
  deployment's own keypair, and check the outcome on chain.

Functional requirements
- ``anchor deploy`` always receives the cluster and wallet explicitly.
- A deploy that exits 0 without a recognizable program id is a failure.
- Tool failures carry condensed diagnostics as details and the raw lines as logs;
  timeouts pass through unchanged.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from program_deployer.domain.errors import DeployError, ErrorKind, wrap_error
from program_deployer.domain.models import (
    BuildOutcome,
    DeployOutcome,
    ExtractionStrategy,
    Network,
    WalletHandle,
)
from program_deployer.sandbox.process_runner import CommandExecutionError, split_command
from program_deployer.toolchain.diagnostics import condense_build_errors, condense_deploy_errors
from program_deployer.toolchain.extraction import extract_program_id, extract_signature

if TYPE_CHECKING:
    from program_deployer.sandbox.process_runner import CommandRunner
    from program_deployer.wallet.solana_cli import SolanaCli


class AnchorDriver:
    """Runs ``anchor build``/``anchor deploy`` and the follow-up chain checks."""

    def __init__(
        self,
        runner: CommandRunner,
        cli: SolanaCli,
        *,
        anchor_command: Sequence[str] | str = "anchor",
        build_timeout_seconds: float = 300.0,
        deploy_timeout_seconds: float = 600.0,
        logger: Any | None = None,
    ) -> None:
        self._runner = runner
        self._cli = cli
        self._anchor = split_command(anchor_command)
        self._build_timeout_seconds = build_timeout_seconds
        self._deploy_timeout_seconds = deploy_timeout_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def build(self, workspace: str | Path) -> BuildOutcome:
        started = time.monotonic()
        self._logger.info("build_started", workspace=Path(workspace))
        try:
            result = await self._runner.execute(
                [*self._anchor, "build"],
                cwd=workspace,
                timeout_seconds=self._build_timeout_seconds,
                stream_to_log=True,
            )
        except DeployError:
            raise
        except CommandExecutionError as exc:
            raise DeployError(
                ErrorKind.BUILD_FAILED,
                f"Build failed: {_first_line(str(exc))}",
                details=condense_build_errors(exc.output),
                logs=exc.log_lines,
            ) from exc
        except Exception as exc:
            raise wrap_error(exc, ErrorKind.BUILD_FAILED, "Build failed") from exc

        duration_ms = _elapsed_ms(started)
        self._logger.info("build_succeeded", duration_ms=duration_ms)
        return BuildOutcome(log_lines=result.log_lines, duration_ms=duration_ms)

    async def deploy(
        self,
        workspace: str | Path,
        network: Network,
        wallet: WalletHandle,
    ) -> DeployOutcome:
        started = time.monotonic()
        rpc_url = self._cli.rpc_url(network)
        self._logger.info("deploy_started", network=network.value, rpc_url=rpc_url)
        try:
            result = await self._runner.execute(
                [
                    *self._anchor,
                    "deploy",
                    "--provider.cluster",
                    rpc_url,
                    "--provider.wallet",
                    str(wallet.keypair_path),
                ],
                cwd=workspace,
                timeout_seconds=self._deploy_timeout_seconds,
                stream_to_log=True,
            )
        except DeployError:
            raise
        except CommandExecutionError as exc:
            raise DeployError(
                ErrorKind.DEPLOY_FAILED,
                f"Deployment failed: {_first_line(str(exc))}",
                details=condense_deploy_errors(exc.output),
                logs=exc.log_lines,
            ) from exc
        except Exception as exc:
            raise wrap_error(exc, ErrorKind.DEPLOY_FAILED, "Deployment failed") from exc

        program_id = extract_program_id(result.stdout)
        if program_id.strategy is ExtractionStrategy.NONE:
            program_id = extract_program_id(result.combined_output)
        signature = extract_signature(result.stdout)
        if signature.strategy is ExtractionStrategy.NONE:
            signature = extract_signature(result.combined_output)

        if program_id.value is None:
            raise DeployError(
                ErrorKind.DEPLOY_FAILED,
                "Could not extract program ID from deployment output",
                details=condense_deploy_errors(result.combined_output),
                logs=result.log_lines,
            )
        if program_id.ambiguous or signature.ambiguous:
            self._logger.warning(
                "identifier_extraction_ambiguous",
                program_id_candidates=len(program_id.candidates),
                signature_candidates=len(signature.candidates),
            )

        duration_ms = _elapsed_ms(started)
        self._logger.info(
            "deploy_succeeded",
            program_id=program_id.value,
            signature=signature.value,
            program_id_strategy=program_id.strategy.value,
            duration_ms=duration_ms,
        )
        return DeployOutcome(
            program_id=program_id.value,
            signature=signature.value,
            log_lines=result.log_lines,
            duration_ms=duration_ms,
            program_id_extraction=program_id,
            signature_extraction=signature,
        )

    async def verify(self, program_id: str, network: Network, *, deployment_id: str) -> bool:
        """Whether ``program_id`` is visible on chain; failures read as ``False``."""

        verified = await self._cli.show_program(program_id, network, deployment_id=deployment_id)
        self._logger.info("program_verified", program_id=program_id, verified=verified)
        return verified

    async def confirm(
        self, signature: str | None, network: Network, *, deployment_id: str
    ) -> bool | None:
        """Confirmation status of the deploy transaction; ``None`` without a signature."""

        if signature is None:
            return None
        return await self._cli.confirm_transaction(signature, network, deployment_id=deployment_id)


def _first_line(text: str) -> str:
    return text.splitlines()[0] if text else text


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


__all__ = ["AnchorDriver"]
