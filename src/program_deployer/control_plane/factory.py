"""Wire a ``DeploymentPipeline`` from an effective config mapping."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from program_deployer.control_plane.admission import AdmissionGate
from program_deployer.control_plane.pipeline import DeploymentPipeline
from program_deployer.control_plane.tracker import DeploymentTracker
from program_deployer.domain.models import Network
from program_deployer.sandbox.process_runner import CommandRunner, ProcessRunner
from program_deployer.toolchain.anchor_driver import AnchorDriver
from program_deployer.wallet.funding import FundingPolicy, SleepFn, WalletFunder
from program_deployer.wallet.keypairs import WalletManager
from program_deployer.wallet.solana_cli import SolanaCli
from program_deployer.workspace.repository import RepositoryAcquirer


def build_runner(config: Mapping[str, Any]) -> ProcessRunner:
    return ProcessRunner(max_output_chars=int(config["toolchain"]["max_output_chars"]))


def build_solana_cli(config: Mapping[str, Any], runner: CommandRunner) -> SolanaCli:
    networks = config["networks"]
    timeouts = config["timeouts"]
    return SolanaCli(
        runner,
        rpc_urls={
            Network.DEVNET: networks["devnet_rpc_url"],
            Network.MAINNET_BETA: networks["mainnet_rpc_url"],
        },
        config_dir=config["paths"]["wallet_dir"],
        solana_command=config["toolchain"]["solana_command"],
        cli_timeout_seconds=float(timeouts["cli_seconds"]),
        airdrop_timeout_seconds=float(timeouts["airdrop_seconds"]),
        verify_timeout_seconds=float(timeouts["verify_seconds"]),
    )


def build_repository(config: Mapping[str, Any], runner: CommandRunner) -> RepositoryAcquirer:
    return RepositoryAcquirer(
        runner,
        temp_root=config["paths"]["temp_dir"],
        git_command=config["toolchain"]["git_command"],
        clone_timeout_seconds=float(config["timeouts"]["clone_seconds"]),
        max_size_mb=float(config["repository"]["max_size_mb"]),
        clone_depth=int(config["repository"]["clone_depth"]),
    )


def build_pipeline(
    config: Mapping[str, Any],
    *,
    runner: CommandRunner | None = None,
    sleep: SleepFn | None = None,
) -> DeploymentPipeline:
    """Assemble every collaborator of the pipeline from ``config``.

    ``runner`` and ``sleep`` are injection points for tests.
    """

    resolved_runner = runner if runner is not None else build_runner(config)
    cli = build_solana_cli(config, resolved_runner)
    funder_kwargs: dict[str, Any] = {} if sleep is None else {"sleep": sleep}
    service = config["service"]
    return DeploymentPipeline(
        repository=build_repository(config, resolved_runner),
        wallets=WalletManager(
            wallet_dir=config["paths"]["wallet_dir"],
            mirror_default_keypair=bool(config["wallet"]["mirror_default_keypair"]),
        ),
        cli=cli,
        funder=WalletFunder(cli, FundingPolicy.from_config(config["wallet"]), **funder_kwargs),
        driver=AnchorDriver(
            resolved_runner,
            cli,
            anchor_command=config["toolchain"]["anchor_command"],
            build_timeout_seconds=float(config["timeouts"]["build_seconds"]),
            deploy_timeout_seconds=float(config["timeouts"]["deploy_seconds"]),
        ),
        admission=AdmissionGate(
            int(service["max_concurrent_deployments"]),
            timeout_seconds=float(service["admission_timeout_seconds"]),
        ),
        tracker=DeploymentTracker(int(service["status_history_size"])),
    )


__all__ = [
    "build_pipeline",
    "build_repository",
    "build_runner",
    "build_solana_cli",
]
