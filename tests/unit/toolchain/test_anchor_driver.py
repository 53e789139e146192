"""Unit tests for the Anchor build/deploy driver and toolchain probes."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import PROGRAM_ID, SIGNATURE, ScriptedRunner, make_anchor_project

from program_deployer.domain.errors import DeployError, ErrorKind
from program_deployer.domain.models import (
    ExtractionStrategy,
    Network,
    WalletHandle,
    WalletSource,
)
from program_deployer.toolchain.anchor_driver import AnchorDriver
from program_deployer.toolchain.environment import probe_tool, probe_toolchain
from program_deployer.wallet.solana_cli import SolanaCli

DEPLOYMENT_ID = "0f9c6c2e-93a1-4d7a-8b1e-6d7d2f7b3c11"
DEVNET_URL = "https://api.devnet.solana.com"


def _driver(runner: ScriptedRunner, tmp_path: Path) -> AnchorDriver:
    cli = SolanaCli(
        runner,
        rpc_urls={
            Network.DEVNET: DEVNET_URL,
            Network.MAINNET_BETA: "https://api.mainnet-beta.solana.com",
        },
        config_dir=tmp_path / "wallets",
    )
    return AnchorDriver(
        runner, cli, build_timeout_seconds=11.0, deploy_timeout_seconds=22.0
    )


def _wallet(tmp_path: Path) -> WalletHandle:
    return WalletHandle(
        deployment_id=DEPLOYMENT_ID,
        address="9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin",
        keypair_path=tmp_path / "wallets" / f"deployer-{DEPLOYMENT_ID}.json",
        source=WalletSource.GENERATED,
        owned=True,
    )


@pytest.mark.asyncio
async def test_build_streams_output_in_workspace(runner: ScriptedRunner, tmp_path: Path) -> None:
    workspace = make_anchor_project(tmp_path / "ws")
    runner.on("anchor", "build", stdout="Compiling demo v0.1.0\nFinished release\n")

    outcome = await _driver(runner, tmp_path).build(workspace)

    assert outcome.log_lines == ("Compiling demo v0.1.0", "Finished release")
    call = runner.calls[0]
    assert call.command == ("anchor", "build")
    assert call.cwd == workspace
    assert call.stream_to_log is True
    assert call.timeout_seconds == 11.0


@pytest.mark.asyncio
async def test_build_failure_carries_condensed_details_and_logs(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on(
        "anchor",
        "build",
        stdout="Compiling demo v0.1.0",
        stderr="error[E0425]: cannot find value `x`\nerror: could not compile `demo`",
        exit_code=101,
    )

    with pytest.raises(DeployError) as excinfo:
        await _driver(runner, tmp_path).build(tmp_path)

    error = excinfo.value
    assert error.kind is ErrorKind.BUILD_FAILED
    assert error.message == "Build failed: Command failed with code 101: anchor build"
    assert error.details == (
        "error[E0425]: cannot find value `x`\nerror: could not compile `demo`"
    )
    assert error.logs is not None and "Compiling demo v0.1.0" in error.logs


@pytest.mark.asyncio
async def test_build_timeout_passes_through(runner: ScriptedRunner, tmp_path: Path) -> None:
    runner.on("anchor", "build", raises=DeployError(ErrorKind.TIMEOUT, "timed out"))

    with pytest.raises(DeployError) as excinfo:
        await _driver(runner, tmp_path).build(tmp_path)

    assert excinfo.value.kind is ErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_deploy_passes_cluster_and_wallet_explicitly(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on(
        "anchor",
        "deploy",
        stdout=f"Program Id: {PROGRAM_ID}\n\nSignature: {SIGNATURE}\n\nDeploy success\n",
    )
    wallet = _wallet(tmp_path)

    outcome = await _driver(runner, tmp_path).deploy(tmp_path, Network.DEVNET, wallet)

    assert outcome.program_id == PROGRAM_ID
    assert outcome.signature == SIGNATURE
    assert outcome.program_id_extraction.strategy is ExtractionStrategy.LABELED
    assert runner.calls[0].command == (
        "anchor",
        "deploy",
        "--provider.cluster",
        DEVNET_URL,
        "--provider.wallet",
        str(wallet.keypair_path),
    )
    assert runner.calls[0].timeout_seconds == 22.0


@pytest.mark.asyncio
async def test_deploy_reads_identifiers_from_stderr_when_stdout_has_none(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("anchor", "deploy", stdout="Deploy success\n", stderr=f"Program Id: {PROGRAM_ID}")

    outcome = await _driver(runner, tmp_path).deploy(tmp_path, Network.DEVNET, _wallet(tmp_path))

    assert outcome.program_id == PROGRAM_ID
    assert outcome.signature is None
    assert outcome.signature_extraction.strategy is ExtractionStrategy.NONE


@pytest.mark.asyncio
async def test_deploy_without_program_id_is_a_failure(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("anchor", "deploy", stdout="Deploy success\n")

    with pytest.raises(DeployError) as excinfo:
        await _driver(runner, tmp_path).deploy(tmp_path, Network.DEVNET, _wallet(tmp_path))

    assert excinfo.value.kind is ErrorKind.DEPLOY_FAILED
    assert excinfo.value.message == "Could not extract program ID from deployment output"


@pytest.mark.asyncio
async def test_deploy_failure_condenses_rpc_errors(runner: ScriptedRunner, tmp_path: Path) -> None:
    runner.on(
        "anchor",
        "deploy",
        stderr="Error: Account has insufficient funds\nRPC response error -32002",
        exit_code=1,
    )

    with pytest.raises(DeployError) as excinfo:
        await _driver(runner, tmp_path).deploy(tmp_path, Network.DEVNET, _wallet(tmp_path))

    error = excinfo.value
    assert error.kind is ErrorKind.DEPLOY_FAILED
    assert error.details == "Error: Account has insufficient funds\nRPC response error -32002"


@pytest.mark.asyncio
async def test_verify_and_confirm(runner: ScriptedRunner, tmp_path: Path) -> None:
    runner.on("solana", "program", "show", stdout=f"Program Id: {PROGRAM_ID}")
    runner.on("solana", "confirm", stdout="Finalized")
    driver = _driver(runner, tmp_path)

    assert await driver.verify(PROGRAM_ID, Network.DEVNET, deployment_id=DEPLOYMENT_ID)
    assert await driver.confirm(SIGNATURE, Network.DEVNET, deployment_id=DEPLOYMENT_ID)
    assert await driver.confirm(None, Network.DEVNET, deployment_id=DEPLOYMENT_ID) is None
    assert len(runner.commands("solana", "confirm")) == 1


@pytest.mark.asyncio
async def test_probe_toolchain_reports_each_tool(runner: ScriptedRunner) -> None:
    runner.on("git", "--version", stdout="git version 2.43.0\n")
    runner.on("solana", "--version", stdout="solana-cli 1.18.0\n")

    probes = await probe_toolchain(
        runner, {"git": "git", "solana": "solana", "anchor": "anchor"}, timeout_seconds=5
    )

    assert [probe.tool for probe in probes] == ["git", "solana", "anchor"]
    assert probes[0].version == "git version 2.43.0"
    assert probes[1].available is True
    assert probes[2].available is False
    assert "unscripted" in (probes[2].error or "")
    assert probes[2].to_dict()["command"] == ["anchor"]


@pytest.mark.asyncio
async def test_probe_tool_splits_configured_command(runner: ScriptedRunner) -> None:
    runner.on("python3", "/opt/fake_anchor.py", "--version", stdout="anchor-cli 0.29.0")

    probe = await probe_tool(runner, "anchor", "python3 /opt/fake_anchor.py")

    assert probe.available
    assert probe.command == ("python3", "/opt/fake_anchor.py")
