"""Unit tests for the Solana CLI wrapper."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import (
    AIRDROP_SIGNATURE,
    PROGRAM_ID,
    SIGNATURE,
    ScriptedRunner,
    write_cli_config_effect,
)

from program_deployer.domain.errors import DeployError, ErrorKind
from program_deployer.domain.models import Network
from program_deployer.wallet.solana_cli import (
    SolanaCli,
    parse_airdrop_signature,
    parse_balance,
    read_cli_config,
)

DEPLOYMENT_ID = "0f9c6c2e-93a1-4d7a-8b1e-6d7d2f7b3c11"
ADDRESS = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"
RPC_URLS = {
    Network.DEVNET: "https://api.devnet.solana.com",
    Network.MAINNET_BETA: "https://api.mainnet-beta.solana.com",
}


def _cli(runner: ScriptedRunner, tmp_path: Path) -> SolanaCli:
    return SolanaCli(
        runner,
        rpc_urls=RPC_URLS,
        config_dir=tmp_path / "wallets",
        cli_timeout_seconds=7.0,
        airdrop_timeout_seconds=9.0,
    )


def test_all_networks_need_an_rpc_url(runner: ScriptedRunner, tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="mainnet-beta"):
        SolanaCli(runner, rpc_urls={Network.DEVNET: "http://x"}, config_dir=tmp_path)


@pytest.mark.asyncio
async def test_configure_cluster_writes_scoped_config_and_verifies_it(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("solana", "config", "set", effect=write_cli_config_effect)
    cli = _cli(runner, tmp_path)

    path = await cli.configure_cluster(DEPLOYMENT_ID, Network.DEVNET)

    assert path == tmp_path / "wallets" / f"cli-{DEPLOYMENT_ID}.yml"
    assert read_cli_config(path)["json_rpc_url"] == RPC_URLS[Network.DEVNET]
    assert runner.calls[0].command == (
        "solana",
        "config",
        "set",
        "--url",
        RPC_URLS[Network.DEVNET],
        "--config",
        str(path),
    )
    assert runner.calls[0].timeout_seconds == 7.0


@pytest.mark.asyncio
async def test_configure_cluster_detects_mismatched_readback(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    def wrong_cluster(argv: tuple[str, ...], _cwd: Path | None) -> None:
        Path(argv[-1]).write_text("json_rpc_url: http://localhost:8899\n", encoding="utf-8")

    runner.on("solana", "config", "set", effect=wrong_cluster)

    with pytest.raises(DeployError) as excinfo:
        await _cli(runner, tmp_path).configure_cluster(DEPLOYMENT_ID, Network.MAINNET_BETA)

    assert excinfo.value.kind is ErrorKind.NETWORK_ERROR
    assert excinfo.value.details == {
        "expected": RPC_URLS[Network.MAINNET_BETA],
        "configured": "http://localhost:8899",
    }


@pytest.mark.asyncio
async def test_configure_cluster_failure_is_a_network_error(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("solana", "config", "set", stderr="error: permission denied", exit_code=1)

    with pytest.raises(DeployError) as excinfo:
        await _cli(runner, tmp_path).configure_cluster(DEPLOYMENT_ID, Network.DEVNET)

    assert excinfo.value.kind is ErrorKind.NETWORK_ERROR
    assert excinfo.value.message.startswith("Failed to configure Solana cluster")


@pytest.mark.asyncio
async def test_balance_uses_explicit_cluster_and_scoped_config(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("solana", "config", "set", effect=write_cli_config_effect)
    runner.on("solana", "balance", stdout="1.5 SOL\n")
    cli = _cli(runner, tmp_path)

    before = await cli.get_balance(ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID)
    await cli.configure_cluster(DEPLOYMENT_ID, Network.DEVNET)
    after = await cli.get_balance(ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID)

    assert before == after == 1.5
    first, second = runner.commands("solana", "balance")
    assert first == ("solana", "balance", ADDRESS, "--url", RPC_URLS[Network.DEVNET])
    assert second[-2:] == ("--config", str(cli.config_path(DEPLOYMENT_ID)))


@pytest.mark.asyncio
async def test_balance_failure_is_a_network_error(runner: ScriptedRunner, tmp_path: Path) -> None:
    runner.on("solana", "balance", stderr="Error: RPC request error", exit_code=1)

    with pytest.raises(DeployError) as excinfo:
        await _cli(runner, tmp_path).get_balance(
            ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID
        )

    assert excinfo.value.kind is ErrorKind.NETWORK_ERROR
    assert excinfo.value.http_status == 503


@pytest.mark.asyncio
async def test_airdrop_returns_signature_and_uses_airdrop_timeout(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on(
        "solana",
        "airdrop",
        stdout=f"Requesting airdrop of 2 SOL\n\nSignature: {AIRDROP_SIGNATURE}\n\n2 SOL\n",
    )

    signature = await _cli(runner, tmp_path).request_airdrop(
        2.0, ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID
    )

    assert signature == AIRDROP_SIGNATURE
    assert runner.calls[0].command[:4] == ("solana", "airdrop", "2", ADDRESS)
    assert runner.calls[0].timeout_seconds == 9.0


@pytest.mark.asyncio
async def test_airdrop_timeout_passes_through(runner: ScriptedRunner, tmp_path: Path) -> None:
    runner.on("solana", "airdrop", raises=DeployError(ErrorKind.TIMEOUT, "timed out"))

    with pytest.raises(DeployError) as excinfo:
        await _cli(runner, tmp_path).request_airdrop(
            2.0, ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID
        )

    assert excinfo.value.kind is ErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_confirm_and_show_program_are_best_effort(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    cli = _cli(runner, tmp_path)
    runner.on("solana", "confirm", stdout="Confirmed\n")
    runner.on("solana", "program", "show", stdout=f"Program Id: {PROGRAM_ID}\n")

    assert await cli.confirm_transaction(SIGNATURE, Network.DEVNET, deployment_id=DEPLOYMENT_ID)
    assert await cli.show_program(PROGRAM_ID, Network.DEVNET, deployment_id=DEPLOYMENT_ID)

    runner.on("solana", "confirm", stdout="Not found\n")
    runner.on("solana", "program", "show", stderr="Error: Unable to find the account", exit_code=1)

    assert not await cli.confirm_transaction(
        SIGNATURE, Network.DEVNET, deployment_id=DEPLOYMENT_ID
    )
    assert not await cli.show_program(PROGRAM_ID, Network.DEVNET, deployment_id=DEPLOYMENT_ID)


@pytest.mark.asyncio
async def test_remove_config_reports_whether_it_existed(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("solana", "config", "set", effect=write_cli_config_effect)
    cli = _cli(runner, tmp_path)
    await cli.configure_cluster(DEPLOYMENT_ID, Network.DEVNET)

    assert cli.remove_config(DEPLOYMENT_ID) is True
    assert cli.remove_config(DEPLOYMENT_ID) is False


@pytest.mark.parametrize(
    ("output", "expected"),
    [
        ("5 SOL", 5.0),
        ("0.000005 SOL\n", 0.000005),
        ("Balance: 12.25 SOL", 12.25),
        ("", 0.0),
        ("Error: account not found", 0.0),
    ],
)
def test_parse_balance(output: str, expected: float) -> None:
    assert parse_balance(output) == expected


def test_parse_airdrop_signature_requires_label() -> None:
    assert parse_airdrop_signature(f"Signature: {AIRDROP_SIGNATURE}") == AIRDROP_SIGNATURE
    assert parse_airdrop_signature(AIRDROP_SIGNATURE) is None
