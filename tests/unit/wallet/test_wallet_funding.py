"""Unit tests for wallet funding and the bounded airdrop retry loop."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import AIRDROP_SIGNATURE, ScriptedRunner

from program_deployer.domain.errors import DeployError, ErrorKind
from program_deployer.domain.models import Network
from program_deployer.wallet.funding import FundingPolicy, WalletFunder
from program_deployer.wallet.solana_cli import SolanaCli

DEPLOYMENT_ID = "0f9c6c2e-93a1-4d7a-8b1e-6d7d2f7b3c11"
ADDRESS = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"
AIRDROP_OUTPUT = f"Requesting airdrop of 2 SOL\n\nSignature: {AIRDROP_SIGNATURE}\n"


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _funder(
    runner: ScriptedRunner,
    tmp_path: Path,
    sleep: _RecordingSleep,
    **policy: float,
) -> WalletFunder:
    cli = SolanaCli(
        runner,
        rpc_urls={
            Network.DEVNET: "https://api.devnet.solana.com",
            Network.MAINNET_BETA: "https://api.mainnet-beta.solana.com",
        },
        config_dir=tmp_path,
    )
    return WalletFunder(cli, FundingPolicy(**policy), sleep=sleep)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_funded_wallet_is_left_alone(runner: ScriptedRunner, tmp_path: Path) -> None:
    runner.on("solana", "balance", stdout="3 SOL")
    sleep = _RecordingSleep()
    funder = _funder(runner, tmp_path, sleep)

    first = await funder.ensure_funding(ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID)
    second = await funder.ensure_funding(ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID)

    assert first == second == 3.0
    assert runner.commands("solana", "airdrop") == []
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_mainnet_shortfall_is_insufficient_balance_without_airdrop(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("solana", "balance", stdout="0.5 SOL")
    funder = _funder(runner, tmp_path, _RecordingSleep())

    with pytest.raises(DeployError) as excinfo:
        await funder.ensure_funding(ADDRESS, Network.MAINNET_BETA, deployment_id=DEPLOYMENT_ID)

    error = excinfo.value
    assert error.kind is ErrorKind.INSUFFICIENT_BALANCE
    assert error.details == {"address": ADDRESS, "balance": 0.5, "required": 2.0}
    assert runner.commands("solana", "airdrop") == []


@pytest.mark.asyncio
async def test_devnet_airdrop_settles_on_first_attempt(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("solana", "balance", stdout=["0 SOL", "2 SOL"])
    runner.on("solana", "airdrop", stdout=AIRDROP_OUTPUT)
    sleep = _RecordingSleep()
    funder = _funder(runner, tmp_path, sleep, settle_seconds=3.0, retry_delay_seconds=5.0)

    balance = await funder.ensure_funding(ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID)

    assert balance == 2.0
    assert len(runner.commands("solana", "airdrop")) == 1
    assert sleep.delays == [3.0]


@pytest.mark.asyncio
async def test_retries_until_balance_settles(runner: ScriptedRunner, tmp_path: Path) -> None:
    runner.on("solana", "balance", stdout=["0 SOL", "0 SOL", "1.2 SOL", "4 SOL"])
    runner.on("solana", "airdrop", stdout=AIRDROP_OUTPUT)
    sleep = _RecordingSleep()
    funder = _funder(
        runner, tmp_path, sleep, settle_seconds=1.0, retry_delay_seconds=5.0, max_attempts=4
    )

    balance = await funder.ensure_funding(ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID)

    assert balance == 4.0
    # Initial check, a re-check after every airdrop, then the final minimum check.
    assert len(runner.commands("solana", "balance")) == 5
    assert len(runner.commands("solana", "airdrop")) == 3
    assert sleep.delays == [1.0, 5.0, 1.0, 5.0, 1.0]


@pytest.mark.asyncio
async def test_exhausted_attempts_raise_network_error(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("solana", "balance", stdout="0 SOL")
    runner.on("solana", "airdrop", stderr="Error: airdrop request failed", exit_code=1)
    sleep = _RecordingSleep()
    funder = _funder(runner, tmp_path, sleep, max_attempts=3, settle_seconds=0.0)

    with pytest.raises(DeployError) as excinfo:
        await funder.ensure_funding(ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID)

    error = excinfo.value
    assert error.kind is ErrorKind.NETWORK_ERROR
    assert error.message.startswith("Airdrop failed after 3 attempts")
    assert error.details["attempts"] == 3
    assert len(runner.commands("solana", "airdrop")) == 3


@pytest.mark.asyncio
async def test_airdrop_that_never_reaches_threshold_is_reported(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("solana", "balance", stdout="0.1 SOL")
    runner.on("solana", "airdrop", stdout=AIRDROP_OUTPUT)
    funder = _funder(runner, tmp_path, _RecordingSleep(), max_attempts=2)

    with pytest.raises(DeployError) as excinfo:
        await funder.ensure_funding(ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID)

    assert excinfo.value.kind is ErrorKind.NETWORK_ERROR
    assert "below 1.8 SOL" in excinfo.value.details["last_error"]


@pytest.mark.asyncio
async def test_settled_airdrop_below_minimum_is_insufficient_balance(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("solana", "balance", stdout=["0 SOL", "1.9 SOL"])
    runner.on("solana", "airdrop", stdout=AIRDROP_OUTPUT)
    funder = _funder(runner, tmp_path, _RecordingSleep())

    with pytest.raises(DeployError) as excinfo:
        await funder.ensure_funding(ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID)

    assert excinfo.value.kind is ErrorKind.INSUFFICIENT_BALANCE


@pytest.mark.asyncio
async def test_minimum_is_checked_against_a_fresh_balance(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("solana", "balance", stdout=["0 SOL", "2 SOL", "1.5 SOL"])
    runner.on("solana", "airdrop", stdout=AIRDROP_OUTPUT)
    funder = _funder(runner, tmp_path, _RecordingSleep())

    with pytest.raises(DeployError) as excinfo:
        await funder.ensure_funding(ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID)

    assert excinfo.value.kind is ErrorKind.INSUFFICIENT_BALANCE
    assert excinfo.value.details["balance"] == 1.5
    assert len(runner.commands("solana", "balance")) == 3


@pytest.mark.asyncio
async def test_non_retryable_errors_propagate_immediately(
    runner: ScriptedRunner, tmp_path: Path
) -> None:
    runner.on("solana", "balance", stdout="0 SOL")
    runner.on("solana", "airdrop", raises=DeployError(ErrorKind.WALLET_ERROR, "bad signer"))
    funder = _funder(runner, tmp_path, _RecordingSleep())

    with pytest.raises(DeployError) as excinfo:
        await funder.ensure_funding(ADDRESS, Network.DEVNET, deployment_id=DEPLOYMENT_ID)

    assert excinfo.value.kind is ErrorKind.WALLET_ERROR
    assert len(runner.commands("solana", "airdrop")) == 1


def test_policy_validation_and_config_mapping() -> None:
    with pytest.raises(ValueError):
        FundingPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        FundingPolicy(success_ratio=0)

    policy = FundingPolicy.from_config(
        {
            "min_balance_sol": 1,
            "airdrop_amount_sol": 1,
            "airdrop_max_attempts": 2,
            "airdrop_settle_seconds": 0,
            "airdrop_retry_delay_seconds": 0,
            "airdrop_success_ratio": 0.5,
        }
    )
    assert policy.max_attempts == 2
    assert policy.airdrop_threshold_sol == 0.5
