"""Deployment wallet funding with bounded faucet retries."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from program_deployer.domain.errors import DeployError, ErrorKind
from program_deployer.domain.models import Network
from program_deployer.wallet.solana_cli import SolanaCli

SleepFn = Callable[[float], Awaitable[None]]

_RETRYABLE_AIRDROP_KINDS = frozenset({ErrorKind.NETWORK_ERROR, ErrorKind.TIMEOUT})


@dataclass(frozen=True, slots=True)
class FundingPolicy:
    """Thresholds and pacing for ``WalletFunder``.

    ``max_attempts`` counts every airdrop request, the first one included.
    """

    min_balance_sol: float = 2.0
    airdrop_amount_sol: float = 2.0
    max_attempts: int = 4
    settle_seconds: float = 3.0
    retry_delay_seconds: float = 5.0
    success_ratio: float = 0.9

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if not 0 < self.success_ratio <= 1:
            raise ValueError("success_ratio must be in (0, 1]")
        if self.min_balance_sol < 0 or self.airdrop_amount_sol <= 0:
            raise ValueError("balances must be positive")

    @classmethod
    def from_config(cls, wallet_config: dict[str, Any]) -> FundingPolicy:
        return cls(
            min_balance_sol=float(wallet_config["min_balance_sol"]),
            airdrop_amount_sol=float(wallet_config["airdrop_amount_sol"]),
            max_attempts=int(wallet_config["airdrop_max_attempts"]),
            settle_seconds=float(wallet_config["airdrop_settle_seconds"]),
            retry_delay_seconds=float(wallet_config["airdrop_retry_delay_seconds"]),
            success_ratio=float(wallet_config["airdrop_success_ratio"]),
        )

    @property
    def airdrop_threshold_sol(self) -> float:
        return self.airdrop_amount_sol * self.success_ratio


class WalletFunder:
    """Makes sure a deployment wallet holds enough SOL before building."""

    def __init__(
        self,
        cli: SolanaCli,
        policy: FundingPolicy | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        logger: Any | None = None,
    ) -> None:
        self._cli = cli
        self._policy = policy if policy is not None else FundingPolicy()
        self._sleep = sleep
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def policy(self) -> FundingPolicy:
        return self._policy

    async def ensure_funding(self, address: str, network: Network, *, deployment_id: str) -> float:
        """Return the balance in SOL once it meets the configured minimum."""

        policy = self._policy
        balance = await self._cli.get_balance(address, network, deployment_id=deployment_id)
        if balance >= policy.min_balance_sol:
            self._logger.info("wallet_funded", balance_sol=balance, airdrop=False)
            return balance

        if not network.has_faucet:
            raise DeployError(
                ErrorKind.INSUFFICIENT_BALANCE,
                f"Insufficient balance: {balance} SOL, required {policy.min_balance_sol} SOL",
                details={
                    "address": address,
                    "balance": balance,
                    "required": policy.min_balance_sol,
                },
            )

        await self._airdrop_with_retry(address, network, deployment_id)
        balance = await self._cli.get_balance(address, network, deployment_id=deployment_id)
        if balance < policy.min_balance_sol:
            raise DeployError(
                ErrorKind.INSUFFICIENT_BALANCE,
                f"Insufficient balance after airdrop: {balance} SOL, "
                f"required {policy.min_balance_sol} SOL",
                details={
                    "address": address,
                    "balance": balance,
                    "required": policy.min_balance_sol,
                },
            )
        self._logger.info("wallet_funded", balance_sol=balance, airdrop=True)
        return balance

    async def _airdrop_with_retry(
        self, address: str, network: Network, deployment_id: str
    ) -> float:
        policy = self._policy
        last_error = "balance did not increase"
        for attempt in range(1, policy.max_attempts + 1):
            if attempt > 1:
                await self._sleep(policy.retry_delay_seconds)
            self._logger.info(
                "airdrop_requested",
                attempt=attempt,
                max_attempts=policy.max_attempts,
                amount_sol=policy.airdrop_amount_sol,
            )
            try:
                signature = await self._cli.request_airdrop(
                    policy.airdrop_amount_sol, address, network, deployment_id=deployment_id
                )
                await self._sleep(policy.settle_seconds)
                balance = await self._cli.get_balance(
                    address, network, deployment_id=deployment_id
                )
            except DeployError as exc:
                if exc.kind not in _RETRYABLE_AIRDROP_KINDS:
                    raise
                last_error = exc.message
                self._logger.warning("airdrop_attempt_failed", attempt=attempt, error=exc.message)
                continue

            if balance >= policy.airdrop_threshold_sol:
                self._logger.info(
                    "airdrop_settled", attempt=attempt, balance_sol=balance, signature=signature
                )
                return balance
            last_error = f"balance {balance} SOL below {policy.airdrop_threshold_sol:g} SOL"
            self._logger.warning("airdrop_not_settled", attempt=attempt, balance_sol=balance)

        raise DeployError(
            ErrorKind.NETWORK_ERROR,
            f"Airdrop failed after {policy.max_attempts} attempts: {last_error}",
            details={"attempts": policy.max_attempts, "last_error": last_error},
        )


__all__ = ["FundingPolicy", "SleepFn", "WalletFunder"]
