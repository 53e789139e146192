"""
program-deployer — Solana CLI collaborator calls.

File: src/program_deployer/wallet/solana_cli.py

Purpose
- Wrap the ``solana`` subcommands the engine needs: cluster configuration, balance,
  airdrop, transaction confirmation and program lookup.

Functional requirements
- Every call names its cluster with ``--url`` and a deployment-scoped ``--config``
  file, so concurrent deployments never share or mutate the host CLI config.
- Query calls that only inform the result (confirm, program show) are best effort.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import structlog
import yaml

from program_deployer.constants import CLI_CONFIG_FILE_PREFIX
from program_deployer.domain.errors import DeployError, ErrorKind, wrap_error
from program_deployer.domain.models import Network
from program_deployer.sandbox.process_runner import split_command
from program_deployer.utils.fs import ensure_private_directory

if TYPE_CHECKING:
    from program_deployer.sandbox.process_runner import CommandRunner

_BALANCE_RE: Final[re.Pattern[str]] = re.compile(r"(\d+(?:\.\d+)?)\s+SOL\b")
_SIGNATURE_RE: Final[re.Pattern[str]] = re.compile(r"Signature:\s*([1-9A-HJ-NP-Za-km-z]{32,})")


class SolanaCli:
    """Thin async client over the ``solana`` command line tool."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        rpc_urls: Mapping[Network, str],
        config_dir: str | Path,
        solana_command: Sequence[str] | str = "solana",
        cli_timeout_seconds: float = 30.0,
        airdrop_timeout_seconds: float = 60.0,
        verify_timeout_seconds: float = 30.0,
        logger: Any | None = None,
    ) -> None:
        missing = [network.value for network in Network if network not in rpc_urls]
        if missing:
            raise ValueError(f"rpc url missing for: {', '.join(missing)}")
        self._runner = runner
        self._rpc_urls = dict(rpc_urls)
        self._config_dir = Path(config_dir)
        self._solana = split_command(solana_command)
        self._cli_timeout_seconds = cli_timeout_seconds
        self._airdrop_timeout_seconds = airdrop_timeout_seconds
        self._verify_timeout_seconds = verify_timeout_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def rpc_url(self, network: Network) -> str:
        return self._rpc_urls[network]

    def config_path(self, deployment_id: str) -> Path:
        return self._config_dir / f"{CLI_CONFIG_FILE_PREFIX}{deployment_id}.yml"

    async def configure_cluster(self, deployment_id: str, network: Network) -> Path:
        """Write the deployment-scoped CLI config for ``network`` and verify it took."""

        rpc_url = self.rpc_url(network)
        config_path = self.config_path(deployment_id)
        try:
            ensure_private_directory(self._config_dir)
            await self._runner.execute(
                [*self._solana, "config", "set", "--url", rpc_url, "--config", str(config_path)],
                timeout_seconds=self._cli_timeout_seconds,
            )
            configured = read_cli_config(config_path).get("json_rpc_url")
        except DeployError:
            raise
        except Exception as exc:
            raise wrap_error(
                exc, ErrorKind.NETWORK_ERROR, "Failed to configure Solana cluster"
            ) from exc

        if configured != rpc_url:
            raise DeployError(
                ErrorKind.NETWORK_ERROR,
                "Solana CLI config does not point at the requested cluster",
                details={"expected": rpc_url, "configured": configured},
            )
        self._logger.info("cluster_configured", network=network.value, rpc_url=rpc_url)
        return config_path

    async def get_balance(self, address: str, network: Network, *, deployment_id: str) -> float:
        """Balance of ``address`` in SOL; output without a figure reads as zero."""

        try:
            result = await self._runner.execute(
                [*self._solana, "balance", address, *self._cluster_args(network, deployment_id)],
                timeout_seconds=self._cli_timeout_seconds,
            )
        except DeployError:
            raise
        except Exception as exc:
            raise wrap_error(exc, ErrorKind.NETWORK_ERROR, "Failed to get balance") from exc
        return parse_balance(result.stdout)

    async def request_airdrop(
        self,
        amount_sol: float,
        address: str,
        network: Network,
        *,
        deployment_id: str,
    ) -> str | None:
        """Ask the faucet for ``amount_sol``; returns the signature when one is printed."""

        try:
            result = await self._runner.execute(
                [
                    *self._solana,
                    "airdrop",
                    f"{amount_sol:g}",
                    address,
                    *self._cluster_args(network, deployment_id),
                ],
                timeout_seconds=self._airdrop_timeout_seconds,
            )
        except DeployError:
            raise
        except Exception as exc:
            raise wrap_error(exc, ErrorKind.NETWORK_ERROR, "Airdrop failed") from exc
        return parse_airdrop_signature(result.stdout)

    async def confirm_transaction(
        self, signature: str, network: Network, *, deployment_id: str
    ) -> bool:
        try:
            result = await self._runner.execute(
                [*self._solana, "confirm", signature, *self._cluster_args(network, deployment_id)],
                timeout_seconds=self._verify_timeout_seconds,
            )
        except Exception as exc:  # noqa: BLE001 - confirmation is informational.
            self._logger.warning("transaction_confirm_failed", signature=signature, error=str(exc))
            return False
        return "confirmed" in result.stdout.lower() or "finalized" in result.stdout.lower()

    async def show_program(self, program_id: str, network: Network, *, deployment_id: str) -> bool:
        try:
            await self._runner.execute(
                [
                    *self._solana,
                    "program",
                    "show",
                    program_id,
                    *self._cluster_args(network, deployment_id),
                ],
                timeout_seconds=self._verify_timeout_seconds,
            )
        except Exception as exc:  # noqa: BLE001 - verification is informational.
            self._logger.warning("program_lookup_failed", program_id=program_id, error=str(exc))
            return False
        return True

    async def version(self) -> str:
        result = await self._runner.execute(
            [*self._solana, "--version"], timeout_seconds=self._cli_timeout_seconds
        )
        return result.stdout.strip()

    def remove_config(self, deployment_id: str) -> bool:
        """Delete the deployment-scoped CLI config; never raises."""

        path = self.config_path(deployment_id)
        try:
            existed = path.exists()
            path.unlink(missing_ok=True)
        except OSError as exc:
            self._logger.warning("cli_config_cleanup_failed", path=path, error=str(exc))
            return False
        return existed

    def _cluster_args(self, network: Network, deployment_id: str) -> list[str]:
        args = ["--url", self.rpc_url(network)]
        config_path = self.config_path(deployment_id)
        if config_path.is_file():
            args.extend(["--config", str(config_path)])
        return args


def read_cli_config(path: str | Path) -> dict[str, Any]:
    """Parse a Solana CLI ``config.yml``."""

    with open(path, encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle)
    if not isinstance(loaded, dict):
        raise ValueError(f"unexpected Solana CLI config format in {path}")
    return loaded


def parse_balance(output: str) -> float:
    match = _BALANCE_RE.search(output)
    if match is None:
        return 0.0
    return float(match.group(1))


def parse_airdrop_signature(output: str) -> str | None:
    match = _SIGNATURE_RE.search(output)
    return match.group(1) if match is not None else None


__all__ = [
    "SolanaCli",
    "parse_airdrop_signature",
    "parse_balance",
    "read_cli_config",
]
