"""Stable constants shared across the deployment engine."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema version for deployer.toml.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Cluster names accepted on the request boundary.
NETWORK_DEVNET: Final[str] = "devnet"
NETWORK_MAINNET_BETA: Final[str] = "mainnet-beta"
SUPPORTED_NETWORKS: Final[tuple[str, ...]] = (NETWORK_DEVNET, NETWORK_MAINNET_BETA)
FAUCET_NETWORKS: Final[frozenset[str]] = frozenset({NETWORK_DEVNET})

DEFAULT_DEVNET_RPC_URL: Final[str] = "https://api.devnet.solana.com"
DEFAULT_MAINNET_RPC_URL: Final[str] = "https://api.mainnet-beta.solana.com"

# Default runtime paths (relative to the config file unless overridden).
TEMP_DIR: Final[PurePosixPath] = PurePosixPath("temp")
WALLET_DIR: Final[PurePosixPath] = PurePosixPath("wallets")
LOG_DIR: Final[PurePosixPath] = PurePosixPath("logs")

# Workspace layout.
MANIFEST_FILENAME: Final[str] = "Anchor.toml"
PROGRAMS_DIRNAME: Final[str] = "programs"
DEFAULT_KEYPAIR_FILENAME: Final[str] = "id.json"
KEYPAIR_FILE_PREFIX: Final[str] = "deployer-"
CLI_CONFIG_FILE_PREFIX: Final[str] = "cli-"

# Keypair material.
SECRET_KEY_LENGTH: Final[int] = 64
LAMPORTS_PER_SOL: Final[int] = 1_000_000_000

# Result assembly.
LOG_TAIL_LINES: Final[int] = 50

__all__ = [
    "CLI_CONFIG_FILE_PREFIX",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_DEVNET_RPC_URL",
    "DEFAULT_KEYPAIR_FILENAME",
    "DEFAULT_MAINNET_RPC_URL",
    "FAUCET_NETWORKS",
    "KEYPAIR_FILE_PREFIX",
    "LAMPORTS_PER_SOL",
    "LOG_DIR",
    "LOG_TAIL_LINES",
    "MANIFEST_FILENAME",
    "NETWORK_DEVNET",
    "NETWORK_MAINNET_BETA",
    "PROGRAMS_DIRNAME",
    "SECRET_KEY_LENGTH",
    "SUPPORTED_NETWORKS",
    "TEMP_DIR",
    "WALLET_DIR",
]
