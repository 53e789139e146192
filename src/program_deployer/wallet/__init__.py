"""Deployment keypairs, Solana CLI calls and wallet funding."""

from program_deployer.wallet.funding import FundingPolicy, WalletFunder
from program_deployer.wallet.keypairs import (
    WalletManager,
    keypair_from_secret,
    load_keypair,
    serialize_keypair,
)
from program_deployer.wallet.solana_cli import (
    SolanaCli,
    parse_airdrop_signature,
    parse_balance,
    read_cli_config,
)

__all__ = [
    "FundingPolicy",
    "SolanaCli",
    "WalletFunder",
    "WalletManager",
    "keypair_from_secret",
    "load_keypair",
    "parse_airdrop_signature",
    "parse_balance",
    "read_cli_config",
    "serialize_keypair",
]
