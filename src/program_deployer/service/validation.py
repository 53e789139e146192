"""
program-deployer — deployment request validation.

File: src/program_deployer/service/validation.py

Purpose
- Turn an untrusted request payload into a ``DeploymentRequest``.

Functional requirements
- Every problem is collected and reported together as ``INVALID_INPUT`` with
  ``[{field, message}]`` details; nothing is cloned for an invalid request.
- Unknown fields are ignored.
- A bare wallet address cannot sign a deployment and is rejected.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Final

from program_deployer.constants import SECRET_KEY_LENGTH
from program_deployer.domain.errors import DeployError, ErrorKind
from program_deployer.domain.models import DeploymentRequest, Network, WalletOption

GITHUB_URL_RE: Final[re.Pattern[str]] = re.compile(
    r"^https?://(www\.)?github\.com/[\w-]+/[\w.-]+/?$"
)
WALLET_ADDRESS_RE: Final[re.Pattern[str]] = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

INVALID_REPO_URL_MESSAGE: Final[str] = (
    "Invalid GitHub repository URL. Must be in format: https://github.com/user/repo"
)
MULTIPLE_WALLET_OPTIONS_MESSAGE: Final[str] = (
    "Only one wallet option can be provided: wallet_address, wallet_keypair, or wallet_path"
)
_WALLET_FIELDS: Final[tuple[str, ...]] = ("wallet_address", "wallet_keypair", "wallet_path")


def is_valid_github_url(value: str) -> bool:
    return GITHUB_URL_RE.fullmatch(value) is not None


def is_valid_wallet_address(value: str) -> bool:
    return WALLET_ADDRESS_RE.fullmatch(value) is not None


def is_safe_relative_path(value: str) -> bool:
    normalized = value.replace("\\", "/")
    if not normalized or normalized.startswith("/"):
        return False
    return ".." not in normalized.split("/")


def parse_deployment_request(
    payload: Mapping[str, Any] | None,
    *,
    default_network: Network = Network.DEVNET,
) -> DeploymentRequest:
    """Validate ``payload`` or raise ``INVALID_INPUT`` listing every issue."""

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise DeployError(
            ErrorKind.INVALID_INPUT,
            "Invalid request payload",
            details=[{"field": "", "message": "Request body must be a JSON object"}],
        )

    issues: list[dict[str, str]] = []

    repo_url = payload.get("repo_url")
    if repo_url is None or repo_url == "":
        issues.append({"field": "repo_url", "message": "repo_url is required"})
    elif not isinstance(repo_url, str) or not is_valid_github_url(repo_url):
        issues.append({"field": "repo_url", "message": INVALID_REPO_URL_MESSAGE})

    network = default_network
    raw_network = payload.get("network")
    if raw_network is not None:
        try:
            network = Network(raw_network)
        except ValueError:
            allowed = ", ".join(item.value for item in Network)
            issues.append({"field": "network", "message": f"Network must be one of: {allowed}"})

    wallet = _parse_wallet_option(payload, issues)

    if issues:
        raise DeployError(ErrorKind.INVALID_INPUT, "Invalid request payload", details=issues)

    assert isinstance(repo_url, str)
    return DeploymentRequest(
        repo_url=repo_url,
        network=network,
        wallet=wallet if wallet is not None else WalletOption.generated(),
    )


def _parse_wallet_option(
    payload: Mapping[str, Any],
    issues: list[dict[str, str]],
) -> WalletOption | None:
    present = [name for name in _WALLET_FIELDS if payload.get(name) not in (None, "", [])]
    if len(present) > 1:
        issues.append({"field": "wallet", "message": MULTIPLE_WALLET_OPTIONS_MESSAGE})

    option: WalletOption | None = None

    address = payload.get("wallet_address")
    if "wallet_address" in present:
        if not isinstance(address, str) or not is_valid_wallet_address(address):
            issues.append(
                {"field": "wallet_address", "message": "Invalid Solana wallet address format"}
            )
        else:
            issues.append(
                {
                    "field": "wallet_address",
                    "message": "A wallet address cannot sign deployments; "
                    "provide wallet_keypair or wallet_path",
                }
            )

    keypair = payload.get("wallet_keypair")
    if "wallet_keypair" in present:
        keypair_issue = _keypair_issue(keypair)
        if keypair_issue is not None:
            issues.append({"field": "wallet_keypair", "message": keypair_issue})
        else:
            option = WalletOption.from_secret_key(keypair)

    path = payload.get("wallet_path")
    if "wallet_path" in present:
        if not isinstance(path, str) or not is_safe_relative_path(path):
            issues.append({"field": "wallet_path", "message": "Invalid wallet file path"})
        else:
            option = WalletOption.from_path(path)

    return option


def _keypair_issue(value: object) -> str | None:
    if not isinstance(value, list):
        return "wallet_keypair must be an array of integers"
    if len(value) != SECRET_KEY_LENGTH:
        return f"Keypair must be exactly {SECRET_KEY_LENGTH} bytes"
    for item in value:
        if isinstance(item, bool) or not isinstance(item, int) or not 0 <= item <= 255:
            return "Each keypair byte must be between 0-255"
    return None


__all__ = [
    "GITHUB_URL_RE",
    "INVALID_REPO_URL_MESSAGE",
    "MULTIPLE_WALLET_OPTIONS_MESSAGE",
    "WALLET_ADDRESS_RE",
    "is_safe_relative_path",
    "is_valid_github_url",
    "is_valid_wallet_address",
    "parse_deployment_request",
]
