"""Service boundary: request validation, response mapping and the CLI."""

from program_deployer.service.api import ApiResponse, DeployService
from program_deployer.service.validation import (
    is_safe_relative_path,
    is_valid_github_url,
    is_valid_wallet_address,
    parse_deployment_request,
)

__all__ = [
    "ApiResponse",
    "DeployService",
    "is_safe_relative_path",
    "is_valid_github_url",
    "is_valid_wallet_address",
    "parse_deployment_request",
]
