"""Domain records, identifiers and the failure taxonomy."""

from program_deployer.domain.errors import (
    GENERIC_SYSTEM_MESSAGE,
    DeployError,
    ErrorKind,
    wrap_error,
)
from program_deployer.domain.ids import (
    generate_deployment_id,
    is_deployment_id,
    validate_deployment_id,
)
from program_deployer.domain.models import (
    BuildOutcome,
    Deployment,
    DeploymentRequest,
    DeploymentResult,
    DeployOutcome,
    ExtractionOutcome,
    ExtractionStrategy,
    Network,
    PipelineStep,
    ProcessResult,
    ProgramEntry,
    ProjectConfig,
    WalletHandle,
    WalletOption,
    WalletSource,
)

__all__ = [
    "GENERIC_SYSTEM_MESSAGE",
    "BuildOutcome",
    "DeployError",
    "DeployOutcome",
    "Deployment",
    "DeploymentRequest",
    "DeploymentResult",
    "ErrorKind",
    "ExtractionOutcome",
    "ExtractionStrategy",
    "Network",
    "PipelineStep",
    "ProcessResult",
    "ProgramEntry",
    "ProjectConfig",
    "WalletHandle",
    "WalletOption",
    "WalletSource",
    "generate_deployment_id",
    "is_deployment_id",
    "validate_deployment_id",
    "wrap_error",
]
