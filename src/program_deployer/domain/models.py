"""
program-deployer — deployment domain models.

File: src/program_deployer/domain/models.py

Purpose
- Typed request, wallet, process, project and result records shared by every stage.

Functional requirements
- Immutable records for everything that crosses a component seam.
- ``Deployment`` is the single mutable run-state object and is only mutated by the
  pipeline that owns it.
- Secret key material never appears in ``repr`` output.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from program_deployer.constants import FAUCET_NETWORKS, SECRET_KEY_LENGTH

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from program_deployer.domain.errors import DeployError


class Network(StrEnum):
    """Target Solana clusters."""

    DEVNET = "devnet"
    MAINNET_BETA = "mainnet-beta"

    @property
    def has_faucet(self) -> bool:
        return self.value in FAUCET_NETWORKS


class WalletSource(StrEnum):
    """Provenance of the keypair used by one deployment."""

    GENERATED = "generated"
    SECRET_BYTES = "secret_bytes"
    FILE = "file"


@dataclass(frozen=True, slots=True)
class WalletOption:
    """Exactly one way of obtaining the deployment keypair."""

    source: WalletSource = WalletSource.GENERATED
    secret_key: tuple[int, ...] | None = field(default=None, repr=False)
    path: str | None = None

    def __post_init__(self) -> None:
        if self.source is WalletSource.SECRET_BYTES:
            if self.secret_key is None or len(self.secret_key) != SECRET_KEY_LENGTH:
                raise ValueError(f"secret key must contain exactly {SECRET_KEY_LENGTH} bytes")
            if any(not 0 <= item <= 255 for item in self.secret_key):
                raise ValueError("secret key bytes must be integers in 0..255")
        elif self.secret_key is not None:
            raise ValueError("secret key is only valid for the secret_bytes source")
        if self.source is WalletSource.FILE:
            if not self.path:
                raise ValueError("file wallet option requires a path")
        elif self.path is not None:
            raise ValueError("path is only valid for the file source")

    @classmethod
    def generated(cls) -> WalletOption:
        return cls(WalletSource.GENERATED)

    @classmethod
    def from_secret_key(cls, secret_key: Sequence[int]) -> WalletOption:
        return cls(WalletSource.SECRET_BYTES, secret_key=tuple(int(item) for item in secret_key))

    @classmethod
    def from_path(cls, path: str) -> WalletOption:
        return cls(WalletSource.FILE, path=path)


@dataclass(frozen=True, slots=True)
class DeploymentRequest:
    """Validated deployment request."""

    repo_url: str
    network: Network = Network.DEVNET
    wallet: WalletOption = field(default_factory=WalletOption.generated)


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """Outcome of one external command that ran to completion."""

    command: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str
    log_lines: tuple[str, ...]
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def command_text(self) -> str:
        return shlex.join(self.command)

    @property
    def combined_output(self) -> str:
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr


@dataclass(frozen=True, slots=True)
class ProgramEntry:
    name: str
    program_id: str


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    """What the workspace manifest declares. Descriptive only."""

    root: Path
    manifest_path: Path
    cluster: str | None
    programs: tuple[ProgramEntry, ...]
    program_dirs: tuple[str, ...]

    def program_id_for(self, name: str) -> str | None:
        for entry in self.programs:
            if entry.name == name:
                return entry.program_id
        return None


@dataclass(frozen=True, slots=True)
class WalletHandle:
    """Issued keypair for one deployment.

    ``owned`` is true when the manager wrote ``keypair_path`` and must remove it.
    ``mirrored_path`` is set when the keypair was also copied into the shared
    default slot of the wallet directory.
    """

    deployment_id: str
    address: str
    keypair_path: Path
    source: WalletSource
    owned: bool
    mirrored_path: Path | None = None


class PipelineStep(StrEnum):
    """Linear states of a deployment run."""

    PENDING = "pending"
    CLONING = "cloning"
    VALIDATING = "validating"
    CONFIGURING_CLUSTER = "configuring_cluster"
    SETTING_UP_WALLET = "setting_up_wallet"
    FUNDING = "funding"
    BUILDING = "building"
    DEPLOYING = "deploying"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {PipelineStep.DONE, PipelineStep.FAILED}


class ExtractionStrategy(StrEnum):
    """Which tier of the identifier policy produced a value."""

    LABELED = "labeled"
    FALLBACK = "fallback"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class ExtractionOutcome:
    """Identifier pulled from free-form tool output, with how it was found."""

    value: str | None
    strategy: ExtractionStrategy
    candidates: tuple[str, ...] = ()

    @property
    def ambiguous(self) -> bool:
        return len(set(self.candidates)) > 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "candidates": len(self.candidates),
            "ambiguous": self.ambiguous,
        }


@dataclass(frozen=True, slots=True)
class BuildOutcome:
    log_lines: tuple[str, ...]
    duration_ms: int


@dataclass(frozen=True, slots=True)
class DeployOutcome:
    program_id: str
    signature: str | None
    log_lines: tuple[str, ...]
    duration_ms: int
    program_id_extraction: ExtractionOutcome
    signature_extraction: ExtractionOutcome


@dataclass(slots=True)
class Deployment:
    """Mutable run state of one deployment, owned by the pipeline."""

    deployment_id: str
    request: DeploymentRequest
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    step: PipelineStep = PipelineStep.PENDING
    step_durations_ms: dict[str, int] = field(default_factory=dict)
    workspace: Path | None = None
    wallet: WalletHandle | None = None
    program_id: str | None = None
    signature: str | None = None
    verified: bool = False
    error: DeployError | None = None
    failed_step: PipelineStep | None = None
    finished_at: datetime | None = None

    @property
    def elapsed_ms(self) -> int:
        end = self.finished_at if self.finished_at is not None else datetime.now(tz=UTC)
        return int((end - self.started_at).total_seconds() * 1000)

    def snapshot(self) -> dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "repo_url": self.request.repo_url,
            "network": self.request.network.value,
            "status": self.step.value,
            "started_at": _iso8601z(self.started_at),
            "finished_at": _iso8601z(self.finished_at) if self.finished_at else None,
            "step_durations_ms": dict(self.step_durations_ms),
            "program_id": self.program_id,
            "failed_step": self.failed_step.value if self.failed_step is not None else None,
            "error_code": self.error.kind.value if self.error is not None else None,
        }


@dataclass(frozen=True, slots=True)
class DeploymentResult:
    """Successful deployment outcome returned to callers."""

    deployment_id: str
    program_id: str
    signature: str | None
    network: Network
    wallet_address: str
    started_at: datetime
    deployment_time: datetime
    build_duration_ms: int
    deploy_duration_ms: int
    total_duration_ms: int
    verified: bool
    signature_confirmed: bool | None
    build_logs: tuple[str, ...]
    deploy_logs: tuple[str, ...]
    program_id_extraction: ExtractionOutcome
    signature_extraction: ExtractionOutcome

    def to_payload(self) -> dict[str, Any]:
        return {
            "program_id": self.program_id,
            "signature": self.signature,
            "network": self.network.value,
            "wallet_address": self.wallet_address,
            "started_at": _iso8601z(self.started_at),
            "deployment_time": _iso8601z(self.deployment_time),
            "build_duration_ms": self.build_duration_ms,
            "deploy_duration_ms": self.deploy_duration_ms,
            "total_duration_ms": self.total_duration_ms,
            "verified": self.verified,
            "signature_confirmed": self.signature_confirmed,
            "extraction": {
                "program_id": self.program_id_extraction.to_dict(),
                "signature": self.signature_extraction.to_dict(),
            },
            "build_logs": list(self.build_logs),
            "deploy_logs": list(self.deploy_logs),
        }


def _iso8601z(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = [
    "BuildOutcome",
    "DeployOutcome",
    "Deployment",
    "DeploymentRequest",
    "DeploymentResult",
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
]
