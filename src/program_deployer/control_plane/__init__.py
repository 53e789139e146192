"""Deployment orchestration: admission, pipeline, status tracking."""

from program_deployer.control_plane.admission import AdmissionGate
from program_deployer.control_plane.factory import (
    build_pipeline,
    build_repository,
    build_runner,
    build_solana_cli,
)
from program_deployer.control_plane.pipeline import DeploymentPipeline
from program_deployer.control_plane.tracker import DeploymentTracker

__all__ = [
    "AdmissionGate",
    "DeploymentPipeline",
    "DeploymentTracker",
    "build_pipeline",
    "build_repository",
    "build_runner",
    "build_solana_cli",
]
