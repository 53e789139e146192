"""Workspace acquisition, validation and housekeeping."""

from program_deployer.workspace.project_validator import parse_program_entries, validate_project
from program_deployer.workspace.repository import RepositoryAcquirer

__all__ = [
    "RepositoryAcquirer",
    "parse_program_entries",
    "validate_project",
]
