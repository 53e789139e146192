"""
program-deployer config package public API.

File: src/program_deployer/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``deployer.toml`` + ``DEPLOYER_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from program_deployer.config.loader import (
    DEFAULT_CONFIG_FILE,
    DIRECTORY_FIELDS,
    ENV_PREFIX,
    OVERRIDABLE_SECTIONS,
    PROFILE_ENV,
    ConfigLoadError,
    dump_effective_config,
    effective_config,
    env_name_for,
    load_config,
)
from program_deployer.config.schema import (
    DEFAULT_CONFIG,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    DeployerConfig,
    ProfileOverlay,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "DIRECTORY_FIELDS",
    "DeployerConfig",
    "ENV_PREFIX",
    "OVERRIDABLE_SECTIONS",
    "PROFILE_ENV",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "effective_config",
    "env_name_for",
    "load_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
