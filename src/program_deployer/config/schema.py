"""
program-deployer — configuration schema and validation.

File: src/program_deployer/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Profile overlay validation and deterministic deep-merge helpers.
- Redaction rules for sensitive fields.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject embedded secrets: key material is never configuration.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from program_deployer.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_DEVNET_RPC_URL,
    DEFAULT_MAINNET_RPC_URL,
    LOG_DIR,
    SUPPORTED_NETWORKS,
    TEMP_DIR,
    WALLET_DIR,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_URL_PATTERN = re.compile(r"^https?://[^\s/]+(/\S*)?$")
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {
        "secret",
        "token",
        "password",
        "passwd",
        "key",
        "private",
        "credential",
        "credentials",
        "seed",
        "mnemonic",
    }
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "secret_key",
    "private_key",
    "wallet_keypair",
    "seed_phrase",
    "password",
    "secret",
)


class MetaConfig(TypedDict):
    schema_version: int


class ServiceConfig(TypedDict):
    environment: Literal["development", "production"]
    max_concurrent_deployments: int
    admission_timeout_seconds: float
    sweep_interval_hours: float
    workspace_max_age_hours: float
    status_history_size: int


class NetworksConfig(TypedDict):
    default: Literal["devnet", "mainnet-beta"]
    devnet_rpc_url: str
    mainnet_rpc_url: str


class ToolchainConfig(TypedDict):
    git_command: str
    solana_command: str
    anchor_command: str
    max_output_chars: int


class TimeoutsConfig(TypedDict):
    clone_seconds: float
    build_seconds: float
    deploy_seconds: float
    cli_seconds: float
    airdrop_seconds: float
    verify_seconds: float


class RepositoryConfig(TypedDict):
    max_size_mb: float
    clone_depth: int


class WalletConfig(TypedDict):
    min_balance_sol: float
    airdrop_amount_sol: float
    airdrop_max_attempts: int
    airdrop_settle_seconds: float
    airdrop_retry_delay_seconds: float
    airdrop_success_ratio: float
    mirror_default_keypair: bool


class PathsConfig(TypedDict):
    temp_dir: str
    wallet_dir: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    redact_secrets: bool
    log_to_stdout: bool


class ProfileOverlay(TypedDict, total=False):
    service: dict[str, object]
    networks: dict[str, object]
    toolchain: dict[str, object]
    timeouts: dict[str, object]
    repository: dict[str, object]
    wallet: dict[str, object]
    paths: dict[str, object]
    observability: dict[str, object]


class DeployerConfig(TypedDict):
    meta: MetaConfig
    service: ServiceConfig
    networks: NetworksConfig
    toolchain: ToolchainConfig
    timeouts: TimeoutsConfig
    repository: RepositoryConfig
    wallet: WalletConfig
    paths: PathsConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[DeployerConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "service": {
        "environment": "development",
        "max_concurrent_deployments": 5,
        "admission_timeout_seconds": 30.0,
        "sweep_interval_hours": 6.0,
        "workspace_max_age_hours": 24.0,
        "status_history_size": 256,
    },
    "networks": {
        "default": "devnet",
        "devnet_rpc_url": DEFAULT_DEVNET_RPC_URL,
        "mainnet_rpc_url": DEFAULT_MAINNET_RPC_URL,
    },
    "toolchain": {
        "git_command": "git",
        "solana_command": "solana",
        "anchor_command": "anchor",
        "max_output_chars": 200_000,
    },
    "timeouts": {
        "clone_seconds": 120.0,
        "build_seconds": 300.0,
        "deploy_seconds": 600.0,
        "cli_seconds": 30.0,
        "airdrop_seconds": 60.0,
        "verify_seconds": 30.0,
    },
    "repository": {
        "max_size_mb": 500.0,
        "clone_depth": 1,
    },
    "wallet": {
        "min_balance_sol": 2.0,
        "airdrop_amount_sol": 2.0,
        "airdrop_max_attempts": 4,
        "airdrop_settle_seconds": 3.0,
        "airdrop_retry_delay_seconds": 5.0,
        "airdrop_success_ratio": 0.9,
        "mirror_default_keypair": False,
    },
    "paths": {
        "temp_dir": f"{TEMP_DIR}/",
        "wallet_dir": f"{WALLET_DIR}/",
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": f"{LOG_DIR}/",
        "redact_secrets": True,
        "log_to_stdout": False,
    },
    "profiles": {
        "development": {
            "observability": {"log_level": "DEBUG", "log_to_stdout": True},
        },
        "production": {
            "service": {"environment": "production"},
            "observability": {"log_level": "INFO"},
        },
    },
}

@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered or '- unknown validation failure'}")


class _Invalid(ValueError):
    """One field value broke its rule; the message becomes the issue text."""


_Rule = Callable[[object], object]


def default_config() -> DeployerConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade deployer.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the program-deployer runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; nested tables merge key by key."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Merge the named ``[profiles.<name>]`` table over ``config`` and re-validate."""

    selected = (profile or "").strip()
    if not selected:
        return merge_config({}, config)

    profiles = config.get("profiles")
    overlay = profiles.get(selected) if isinstance(profiles, Mapping) else None
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    return assert_valid_config(merge_config(config, overlay), active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate every section and profile overlay, collecting all issues."""

    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        issues.append(
            ConfigValidationIssue("<root>", f"expected object, got {type(config).__name__}")
        )
        return ConfigValidationResult(config=None, issues=tuple(issues))

    _check_keys(config, set(_SECTION_RULES) | {"profiles"}, "", issues)

    normalized: dict[str, Any] = {}
    for section in sorted(_SECTION_RULES):
        if section not in config:
            issues.append(ConfigValidationIssue(section, "missing required field"))
            continue
        checked = _check_section(section, config[section], section, issues, partial=False)
        if checked is not None:
            normalized[section] = checked

    if "profiles" in config:
        normalized["profiles"] = _check_profiles(config["profiles"], issues)

    selected = (active_profile or "").strip()
    if selected and selected not in normalized.get("profiles", {}):
        issues.append(ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"))

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Copy ``config`` with every sensitive-looking key replaced by ``<redacted>``."""

    if not isinstance(config, Mapping):
        return {}
    return {
        key: "<redacted>" if _looks_sensitive_key(key) else _redact(value)
        for key, value in sorted(config.items())
    }


def _redact(value: object) -> object:
    if isinstance(value, Mapping):
        return redact_config(value)
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


# --- field rules -----------------------------------------------------------------------


def _integer(*, minimum: int | None = None) -> _Rule:
    def rule(value: object) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _Invalid(f"expected integer, got {type(value).__name__}")
        if minimum is not None and value < minimum:
            raise _Invalid(f"must be >= {minimum}")
        return value

    return rule


def _number(
    *,
    minimum: float | None = None,
    maximum: float | None = None,
    positive: bool = False,
) -> _Rule:
    def rule(value: object) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise _Invalid(f"expected number, got {type(value).__name__}")
        parsed = float(value)
        if not math.isfinite(parsed):
            raise _Invalid("must be finite")
        if positive and parsed <= 0:
            raise _Invalid("must be > 0")
        if minimum is not None and parsed < minimum:
            raise _Invalid(f"must be >= {minimum}")
        if maximum is not None and parsed > maximum:
            raise _Invalid(f"must be <= {maximum}")
        return parsed

    return rule


def _text(value: object) -> str:
    if not isinstance(value, str):
        raise _Invalid(f"expected string, got {type(value).__name__}")
    parsed = value.strip()
    if not parsed:
        raise _Invalid("must not be empty")
    if "\x00" in parsed:
        raise _Invalid("must not contain NUL bytes")
    return parsed


def _choice(*allowed: str) -> _Rule:
    def rule(value: object) -> str:
        parsed = _text(value)
        if parsed not in allowed:
            raise _Invalid(
                f"invalid value {parsed!r}; expected one of: {', '.join(sorted(allowed))}"
            )
        return parsed

    return rule


def _url(value: object) -> str:
    parsed = _text(value)
    if not _URL_PATTERN.fullmatch(parsed):
        raise _Invalid("must be an http(s) URL")
    return parsed


def _flag(value: object) -> bool:
    if not isinstance(value, bool):
        raise _Invalid(f"expected boolean, got {type(value).__name__}")
    return value


def _schema_version(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise _Invalid("expected a positive integer schema version")
    if value != ConfigSchemaVersion:
        raise _Invalid(migration_guidance(value))
    return value


_SECTION_RULES: Final[dict[str, dict[str, _Rule]]] = {
    "meta": {"schema_version": _schema_version},
    "service": {
        "environment": _choice("development", "production"),
        "max_concurrent_deployments": _integer(minimum=1),
        "admission_timeout_seconds": _number(positive=True),
        "sweep_interval_hours": _number(positive=True),
        "workspace_max_age_hours": _number(minimum=0.0),
        "status_history_size": _integer(minimum=1),
    },
    "networks": {
        "default": _choice(*SUPPORTED_NETWORKS),
        "devnet_rpc_url": _url,
        "mainnet_rpc_url": _url,
    },
    "toolchain": {
        "git_command": _text,
        "solana_command": _text,
        "anchor_command": _text,
        "max_output_chars": _integer(minimum=1024),
    },
    "timeouts": {
        "clone_seconds": _number(positive=True),
        "build_seconds": _number(positive=True),
        "deploy_seconds": _number(positive=True),
        "cli_seconds": _number(positive=True),
        "airdrop_seconds": _number(positive=True),
        "verify_seconds": _number(positive=True),
    },
    "repository": {
        "max_size_mb": _number(positive=True),
        "clone_depth": _integer(minimum=1),
    },
    "wallet": {
        "min_balance_sol": _number(minimum=0.0),
        "airdrop_amount_sol": _number(positive=True),
        "airdrop_max_attempts": _integer(minimum=1),
        "airdrop_settle_seconds": _number(minimum=0.0),
        "airdrop_retry_delay_seconds": _number(minimum=0.0),
        "airdrop_success_ratio": _number(maximum=1.0, positive=True),
        "mirror_default_keypair": _flag,
    },
    "paths": {
        "temp_dir": _text,
        "wallet_dir": _text,
    },
    "observability": {
        "log_level": _choice("DEBUG", "INFO", "WARNING", "ERROR"),
        "log_dir": _text,
        "redact_secrets": _flag,
        "log_to_stdout": _flag,
    },
}

# Profiles may override any section except the schema marker.
_OVERLAY_SECTIONS: Final[frozenset[str]] = frozenset(_SECTION_RULES) - {"meta"}


def _check_section(
    section: str,
    payload: object,
    path: str,
    issues: list[ConfigValidationIssue],
    *,
    partial: bool,
) -> dict[str, Any] | None:
    if not isinstance(payload, Mapping):
        issues.append(ConfigValidationIssue(path, f"expected object, got {type(payload).__name__}"))
        return None

    rules = _SECTION_RULES[section]
    _check_keys(payload, set(rules), path, issues)

    out: dict[str, Any] = {}
    for key in sorted(rules):
        field_path = f"{path}.{key}"
        if key not in payload:
            if not partial:
                issues.append(ConfigValidationIssue(field_path, "missing required field"))
            continue
        try:
            out[key] = rules[key](payload[key])
        except _Invalid as exc:
            issues.append(ConfigValidationIssue(field_path, str(exc)))
    return out


def _check_profiles(payload: object, issues: list[ConfigValidationIssue]) -> dict[str, Any]:
    if not isinstance(payload, Mapping):
        issues.append(
            ConfigValidationIssue("profiles", f"expected object, got {type(payload).__name__}")
        )
        return {}

    out: dict[str, Any] = {}
    for name in sorted(payload):
        path = f"profiles.{name}"
        overlay = payload[name]
        if not isinstance(name, str) or not _PROFILE_NAME_PATTERN.fullmatch(name):
            issues.append(ConfigValidationIssue(path, "profile name must match ^[a-z][a-z0-9_-]*$"))
            continue
        if not isinstance(overlay, Mapping):
            issues.append(
                ConfigValidationIssue(path, f"expected object, got {type(overlay).__name__}")
            )
            continue
        _check_keys(overlay, set(_OVERLAY_SECTIONS), path, issues)
        checked: dict[str, Any] = {}
        for section in sorted(_OVERLAY_SECTIONS & set(overlay)):
            values = _check_section(
                section, overlay[section], f"{path}.{section}", issues, partial=True
            )
            if values is not None:
                checked[section] = values
        out[name] = checked
    return out


def _check_keys(
    payload: Mapping[Any, object],
    allowed: set[str],
    path: str,
    issues: list[ConfigValidationIssue],
) -> None:
    for key in sorted(map(str, payload)):
        if key in allowed:
            continue
        key_path = f"{path}.{key}" if path else key
        if _looks_sensitive_key(key):
            message = "embedded key material is forbidden; pass keypairs per request or as files"
        else:
            message = "unknown field"
        issues.append(ConfigValidationIssue(key_path, message))


def _looks_sensitive_key(key: str) -> bool:
    snake = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    normalized = _NON_ALNUM.sub("_", snake.lower()).strip("_")
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    return any(token in _SENSITIVE_KEY_TOKENS for token in normalized.split("_"))


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DeployerConfig",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
