"""
program-deployer — runtime config loader.

File: src/program_deployer/config/loader.py

Purpose
- Build the effective deployer config from its layered sources.

Layers, later ones winning
- Built-in defaults, then ``deployer.toml``.
- The ``[profiles.<name>]`` overlay chosen by ``--profile`` or ``DEPLOYER_PROFILE``.
- ``DEPLOYER_<SECTION>_<KEY>`` environment variables, typed like the default they replace.
- Dotted ``section.key`` CLI overrides.

The scratch, wallet and log directories are resolved against the config file's directory.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final, cast

from program_deployer.config.schema import (
    DEFAULT_CONFIG,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "deployer.toml"
ENV_PREFIX: Final[str] = "DEPLOYER_"
PROFILE_ENV: Final[str] = f"{ENV_PREFIX}PROFILE"

# Sections that environment variables and CLI overrides may target.
OVERRIDABLE_SECTIONS: Final[tuple[str, ...]] = (
    "service",
    "networks",
    "toolchain",
    "timeouts",
    "repository",
    "wallet",
    "paths",
    "observability",
)

DIRECTORY_FIELDS: Final[tuple[tuple[str, str], ...]] = (
    ("paths", "temp_dir"),
    ("paths", "wallet_dir"),
    ("observability", "log_dir"),
)


class ConfigLoadError(ValueError):
    """Raised when config cannot be read or an override cannot be coerced."""


def _parse_flag(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(raw)


_ENV_PARSERS: Final[dict[type, tuple[Callable[[str], object], str]]] = {
    bool: (_parse_flag, "must be a boolean (true/false/1/0/yes/no/on/off)"),
    int: (int, "must be an integer"),
    float: (float, "must be a number"),
    str: (str, "must be a string"),
}


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load, merge and validate the effective config.

    An explicit ``config_path`` must exist; without one, ``deployer.toml`` in the
    working directory is used when present.
    """

    env = os.environ if environ is None else environ
    if config_path is None:
        path = (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    else:
        path = Path(config_path).expanduser().resolve()

    config = assert_valid_config(
        merge_config(default_config(), _read_toml(path, required=config_path is not None))
    )

    selected = (profile if profile is not None else env.get(PROFILE_ENV, "")).strip() or None
    config = apply_profile_overlay(config, selected)
    config = merge_config(config, _env_overrides(env))
    config = merge_config(config, _cli_overrides(cli_overrides or {}))
    config = assert_valid_config(config, active_profile=selected)

    for section, key in DIRECTORY_FIELDS:
        config[section][key] = _resolve_directory(config[section][key], path.parent)
    return config


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Redacted view of ``config`` for logs and the ``config`` command."""

    return redact_config(config)


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(
        effective_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def env_name_for(section: str, key: str) -> str:
    """Environment variable that overrides ``[section] key``."""

    return f"{ENV_PREFIX}{section.upper()}_{key.upper()}"


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_overrides(env: Mapping[str, str]) -> dict[str, dict[str, object]]:
    defaults = cast(Mapping[str, Mapping[str, object]], DEFAULT_CONFIG)
    overrides: dict[str, dict[str, object]] = {}
    for section in OVERRIDABLE_SECTIONS:
        for key, default in defaults[section].items():
            name = env_name_for(section, key)
            raw = env.get(name)
            if raw is None:
                continue
            parse, expectation = _ENV_PARSERS[type(default)]
            try:
                value = parse(raw.strip())
            except ValueError as exc:
                raise ConfigLoadError(f"{name} -> {section}.{key} {expectation}") from exc
            overrides.setdefault(section, {})[key] = value
    return overrides


def _cli_overrides(overrides: Mapping[str, object]) -> dict[str, dict[str, object]]:
    payload: dict[str, dict[str, object]] = {}
    for dotted, value in overrides.items():
        section, _, key = dotted.partition(".")
        if section not in OVERRIDABLE_SECTIONS or not key or "." in key:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}; expected section.key")
        payload.setdefault(section, {})[key] = value
    return payload


def _resolve_directory(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "DIRECTORY_FIELDS",
    "ENV_PREFIX",
    "OVERRIDABLE_SECTIONS",
    "PROFILE_ENV",
    "dump_effective_config",
    "effective_config",
    "env_name_for",
    "load_config",
]
