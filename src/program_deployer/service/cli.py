"""Command-line interface router for program-deployer."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from program_deployer.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
)
from program_deployer.control_plane import build_pipeline, build_repository, build_runner
from program_deployer.observability import setup_logging, shutdown_logging
from program_deployer.service.api import ApiResponse, DeployService
from program_deployer.toolchain.environment import probe_toolchain


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="program-deployer",
        description=(
            "program-deployer — build and deploy Anchor programs from GitHub.\n\n"
            "Common workflows:\n"
            "  program-deployer deploy https://github.com/user/repo\n"
            "  program-deployer doctor       Check toolchain availability\n"
            "  program-deployer sweep        Remove stale workspaces\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to deployer TOML config (default: ./deployer.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # deploy --------------------------------------------------------------
    deploy_parser = subparsers.add_parser(
        "deploy",
        parents=[common],
        help="Clone, build and deploy an Anchor repository",
    )
    deploy_parser.add_argument("repo_url", help="GitHub repository URL")
    deploy_parser.add_argument(
        "--network", default=None, help="Target cluster: devnet or mainnet-beta"
    )
    wallet_group = deploy_parser.add_mutually_exclusive_group()
    wallet_group.add_argument(
        "--wallet-path",
        default=None,
        help="Keypair file relative to the configured wallet directory",
    )
    wallet_group.add_argument(
        "--wallet-keypair-file",
        default=None,
        help="Local JSON file holding a 64-byte secret key array",
    )
    deploy_parser.set_defaults(handler=_cmd_deploy)

    # status --------------------------------------------------------------
    status_parser = subparsers.add_parser(
        "status",
        parents=[common],
        help="Show the tracked state of a deployment",
    )
    status_parser.add_argument("deployment_id", help="Deployment identifier")
    status_parser.set_defaults(handler=_cmd_status)

    # health --------------------------------------------------------------
    health_parser = subparsers.add_parser("health", parents=[common], help="Liveness payload")
    health_parser.set_defaults(handler=_cmd_health)

    # sweep ---------------------------------------------------------------
    sweep_parser = subparsers.add_parser(
        "sweep",
        parents=[common],
        help="Remove workspaces older than the configured age",
    )
    sweep_parser.add_argument(
        "--max-age-hours",
        type=float,
        default=None,
        help="Override service.workspace_max_age_hours",
    )
    sweep_parser.set_defaults(handler=_cmd_sweep)

    # doctor --------------------------------------------------------------
    doctor_parser = subparsers.add_parser(
        "doctor",
        parents=[common],
        help="Check config and toolchain availability",
    )
    doctor_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    doctor_parser.set_defaults(handler=_cmd_doctor)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the redacted effective configuration",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_deploy(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    payload: dict[str, Any] = {"repo_url": args.repo_url}
    if args.network is not None:
        payload["network"] = args.network
    if args.wallet_path is not None:
        payload["wallet_path"] = args.wallet_path
    if args.wallet_keypair_file is not None:
        payload["wallet_keypair"] = _read_keypair_file(args.wallet_keypair_file)

    handle = setup_logging(config["observability"], instance_id=_instance_id())
    try:
        service = DeployService.from_config(config, build_pipeline(config))
        response = asyncio.run(service.handle_deploy(payload))
    finally:
        shutdown_logging(handle)
    _emit_response(response)
    return 0 if response.ok else 1


def _cmd_status(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    service = DeployService.from_config(config, build_pipeline(config))
    response = service.handle_status(args.deployment_id)
    _emit_response(response)
    return 0 if response.ok else 1


def _cmd_health(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    service = DeployService.from_config(config, build_pipeline(config))
    _emit_response(service.handle_health())
    return 0


def _cmd_sweep(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    max_age_hours = (
        args.max_age_hours
        if args.max_age_hours is not None
        else float(config["service"]["workspace_max_age_hours"])
    )
    if max_age_hours < 0:
        raise CLIError("--max-age-hours must be >= 0", exit_code=2)

    handle = setup_logging(config["observability"], instance_id=_instance_id())
    try:
        repository = build_repository(config, build_runner(config))
        removed = repository.sweep_stale_workspaces(max_age_hours)
    finally:
        shutdown_logging(handle)
    _emit_json(
        {
            "command": "sweep",
            "max_age_hours": max_age_hours,
            "removed": [str(path) for path in removed],
        }
    )
    return 0


def _cmd_doctor(args: argparse.Namespace) -> int:
    checks: list[tuple[str, bool, str]] = []

    config: dict[str, Any] | None = None
    try:
        config = _load_effective_config(args)
        checks.append(("config", True, "loaded successfully"))
    except CLIError as exc:
        checks.append(("config", False, str(exc)))

    if config is not None:
        toolchain = config["toolchain"]
        probes = asyncio.run(
            probe_toolchain(
                build_runner(config),
                {
                    "git": toolchain["git_command"],
                    "solana": toolchain["solana_command"],
                    "anchor": toolchain["anchor_command"],
                },
                timeout_seconds=float(config["timeouts"]["cli_seconds"]),
            )
        )
        for probe in probes:
            detail = (probe.version or "version unknown") if probe.available else probe.error
            checks.append((probe.tool, probe.available, detail or "not available"))

        for label, raw_path in (
            ("temp_dir", config["paths"]["temp_dir"]),
            ("wallet_dir", config["paths"]["wallet_dir"]),
        ):
            checks.append(_directory_check(label, Path(raw_path)))
    else:
        checks.append(("toolchain", False, "skipped (config failed)"))

    checks_payload: list[dict[str, object]] = [
        {"name": name, "status": "ok" if passed else "fail", "detail": detail}
        for name, passed, detail in checks
    ]
    all_passed = all(passed for _, passed, _ in checks)

    if args.json:
        _emit_json({"command": "doctor", "checks": checks_payload, "ok": all_passed})
    else:
        for name, passed, detail in checks:
            marker = "ok  " if passed else "FAIL"
            print(f"[{marker}] {name}: {detail}")
        print("\nAll checks passed." if all_passed else "\nSome checks failed. See details above.")
    return 0 if all_passed else 1


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    _emit_json(
        {
            "command": "config",
            "active_profile": args.profile,
            "config": effective_config(config),
        }
    )
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    try:
        return load_config(args.config_path, profile=args.profile)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _read_keypair_file(path_text: str) -> object:
    path = Path(path_text).expanduser()
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CLIError(f"unable to read keypair file {path}: {exc}", exit_code=2) from exc


def _directory_check(label: str, path: Path) -> tuple[str, bool, str]:
    if path.is_dir():
        writable = os.access(path, os.W_OK)
        return (label, writable, f"{path} ({'writable' if writable else 'not writable'})")
    if path.exists():
        return (label, False, f"{path} exists but is not a directory")
    return (label, True, f"{path} (created on first use)")


def _instance_id() -> str:
    return f"cli-{os.getpid()}"


def _emit_response(response: ApiResponse) -> None:
    _emit_json({"http_status": response.status, **response.body})


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False))


__all__ = ["CLIError", "build_parser", "run_cli"]
