"""Shared fixtures: a scripted command runner and fake toolchain executables."""

from __future__ import annotations

import shlex
import sys
import textwrap
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from program_deployer.config.schema import default_config
from program_deployer.domain.models import ProcessResult
from program_deployer.observability.logging import shutdown_logging
from program_deployer.sandbox.process_runner import CommandExecutionError

PROGRAM_ID = "Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS"
SIGNATURE = "5" + "Kx9" * 29
AIRDROP_SIGNATURE = "4" + "Bq7" * 29

ANCHOR_TOML = f"""
[features]
seeds = false

[programs.localnet]
demo = "{PROGRAM_ID}"

[programs.devnet]
demo = "{PROGRAM_ID}"

[provider]
cluster = "devnet"
wallet = "~/.config/solana/id.json"
"""


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Any:
    yield
    shutdown_logging()


# ---------------------------------------------------------------------------
# Scripted runner
# ---------------------------------------------------------------------------


Effect = Callable[[tuple[str, ...], Path | None], None]


@dataclass
class ScriptedCall:
    command: tuple[str, ...]
    cwd: Path | None
    env: dict[str, str] | None
    timeout_seconds: float
    stream_to_log: bool


@dataclass
class _Rule:
    prefix: tuple[str, ...]
    outputs: list[str]
    stderr: str
    exit_code: int
    raises: BaseException | None
    effect: Effect | None
    hits: int = 0


@dataclass
class ScriptedRunner:
    """In-memory ``CommandRunner`` answering commands by argv prefix.

    ``stdout`` may be a list; each call consumes the next entry and the last one
    repeats. Later rules for the same prefix replace earlier ones.
    """

    calls: list[ScriptedCall] = field(default_factory=list)
    _rules: list[_Rule] = field(default_factory=list)

    def on(
        self,
        *prefix: str,
        stdout: str | Sequence[str] = "",
        stderr: str = "",
        exit_code: int = 0,
        raises: BaseException | None = None,
        effect: Effect | None = None,
    ) -> None:
        outputs = [stdout] if isinstance(stdout, str) else list(stdout)
        self._rules = [rule for rule in self._rules if rule.prefix != prefix]
        self._rules.append(
            _Rule(
                prefix=prefix,
                outputs=outputs or [""],
                stderr=stderr,
                exit_code=exit_code,
                raises=raises,
                effect=effect,
            )
        )

    def commands(self, *prefix: str) -> list[tuple[str, ...]]:
        return [call.command for call in self.calls if call.command[: len(prefix)] == prefix]

    async def execute(
        self,
        command: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Any = None,
        timeout_seconds: float,
        stream_to_log: bool = False,
    ) -> ProcessResult:
        argv = tuple(str(part) for part in command)
        cwd_path = Path(cwd) if cwd is not None else None
        self.calls.append(
            ScriptedCall(
                command=argv,
                cwd=cwd_path,
                env=dict(env) if env is not None else None,
                timeout_seconds=timeout_seconds,
                stream_to_log=stream_to_log,
            )
        )
        rule = self._match(argv)
        if rule is None:
            raise CommandExecutionError(argv, f"unable to start {argv[0]!r}: unscripted command")

        index = min(rule.hits, len(rule.outputs) - 1)
        rule.hits += 1
        if rule.effect is not None:
            rule.effect(argv, cwd_path)
        if rule.raises is not None:
            raise rule.raises

        stdout = rule.outputs[index]
        lines = tuple(line for line in (stdout + "\n" + rule.stderr).splitlines() if line)
        result = ProcessResult(
            command=argv,
            exit_code=rule.exit_code,
            stdout=stdout,
            stderr=rule.stderr,
            log_lines=lines,
            duration_ms=1,
        )
        if rule.exit_code != 0:
            raise CommandExecutionError(
                argv,
                f"Command failed with code {rule.exit_code}: {shlex.join(argv)}",
                result=result,
            )
        return result

    def _match(self, argv: tuple[str, ...]) -> _Rule | None:
        best: _Rule | None = None
        for rule in self._rules:
            if argv[: len(rule.prefix)] == rule.prefix and (
                best is None or len(rule.prefix) > len(best.prefix)
            ):
                best = rule
        return best


def make_anchor_project(root: Path, *, manifest: str | None = ANCHOR_TOML) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    if manifest is not None:
        (root / "Anchor.toml").write_text(manifest, encoding="utf-8")
        program_src = root / "programs" / "demo" / "src"
        program_src.mkdir(parents=True, exist_ok=True)
        (program_src / "lib.rs").write_text("// demo program\n", encoding="utf-8")
    else:
        (root / "README.md").write_text("not an anchor project\n", encoding="utf-8")
    return root


def clone_effect(*, anchor: bool = True) -> Effect:
    def effect(argv: tuple[str, ...], _cwd: Path | None) -> None:
        make_anchor_project(Path(argv[-1]), manifest=ANCHOR_TOML if anchor else None)

    return effect


def write_cli_config_effect(argv: tuple[str, ...], _cwd: Path | None) -> None:
    url = argv[argv.index("--url") + 1]
    config_path = Path(argv[argv.index("--config") + 1])
    config_path.write_text(f"json_rpc_url: {url}\ncommitment: confirmed\n", encoding="utf-8")


def script_happy_toolchain(
    runner: ScriptedRunner,
    *,
    balances: Sequence[str] = ("5 SOL",),
) -> None:
    runner.on("git", "clone", effect=clone_effect())
    runner.on("solana", "config", "set", effect=write_cli_config_effect)
    runner.on("solana", "balance", stdout=list(balances))
    runner.on(
        "solana",
        "airdrop",
        stdout=f"Requesting airdrop of 2 SOL\n\nSignature: {AIRDROP_SIGNATURE}\n",
    )
    runner.on("solana", "program", "show", stdout=f"Program Id: {PROGRAM_ID}\n")
    runner.on("solana", "confirm", stdout="Finalized\n")
    runner.on("anchor", "build", stdout="Compiling demo v0.1.0\nFinished release\n")
    runner.on(
        "anchor",
        "deploy",
        stdout=(
            "Deploying cluster: https://api.devnet.solana.com\n"
            f"Program Id: {PROGRAM_ID}\n\n"
            f"Signature: {SIGNATURE}\n\nDeploy success\n"
        ),
    )


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture
def deployer_config(tmp_path: Path) -> dict[str, Any]:
    config: dict[str, Any] = default_config()
    config["paths"]["temp_dir"] = str(tmp_path / "temp")
    config["paths"]["wallet_dir"] = str(tmp_path / "wallets")
    config["observability"]["log_dir"] = str(tmp_path / "logs")
    config["wallet"]["airdrop_settle_seconds"] = 0.0
    config["wallet"]["airdrop_retry_delay_seconds"] = 0.0
    return config


# ---------------------------------------------------------------------------
# Fake toolchain executables
# ---------------------------------------------------------------------------

_FAKE_GIT = """
import os
import pathlib
import sys

args = sys.argv[1:]
if args and args[0] == "--version":
    print("git version 2.43.0 (fake)")
    sys.exit(0)
if not args or args[0] != "clone":
    print(f"fake git: unsupported {args}", file=sys.stderr)
    sys.exit(2)
if os.environ.get("FAKE_GIT_FAIL"):
    print("fatal: repository not found", file=sys.stderr)
    sys.exit(128)
target = pathlib.Path(args[-1])
target.mkdir(parents=True)
if os.environ.get("FAKE_GIT_LAYOUT", "anchor") == "anchor":
    (target / "Anchor.toml").write_text(os.environ["FAKE_ANCHOR_TOML"], encoding="utf-8")
    src = target / "programs" / "demo" / "src"
    src.mkdir(parents=True)
    (src / "lib.rs").write_text("// demo\\n", encoding="utf-8")
else:
    (target / "README.md").write_text("plain repository\\n", encoding="utf-8")
print(f"Cloning into '{target}'...")
"""

_FAKE_SOLANA = """
import os
import pathlib
import sys

args = sys.argv[1:]
state = pathlib.Path(os.environ["FAKE_SOLANA_STATE"])
state.mkdir(parents=True, exist_ok=True)


def option(name):
    return args[args.index(name) + 1] if name in args else None


def balance_file(address):
    return state / f"balance-{address}"


def read_balance(address):
    path = balance_file(address)
    if path.exists():
        return float(path.read_text())
    return float(os.environ.get("FAKE_SOLANA_BALANCE", "0"))


if args and args[0] == "--version":
    print("solana-cli 1.18.0 (fake)")
elif args[:2] == ["config", "set"]:
    config_path = pathlib.Path(option("--config"))
    config_path.write_text(f"json_rpc_url: {option('--url')}\\ncommitment: confirmed\\n")
    print(f"Config File: {config_path}")
    print(f"RPC URL: {option('--url')}")
elif args[0] == "balance":
    print(f"{read_balance(args[1]):g} SOL")
elif args[0] == "airdrop":
    amount, address = float(args[1]), args[2]
    with open(state / "airdrops.log", "a", encoding="utf-8") as handle:
        handle.write(f"{address} {amount}\\n")
    balance_file(address).write_text(str(read_balance(address) + amount))
    print(f"Requesting airdrop of {amount:g} SOL")
    print("")
    print("Signature: " + os.environ["FAKE_AIRDROP_SIGNATURE"])
elif args[:2] == ["program", "show"]:
    print(f"Program Id: {args[2]}")
elif args[0] == "confirm":
    print("Finalized")
else:
    print(f"fake solana: unsupported {args}", file=sys.stderr)
    sys.exit(2)
"""

_FAKE_ANCHOR = """
import os
import pathlib
import subprocess
import sys
import time

args = sys.argv[1:]

if args and args[0] == "--version":
    print("anchor-cli 0.29.0 (fake)")
elif args[0] == "build":
    hang = os.environ.get("FAKE_ANCHOR_BUILD_HANG")
    if hang:
        child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(120)"])
        pathlib.Path(hang).write_text(f"{os.getpid()} {child.pid}")
        print("Compiling demo v0.1.0", flush=True)
        time.sleep(120)
    if os.environ.get("FAKE_ANCHOR_BUILD_FAIL"):
        print("error[E0425]: cannot find value `x` in this scope", file=sys.stderr)
        print("error: could not compile `demo`", file=sys.stderr)
        sys.exit(101)
    print("Compiling demo v0.1.0")
    print("Finished release [optimized] target(s)")
elif args[0] == "deploy":
    wallet = args[args.index("--provider.wallet") + 1]
    cluster = args[args.index("--provider.cluster") + 1]
    if not pathlib.Path(wallet).is_file():
        print(f"Error: wallet {wallet} missing", file=sys.stderr)
        sys.exit(1)
    print(f"Deploying cluster: {cluster}")
    print(f"Upgrade authority: {wallet}")
    print("Deploying program \\"demo\\"...")
    print("Program Id: " + os.environ["FAKE_PROGRAM_ID"])
    print("")
    print("Signature: " + os.environ["FAKE_DEPLOY_SIGNATURE"])
    print("")
    print("Deploy success")
else:
    print(f"fake anchor: unsupported {args}", file=sys.stderr)
    sys.exit(2)
"""


@dataclass(frozen=True)
class FakeToolchain:
    root: Path
    state_dir: Path
    commands: dict[str, str]

    def airdrops(self) -> list[str]:
        log = self.state_dir / "airdrops.log"
        if not log.exists():
            return []
        return log.read_text(encoding="utf-8").splitlines()


@pytest.fixture
def fake_toolchain(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeToolchain:
    bin_dir = tmp_path / "fake-bin"
    bin_dir.mkdir()
    commands: dict[str, str] = {}
    for name, source in (("git", _FAKE_GIT), ("solana", _FAKE_SOLANA), ("anchor", _FAKE_ANCHOR)):
        script = bin_dir / f"fake_{name}.py"
        script.write_text(textwrap.dedent(source), encoding="utf-8")
        commands[name] = f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}"

    state_dir = tmp_path / "fake-state"
    monkeypatch.setenv("FAKE_SOLANA_STATE", str(state_dir))
    monkeypatch.setenv("FAKE_ANCHOR_TOML", ANCHOR_TOML)
    monkeypatch.setenv("FAKE_PROGRAM_ID", PROGRAM_ID)
    monkeypatch.setenv("FAKE_DEPLOY_SIGNATURE", SIGNATURE)
    monkeypatch.setenv("FAKE_AIRDROP_SIGNATURE", AIRDROP_SIGNATURE)
    for name in (
        "FAKE_GIT_FAIL",
        "FAKE_GIT_LAYOUT",
        "FAKE_SOLANA_BALANCE",
        "FAKE_ANCHOR_BUILD_HANG",
        "FAKE_ANCHOR_BUILD_FAIL",
    ):
        monkeypatch.delenv(name, raising=False)
    return FakeToolchain(root=bin_dir, state_dir=state_dir, commands=commands)


@pytest.fixture
def fake_toolchain_config(
    deployer_config: dict[str, Any], fake_toolchain: FakeToolchain
) -> dict[str, Any]:
    deployer_config["toolchain"]["git_command"] = fake_toolchain.commands["git"]
    deployer_config["toolchain"]["solana_command"] = fake_toolchain.commands["solana"]
    deployer_config["toolchain"]["anchor_command"] = fake_toolchain.commands["anchor"]
    return deployer_config
