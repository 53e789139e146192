"""Toolchain presence probes for the ``doctor`` command."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from program_deployer.domain.errors import DeployError
from program_deployer.sandbox.process_runner import CommandExecutionError, split_command

if TYPE_CHECKING:
    from program_deployer.sandbox.process_runner import CommandRunner


@dataclass(frozen=True, slots=True)
class ToolProbe:
    tool: str
    command: tuple[str, ...]
    available: bool
    version: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "command": list(self.command),
            "available": self.available,
            "version": self.version,
            "error": self.error,
        }


async def probe_tool(
    runner: CommandRunner,
    tool: str,
    command: Sequence[str] | str,
    *,
    timeout_seconds: float = 30.0,
) -> ToolProbe:
    argv = split_command(command)
    try:
        result = await runner.execute([*argv, "--version"], timeout_seconds=timeout_seconds)
    except (CommandExecutionError, DeployError) as exc:
        return ToolProbe(tool=tool, command=argv, available=False, error=str(exc))
    version = result.stdout.strip().splitlines()
    return ToolProbe(
        tool=tool,
        command=argv,
        available=True,
        version=version[0] if version else None,
    )


async def probe_toolchain(
    runner: CommandRunner,
    commands: Mapping[str, Sequence[str] | str],
    *,
    timeout_seconds: float = 30.0,
) -> list[ToolProbe]:
    """Probe every tool in ``commands`` concurrently, in mapping order."""

    return list(
        await asyncio.gather(
            *(
                probe_tool(runner, tool, command, timeout_seconds=timeout_seconds)
                for tool, command in commands.items()
            )
        )
    )


__all__ = ["ToolProbe", "probe_tool", "probe_toolchain"]
