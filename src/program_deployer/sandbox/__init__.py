"""Process execution for external toolchain commands."""

from program_deployer.sandbox.process_runner import (
    CommandExecutionError,
    CommandRunner,
    ProcessRunner,
    kill_process_tree,
    split_command,
)

__all__ = [
    "CommandExecutionError",
    "CommandRunner",
    "ProcessRunner",
    "kill_process_tree",
    "split_command",
]
