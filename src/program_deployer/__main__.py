"""Module entrypoint for ``python -m program_deployer``."""

from __future__ import annotations

from program_deployer.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
