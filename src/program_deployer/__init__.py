"""
program-deployer — package root

File: src/program_deployer/__init__.py

Purpose
- Orchestrate one-shot deployments of Anchor programs: clone, validate, configure the
  cluster, issue and fund a wallet, build, deploy, verify, and always clean up.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
