"""Anchor build/deploy driver and output interpretation."""

from program_deployer.toolchain.anchor_driver import AnchorDriver
from program_deployer.toolchain.diagnostics import (
    UNKNOWN_BUILD_ERROR,
    UNKNOWN_DEPLOY_ERROR,
    condense_build_errors,
    condense_deploy_errors,
)
from program_deployer.toolchain.environment import ToolProbe, probe_tool, probe_toolchain
from program_deployer.toolchain.extraction import (
    PROGRAM_ID_EXTRACTOR,
    SIGNATURE_EXTRACTOR,
    IdentifierExtractor,
    extract_program_id,
    extract_signature,
)

__all__ = [
    "PROGRAM_ID_EXTRACTOR",
    "SIGNATURE_EXTRACTOR",
    "UNKNOWN_BUILD_ERROR",
    "UNKNOWN_DEPLOY_ERROR",
    "AnchorDriver",
    "IdentifierExtractor",
    "ToolProbe",
    "condense_build_errors",
    "condense_deploy_errors",
    "extract_program_id",
    "extract_signature",
    "probe_tool",
    "probe_toolchain",
]
