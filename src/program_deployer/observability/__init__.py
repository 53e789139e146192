"""Observability exports: structured logging and correlation scopes."""

from program_deployer.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    configure_structlog,
    correlation_scope,
    default_log_redactor,
    get_correlation_context,
    redact_text,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "redact_text",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
