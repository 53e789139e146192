"""Structured logging setup with JSON-lines output and redaction support.

Components emit events through ``structlog`` (event name plus keyword fields).
``configure_structlog`` routes those events into the stdlib logger configured here,
where a queue-backed listener renders them as one JSON object per line.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import re
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, cast

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

_REDACTED_VALUE: Final[str] = "***REDACTED***"
_DEFAULT_LOG_FILENAME: Final[str] = "deployer.jsonl"
_DEFAULT_LOGGER_NAME: Final[str] = "program_deployer"
_DEFAULT_QUEUE_SIZE: Final[int] = 4096

_CORRELATION_KEYS: Final[tuple[str, ...]] = (
    "instance_id",
    "deployment_id",
    "step",
)

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "private_key",
    "keypair_bytes",
    "wallet_keypair",
    "seed",
    "mnemonic",
    "authorization",
    "credential",
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(token|password|secret|secret_key|private_key|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
# A JSON array of 64 small integers is a serialized ed25519 keypair.
_SECRET_KEY_ARRAY_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"\[\s*(?:\d{1,3}\s*,\s*){63}\d{1,3}\s*\]"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

_STANDARD_LOG_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    }
)

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION_CONTEXT: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "program_deployer_correlation", default=()
)

_ACTIVE_HANDLE_LOCK = threading.Lock()
_ACTIVE_HANDLE: StructuredLoggingHandle | None = None
_ATEXIT_REGISTERED = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for queue-backed structured logging."""

    instance_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = _DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    queue_size: int = _DEFAULT_QUEUE_SIZE
    log_filename: str = _DEFAULT_LOG_FILENAME
    log_to_stdout: bool = True
    max_bytes: int = 10_000_000
    backup_count: int = 5
    redactor: LogRedactor | None = None


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    instance_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = _DEFAULT_LOGGER_NAME,
) -> StructuredLoggingHandle:
    """Configure structured logging from the ``[observability]`` config section."""

    cfg = dict(observability_config or {})
    raw_level = cfg.get("log_level", "INFO")
    level: int | str = raw_level if isinstance(raw_level, (int, str)) else "INFO"
    redact_enabled = bool(cfg.get("redact_secrets", True))
    raw_base_log_dir: object = log_dir if log_dir is not None else cfg.get("log_dir", "logs")
    base_log_dir: Path | str = (
        raw_base_log_dir if isinstance(raw_base_log_dir, (Path, str)) else "logs"
    )

    return setup_structured_logging(
        LoggingConfig(
            instance_id=instance_id,
            base_log_dir=base_log_dir,
            logger_name=logger_name,
            level=level,
            log_to_stdout=bool(cfg.get("log_to_stdout", False)),
            redactor=None if redact_enabled else _identity_redactor,
        )
    )


class _NonBlockingQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that drops records when the queue is full."""

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Correlation lives in a contextvar, so it must be captured on the emitting
        # task before the record crosses to the listener thread.
        context = get_correlation_context()
        if context:
            record.correlation = context
        prepared = super().prepare(record)
        return cast("logging.LogRecord", prepared)

    def enqueue(self, record: logging.LogRecord) -> None:
        with suppress(queue.Full):
            self.queue.put_nowait(record)


class _JsonLineFormatter(logging.Formatter):
    """Formatter that emits canonical JSON objects per log line."""

    def __init__(
        self,
        *,
        redactor: LogRedactor,
        base_context: Mapping[str, str],
    ) -> None:
        super().__init__()
        self._redactor = redactor
        self._base_context = dict(base_context)

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "event": _coerce_log_message(
                self._redactor(_normalize_json_value(record.getMessage()))
            ),
        }

        correlation = dict(self._base_context)
        user_context = getattr(record, "correlation", None)
        if isinstance(user_context, Mapping):
            correlation.update(
                {str(key): str(value) for key, value in user_context.items() if value}
            )
        for key in sorted(correlation):
            event[key] = correlation[key]

        extras = _extract_extra_fields(record)
        if extras:
            event["fields"] = self._redactor(_normalize_json_value(extras))

        if record.exc_info is not None:
            event["exception"] = _coerce_log_message(
                self._redactor(_normalize_json_value(self.formatException(record.exc_info)))
            )

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class StructuredLoggingHandle:
    """Runtime handle for an active structured logging setup."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        instance_id: str,
        log_path: Path,
        log_queue: queue.Queue[object],
        queue_handler: _NonBlockingQueueHandler,
        sink_handlers: tuple[logging.Handler, ...],
        listener: logging.handlers.QueueListener,
    ) -> None:
        self.logger = logger
        self.instance_id = instance_id
        self.log_path = log_path
        self._queue = log_queue
        self._queue_handler = queue_handler
        self._sink_handlers = sink_handlers
        self._listener = listener
        self._shutdown_lock = threading.Lock()
        self._is_shutdown = False

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._queue.unfinished_tasks > 0 and time.monotonic() < deadline:
            time.sleep(0.01)

        for handler in self._sink_handlers:
            handler.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._shutdown_lock:
            if self._is_shutdown:
                return

            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()

            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()

            for handler in self._sink_handlers:
                handler.flush()
                handler.close()

            self._is_shutdown = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Configure queue-backed structured logging for one service instance."""
    _shutdown_previous_active_handle()

    instance_id = config.instance_id.strip()
    if not instance_id:
        raise ValueError("instance_id must not be empty")
    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    if Path(config.log_filename).name != config.log_filename:
        raise ValueError("log_filename must not include path separators")
    level = _parse_log_level(config.level)

    base_log_dir = Path(config.base_log_dir)
    base_log_dir.mkdir(parents=True, exist_ok=True)
    log_path = base_log_dir / config.log_filename

    redactor = config.redactor or default_log_redactor
    formatter = _JsonLineFormatter(redactor=redactor, base_context={"instance_id": instance_id})

    file_handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=max(1, config.max_bytes),
        backupCount=max(1, config.backup_count),
        encoding="utf-8",
    )

    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    sink_handlers: list[logging.Handler] = [file_handler]
    if config.log_to_stdout:
        stdout_handler = logging.StreamHandler()
        stdout_handler.setLevel(level)
        stdout_handler.setFormatter(formatter)
        sink_handlers.append(stdout_handler)

    logger = logging.getLogger(config.logger_name)
    logger.setLevel(level)
    logger.propagate = False

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    log_queue: queue.Queue[object] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _NonBlockingQueueHandler(log_queue)
    queue_handler.setLevel(level)

    listener = logging.handlers.QueueListener(
        log_queue,
        *sink_handlers,
        respect_handler_level=True,
    )
    listener.start()

    logger.addHandler(queue_handler)
    configure_structlog()

    handle = StructuredLoggingHandle(
        logger=logger,
        instance_id=instance_id,
        log_path=log_path,
        log_queue=log_queue,
        queue_handler=queue_handler,
        sink_handlers=tuple(sink_handlers),
        listener=listener,
    )

    with _ACTIVE_HANDLE_LOCK:
        global _ACTIVE_HANDLE
        _ACTIVE_HANDLE = handle

    _register_atexit_shutdown()
    return handle


def configure_structlog() -> None:
    """Route ``structlog`` events into stdlib logging.

    Event keyword fields become ``LogRecord`` extras, which the JSON formatter
    renders under ``fields``.
    """

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Shutdown logging listener and close all sinks."""
    global _ACTIVE_HANDLE
    with _ACTIVE_HANDLE_LOCK:
        resolved = handle if handle is not None else _ACTIVE_HANDLE
    if resolved is None:
        return

    resolved.shutdown(timeout_seconds=timeout_seconds)

    with _ACTIVE_HANDLE_LOCK:
        if _ACTIVE_HANDLE is resolved:
            _ACTIVE_HANDLE = None


def get_correlation_context() -> dict[str, str]:
    """Return the current correlation context as a plain dictionary."""
    return dict(_CORRELATION_CONTEXT.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for log records emitted in scope; ``None`` unbinds a key."""
    state = get_correlation_context()
    for key, value in fields.items():
        if key not in _CORRELATION_KEYS:
            raise ValueError(f"unsupported correlation key {key!r}")
        if value is None:
            state.pop(key, None)
            continue
        normalized = str(value).strip()
        if not normalized:
            raise ValueError(f"correlation value for {key!r} must not be empty")
        state[key] = normalized
    token = _CORRELATION_CONTEXT.set(tuple(state.items()))
    try:
        yield
    finally:
        _CORRELATION_CONTEXT.reset(token)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Default deep redaction for key material and credentials."""
    return _redact_value(value, key_context=None)


def redact_text(text: str) -> str:
    """Redact secrets from free text such as captured tool output."""
    return _redact_string(text)


def _shutdown_previous_active_handle() -> None:
    global _ACTIVE_HANDLE
    with _ACTIVE_HANDLE_LOCK:
        existing, _ACTIVE_HANDLE = _ACTIVE_HANDLE, None
    if existing is not None:
        existing.shutdown()


def _register_atexit_shutdown() -> None:
    global _ATEXIT_REGISTERED
    if _ATEXIT_REGISTERED:
        return
    atexit.register(shutdown_logging)
    _ATEXIT_REGISTERED = True


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value

    normalized = value.strip().upper()
    parsed = logging.getLevelName(normalized)
    if isinstance(parsed, int):
        return parsed

    raise ValueError(f"unsupported logging level {value!r}")


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _coerce_log_message(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, JSONValue]:
    fields: dict[str, JSONValue] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_LOG_RECORD_FIELDS:
            continue
        if key in _CORRELATION_KEYS or key == "correlation":
            continue
        if key.startswith("_"):
            continue
        fields[key] = _normalize_json_value(value)
    return fields


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if math.isfinite(value):
            return value
        return _REDACTED_VALUE
    if isinstance(value, datetime):
        normalized = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return normalized.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize_json_value(item) for item in value), key=repr)
    return str(value)


def _identity_redactor(value: JSONValue) -> JSONValue:
    return value


def _redact_value(value: JSONValue, *, key_context: str | None) -> JSONValue:
    if key_context is not None and _requires_redaction_for_key(key_context):
        return _REDACTED_VALUE

    if isinstance(value, str):
        return _redact_string(value)

    if isinstance(value, list):
        if _looks_like_secret_key_array(value):
            return _REDACTED_VALUE
        return [_redact_value(item, key_context=None) for item in value]

    if isinstance(value, dict):
        return {key: _redact_value(item, key_context=key) for key, item in value.items()}

    return value


def _requires_redaction_for_key(key: str) -> bool:
    key_lower = key.lower()
    return any(term in key_lower for term in _SENSITIVE_KEY_TERMS)


def _looks_like_secret_key_array(value: list[JSONValue]) -> bool:
    return len(value) == 64 and all(
        isinstance(item, int) and not isinstance(item, bool) and 0 <= item <= 255
        for item in value
    )


def _redact_string(text: str) -> str:
    redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED_VALUE}", text
    )
    redacted = _SECRET_KEY_ARRAY_PATTERN.sub(_REDACTED_VALUE, redacted)
    return _BEARER_TOKEN_PATTERN.sub(f"Bearer {_REDACTED_VALUE}", redacted)


__all__ = [
    "JSONScalar",
    "JSONValue",
    "LogRedactor",
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
