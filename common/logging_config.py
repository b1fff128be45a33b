"""
Logging configuration for the risk index runners.

Provides:
- Size-based log rotation
- Redaction of credential-like key=value fragments
- Optional JSON structured output (one object per line)
- Run correlation ID tracking via a ContextVar

Library modules only call logging.getLogger(__name__); handlers are
configured here, once, by the runner scripts.

Version: 2.0.0
"""

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Context variable for run correlation ID
run_id_context: ContextVar[str] = ContextVar("run_id", default="")

# Default configuration
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_FORMAT_WITH_RUN_ID = "%(asctime)s - [%(run_id)s] - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5

NO_RUN_ID = "no-run-id"

# Key names whose values are redacted from log messages
SENSITIVE_PATTERNS = frozenset({
    "api_key", "apikey", "api-key",
    "password", "passwd",
    "secret", "token", "credential",
    "service_role_key", "anon_key",
    "bearer", "authorization",
})

# Record attributes copied into structured output when present
STRUCTURED_EXTRA_FIELDS = ("deal_id", "scan_id", "risk_index_version")


class RunIdFilter(logging.Filter):
    """Adds run_id to every record so one run's lines can be correlated."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = run_id_context.get() or NO_RUN_ID
        return True


class SanitizingFilter(logging.Filter):
    """
    Redacts the value part of credential-like fragments.

    "service_role_key=abc123" becomes "service_role_key=[REDACTED]".
    """

    def __init__(self, patterns: Optional[frozenset] = None):
        super().__init__()
        self.patterns = patterns or SENSITIVE_PATTERNS
        alternatives = "|".join(re.escape(p) for p in sorted(self.patterns, key=len, reverse=True))
        self._regex = re.compile(
            rf"({alternatives})\s*[=:]\s*['\"]?([^'\"\s,}}]+)['\"]?",
            flags=re.IGNORECASE,
        )

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._sanitize(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: "[REDACTED]" if self._is_sensitive_key(k) else v
                    for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._sanitize(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True

    def _sanitize(self, text: str) -> str:
        return self._regex.sub(r"\1=[REDACTED]", text)

    def _is_sensitive_key(self, key: Any) -> bool:
        key_lower = str(key).lower()
        return any(pattern in key_lower for pattern in self.patterns)


class StructuredFormatter(logging.Formatter):
    """JSON-structured log entries, one object per line."""

    def __init__(
        self,
        include_timestamp: bool = True,
        include_run_id: bool = True,
        extra_fields: Optional[Dict[str, Any]] = None,
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_run_id = include_run_id
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {}

        if self.include_timestamp:
            log_data["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()

        log_data["level"] = record.levelname
        log_data["logger"] = record.name

        if self.include_run_id and hasattr(record, "run_id"):
            log_data["run_id"] = record.run_id

        log_data["message"] = record.getMessage()

        for name in STRUCTURED_EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data.update(self.extra_fields)

        return json.dumps(log_data, default=str, sort_keys=True)


def parse_log_level(value: Union[str, int]) -> int:
    """
    Resolve "DEBUG" / "info" / 10 to a logging level.

    Raises:
        ValueError: If the level name is unknown
    """
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value!r}")
    return level


def setup_logging(
    log_file: Optional[Union[str, Path]] = None,
    log_level: Union[int, str] = logging.INFO,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    enable_console: bool = True,
    enable_sanitization: bool = True,
    enable_run_id: bool = True,
    structured_output: bool = False,
    log_format: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root logger for a runner script.

    Args:
        log_file: Path to log file (None = console only)
        log_level: Logging level or level name (default INFO)
        max_bytes: Maximum log file size before rotation (default 10MB)
        backup_count: Number of backup files to keep (default 5)
        enable_console: Log to stderr (default True)
        enable_sanitization: Redact credential-like fragments (default True)
        enable_run_id: Add run ID to every record (default True)
        structured_output: Use JSON structured output (default False)
        log_format: Custom log format string

    Returns:
        Configured root logger

    Example:
        setup_logging(log_file="logs/portfolio.log", log_level="DEBUG")
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(parse_log_level(log_level))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if log_format is None:
        log_format = DEFAULT_LOG_FORMAT_WITH_RUN_ID if enable_run_id else DEFAULT_LOG_FORMAT

    if structured_output:
        formatter: logging.Formatter = StructuredFormatter(include_run_id=enable_run_id)
    else:
        formatter = logging.Formatter(log_format, datefmt=DEFAULT_DATE_FORMAT)

    filters = []
    if enable_sanitization:
        filters.append(SanitizingFilter())
    if enable_run_id:
        filters.append(RunIdFilter())

    handlers = []
    if enable_console:
        handlers.append(logging.StreamHandler(sys.stderr))

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        ))

    for handler in handlers:
        handler.setFormatter(formatter)
        for f in filters:
            handler.addFilter(f)
        root_logger.addHandler(handler)

    return root_logger


def generate_run_id(seed: Optional[str] = None) -> str:
    """
    Short run ID for log correlation.

    With a seed (e.g. an input hash) the ID is derived from it, so re-running
    the same snapshot logs under the same ID.
    """
    if seed:
        return seed.split(":")[-1][:8]
    return uuid.uuid4().hex[:8]


def set_run_id(run_id: Optional[str] = None) -> str:
    """Set the run ID for the current context, generating one if None."""
    if run_id is None:
        run_id = generate_run_id()
    run_id_context.set(run_id)
    return run_id


def get_run_id() -> str:
    """Current run ID, or empty string if not set."""
    return run_id_context.get()


class LogContext:
    """
    Scope a run ID; the previous ID is restored on exit.

    Example:
        with LogContext(generate_run_id(input_hash)) as run_id:
            logger.info("Aggregating portfolio")  # Includes run_id
    """

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id
        self._token: Optional[Token] = None

    def __enter__(self) -> str:
        self.run_id = self.run_id or generate_run_id()
        self._token = run_id_context.set(self.run_id)
        return self.run_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            run_id_context.reset(self._token)
            self._token = None


__all__ = [
    "setup_logging",
    "parse_log_level",
    "generate_run_id",
    "set_run_id",
    "get_run_id",
    "LogContext",
    "run_id_context",
    "RunIdFilter",
    "SanitizingFilter",
    "StructuredFormatter",
    "DEFAULT_LOG_FORMAT",
    "DEFAULT_MAX_BYTES",
    "DEFAULT_BACKUP_COUNT",
    "SENSITIVE_PATTERNS",
]
