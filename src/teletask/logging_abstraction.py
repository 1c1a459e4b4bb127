"""Logging setup for the Teletask client.

Provides dual-format logging (JSON + human-readable) with correlation
tracking. Modules log through ``logging.getLogger(__name__)`` with
``extra={...}`` context; the formatters here render that context either as
a JSON object or as ``key=value`` pairs appended to the message.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast

from typing_extensions import override

from teletask.correlation import get_correlation_id

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "TeletaskLogger",
    "configure_logging",
    "get_logger",
]

PACKAGE_LOGGER = "teletask"

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
    | {"message", "asctime", "correlation_id", "extra_data", "taskName"},
)


def _record_context(record: logging.LogRecord) -> dict[str, object]:
    """Collect structured context from ``extra_data`` or plain ``extra`` attributes."""
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping) and extra_data:
        return dict(cast("Mapping[str, object]", extra_data))
    return {key: value for key, value in vars(record).items() if key not in _RESERVED_ATTRS}


class JSONFormatter(logging.Formatter):
    """Formatter that outputs structured JSON logs."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }

        context = _record_context(record)
        if context:
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Formatter that outputs human-readable logs with correlation IDs."""

    def __init__(self) -> None:
        # Format: timestamp level [module:line] correlation_id > message
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable text."""
        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"

        formatted = super().format(record)

        context = _record_context(record)
        if context:
            context_str = " | ".join(f"{k}={v}" for k, v in context.items())
            formatted = f"{formatted} | {context_str}"

        return formatted


def _build_handlers(
    log_format: str,
    json_file: str | Path | None,
    human_output: str | None,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if log_format in ("json", "both") and json_file:
        try:
            json_path = Path(json_file)
            json_path.parent.mkdir(parents=True, exist_ok=True)
            json_handler = logging.FileHandler(json_path, mode="a")
            json_handler.setFormatter(JSONFormatter())
            handlers.append(json_handler)
        except OSError as e:
            print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)

    if log_format in ("human", "both") or not handlers:
        normalized_output = human_output or "stdout"
        human_handler: logging.Handler
        if normalized_output == "stdout":
            human_handler = logging.StreamHandler(sys.stdout)
        elif normalized_output == "stderr":
            human_handler = logging.StreamHandler(sys.stderr)
        else:
            try:
                human_path = Path(normalized_output)
                human_path.parent.mkdir(parents=True, exist_ok=True)
                human_handler = logging.FileHandler(human_path, mode="a")
            except OSError as e:
                print(f"Warning: Failed to create human log file {human_output}: {e}", file=sys.stderr)
                human_handler = logging.StreamHandler(sys.stdout)
        human_handler.setFormatter(HumanReadableFormatter())
        handlers.append(human_handler)

    return handlers


def configure_logging(
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
    debug: bool | None = None,
) -> logging.Logger:
    """Attach formatters to the ``teletask`` package logger (idempotent).

    Every module logger (``teletask.*``) propagates to it, so calling this
    once at application start is enough.

    Args:
        log_format: "json", "human", or "both" (default from TELETASK_LOG_FORMAT)
        json_file: Path for JSON output file (None to disable file output)
        human_output: "stdout", "stderr", or a file path
        debug: Force DEBUG level (default from TELETASK_DEBUG)

    Returns:
        The configured package logger

    """
    from teletask.const import (
        TELETASK_DEBUG,
        TELETASK_LOG_FORMAT,
        TELETASK_LOG_HUMAN_OUTPUT,
        TELETASK_LOG_JSON_FILE,
    )

    logger = logging.getLogger(PACKAGE_LOGGER)
    level = logging.DEBUG if (TELETASK_DEBUG if debug is None else debug) else logging.INFO
    logger.setLevel(level)

    if not logger.handlers:
        for handler in _build_handlers(
            log_format or TELETASK_LOG_FORMAT,
            json_file or TELETASK_LOG_JSON_FILE,
            human_output or TELETASK_LOG_HUMAN_OUTPUT,
        ):
            handler.setLevel(level)
            logger.addHandler(handler)
    return logger


class TeletaskLogger:
    """Logger wrapper that passes structured context as ``extra_data``."""

    def __init__(self, name: str) -> None:
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        extra_payload = {"extra_data": dict(extra)} if extra else None
        self.logger.log(level, msg, *args, extra=extra_payload)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log exception with traceback and optional structured context."""
        log_extra = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=log_extra)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> TeletaskLogger:
    """Get a TeletaskLogger, configuring the package handlers on first use.

    Args:
        name: Logger name (should live under the ``teletask`` namespace)
        log_format: Override default format ("json", "human", or "both")
        json_file: Override default JSON output file
        human_output: Override default human-readable output

    Returns:
        TeletaskLogger instance

    """
    configure_logging(log_format=log_format, json_file=json_file, human_output=human_output)
    return TeletaskLogger(name)
