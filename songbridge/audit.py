# -*- coding: utf-8 -*-

# SongBridge
# Copyright (C) 2025 SongBridge contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Audit logging built on loguru.

Every record passes through a patcher that redacts secret-looking fields in
its bound metadata before any sink sees it. Sinks:
- stderr (colored, for the terminal)
- rotating log file (size-bounded, fixed number of generations)
- presentation-layer forwarder (in-memory ring buffer + subscribers)

Attach metadata with logger.bind(...); never format secrets into messages.

Example:
    >>> logger.bind(access_token=token, expires_in=3600).debug("Token received")
    # extra -> {"access_token": "[REDACTED]", "expires_in": 3600}
"""

import logging
import sys
from collections import deque
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Callable, Deque, List, Mapping, Optional

from loguru import logger

from songbridge.config import (
    LOG_BACKUP_COUNT,
    LOG_BUFFER_SIZE,
    LOG_DIR,
    LOG_FILE_NAME,
    LOG_LEVEL,
    LOG_MAX_BYTES,
)
from songbridge.models import LogEntry


REDACTED = "[REDACTED]"
MAX_REDACTION_DEPTH = 3

# Matched against lowercased key names with "_" and "-" removed
SECRET_KEY_PATTERNS = (
    "token",
    "secret",
    "password",
    "jwt",
    "session",
    "codeverifier",
    "authorization",
)

# loguru level name -> level name shown in the UI
UI_LEVELS = {
    "TRACE": "debug",
    "DEBUG": "debug",
    "INFO": "info",
    "SUCCESS": "info",
    "WARNING": "warn",
    "ERROR": "error",
    "CRITICAL": "error",
}

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def is_secret_key(key: Any) -> bool:
    """Checks if a metadata key name looks like it holds a secret."""
    normalized = str(key).lower().replace("_", "").replace("-", "")
    return any(pattern in normalized for pattern in SECRET_KEY_PATTERNS)


def redact_secrets(obj: Any, depth: int = 0) -> Any:
    """
    Returns a copy of obj with secret-looking fields replaced by REDACTED.

    Walks mappings, sequences and dataclasses. Containers nested deeper than
    MAX_REDACTION_DEPTH are replaced by "[Object]".

    Args:
        obj: Metadata to redact
        depth: Current recursion depth

    Returns:
        Redacted copy (scalars are returned unchanged)
    """
    if is_dataclass(obj) and not isinstance(obj, type):
        obj = asdict(obj)

    if isinstance(obj, Mapping):
        if depth > MAX_REDACTION_DEPTH:
            return "[Object]"
        return {
            key: REDACTED if is_secret_key(key) else redact_secrets(value, depth + 1)
            for key, value in obj.items()
        }

    if isinstance(obj, (list, tuple, set, frozenset)):
        if depth > MAX_REDACTION_DEPTH:
            return "[Object]"
        return [redact_secrets(value, depth + 1) for value in obj]

    return obj


def _redact_record(record: dict) -> None:
    """loguru patcher: redacts bound metadata once, before any sink runs."""
    if record["extra"]:
        record["extra"] = redact_secrets(record["extra"])


def install_redaction() -> None:
    """Installs the redaction patcher on the global loguru logger."""
    logger.configure(patcher=_redact_record)


class LogForwarder:
    """
    loguru sink that forwards entries to the presentation layer.

    Keeps the most recent entries in a ring buffer so a log view opened
    later can show history, and pushes every entry to subscribers.
    """

    def __init__(self, buffer_size: int = LOG_BUFFER_SIZE):
        self._entries: Deque[LogEntry] = deque(maxlen=buffer_size)
        self._subscribers: List[Callable[[LogEntry], None]] = []

    def reset(self, buffer_size: int) -> None:
        self._entries = deque(maxlen=buffer_size)

    def subscribe(self, callback: Callable[[LogEntry], None]) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LogEntry], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def __call__(self, message) -> None:
        record = message.record
        entry = LogEntry(
            level=UI_LEVELS.get(record["level"].name, "info"),
            message=record["message"],
            timestamp=record["time"].timestamp(),
            meta=dict(record["extra"]),
        )
        self._entries.append(entry)
        for callback in list(self._subscribers):
            callback(entry)


_forwarder = LogForwarder()


def subscribe(callback: Callable[[LogEntry], None]) -> None:
    """Registers a presentation-layer callback for new log entries."""
    _forwarder.subscribe(callback)


def unsubscribe(callback: Callable[[LogEntry], None]) -> None:
    _forwarder.unsubscribe(callback)


def recent_entries() -> List[LogEntry]:
    """Returns buffered log entries, oldest first."""
    return _forwarder.entries()


def _with_extra(base: str) -> Callable[[dict], str]:
    def _format(record: dict) -> str:
        fmt = base
        if record["extra"]:
            fmt += " | {extra}"
        return fmt + "\n{exception}"
    return _format


class InterceptHandler(logging.Handler):
    """
    Intercepts logs from standard logging and redirects them to loguru.

    Captures aiohttp (loopback listener) and httpx logs so they get the
    same sinks and redaction as our own records.
    """

    # Exceptions that are normal during shutdown and should not be logged as errors
    SHUTDOWN_EXCEPTIONS = (
        "CancelledError",
        "KeyboardInterrupt",
    )

    def emit(self, record: logging.LogRecord) -> None:
        if record.exc_info and record.exc_info[0] is not None:
            if record.exc_info[0].__name__ in self.SHUTDOWN_EXCEPTIONS:
                return

        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller frame for correct source display
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging_intercept() -> None:
    """Configures log interception from standard logging to loguru."""
    loggers_to_intercept = [
        "aiohttp.access",
        "aiohttp.server",
        "aiohttp.web",
        "httpx",
    ]

    for logger_name in loggers_to_intercept:
        logging_logger = logging.getLogger(logger_name)
        logging_logger.handlers = [InterceptHandler()]
        logging_logger.propagate = False


def configure_logging(
    log_dir: Optional[Path] = None,
    level: str = LOG_LEVEL,
    max_bytes: int = LOG_MAX_BYTES,
    backup_count: int = LOG_BACKUP_COUNT,
    buffer_size: int = LOG_BUFFER_SIZE,
    console: bool = True,
) -> List[int]:
    """
    Configures all log sinks. Safe to call more than once.

    Args:
        log_dir: Directory for the rotating log file (default: LOG_DIR)
        level: Minimum level for all sinks
        max_bytes: Rotate the active file once it exceeds this size
        backup_count: Number of rotated files to keep
        buffer_size: Entries kept in memory for the presentation layer
        console: Also log to stderr

    Returns:
        loguru handler ids of the installed sinks
    """
    log_dir = Path(log_dir or LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()
    install_redaction()
    _forwarder.reset(buffer_size)

    handler_ids = []
    if console:
        handler_ids.append(logger.add(
            sys.stderr, level=level, colorize=True, diagnose=False, format=_with_extra(CONSOLE_FORMAT)
        ))
    handler_ids.append(
        logger.add(
            log_dir / LOG_FILE_NAME,
            level=level,
            format=_with_extra(FILE_FORMAT),
            rotation=max_bytes,
            retention=backup_count,
            encoding="utf-8",
            diagnose=False,
        )
    )
    handler_ids.append(logger.add(_forwarder, level=level, diagnose=False, format="{message}"))

    setup_logging_intercept()
    logger.bind(log_dir=str(log_dir), level=level).debug("Logging configured")
    return handler_ids


def export_log_text(log_dir: Optional[Path] = None) -> str:
    """Returns the active log file contents, or the buffered entries if it is unreadable."""
    path = Path(log_dir or LOG_DIR) / LOG_FILE_NAME
    try:
        return path.read_text(encoding="utf-8")
    except OSError:
        return "\n".join(f"[{entry.level.upper()}] {entry.message}" for entry in recent_entries())
