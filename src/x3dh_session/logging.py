"""Logging of protocol failures."""

import logging
import sys
from collections import deque
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Tuple, Type

from .exceptions import (
    X3DHError,
    ValidationError,
    MissingKeyMaterial,
    UnknownPrekeyError,
    StorageError,
    CryptographyError,
    KeyMismatchError,
    AuthenticationError,
    VerificationError,
)

LOGGER_NAME = "x3dh_session"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LogLevel(str, Enum):
    """Logging level enumeration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def value_int(self) -> int:
        return getattr(logging, self.value)


# First match wins, so subclasses come before their bases.
# Failures a peer can cause are warnings, local misuse is an error.
SEVERITY_BY_ERROR: List[Tuple[Type[Exception], LogLevel]] = [
    (AuthenticationError, LogLevel.WARNING),
    (VerificationError, LogLevel.WARNING),
    (KeyMismatchError, LogLevel.WARNING),
    (UnknownPrekeyError, LogLevel.WARNING),
    (ValidationError, LogLevel.WARNING),
    (CryptographyError, LogLevel.ERROR),
    (MissingKeyMaterial, LogLevel.ERROR),
    (StorageError, LogLevel.ERROR),
    (X3DHError, LogLevel.ERROR),
]


def severity_for(exception: Exception) -> LogLevel:
    """Log level for a failure; anything outside the protocol is critical."""
    for error_type, level in SEVERITY_BY_ERROR:
        if isinstance(exception, error_type):
            return level
    return LogLevel.CRITICAL


class ErrorHandler:
    """
    Owns the ``x3dh_session`` logger and a bounded record of recent failures.

    Only the exception type and message are recorded. Exception messages in
    this package never carry key material.
    """

    MAX_HISTORY = 1000

    _instance: Optional["ErrorHandler"] = None

    def __new__(cls) -> "ErrorHandler":
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._initialized = True
        self.logger = logging.getLogger(LOGGER_NAME)
        self.log_level = LogLevel.INFO
        self.error_history: Deque[Dict[str, Any]] = deque(maxlen=self.MAX_HISTORY)
        self._file_handlers: Dict[Path, logging.FileHandler] = {}

        if not self.logger.handlers:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            console_handler.setLevel(self.log_level.value_int)
            self.logger.addHandler(console_handler)
        self.logger.setLevel(logging.DEBUG)

    def set_log_level(self, level: LogLevel) -> None:
        """Apply level to every handler of the package logger."""
        self.log_level = LogLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(self.log_level.value_int)

    def add_file_handler(self, log_file: str) -> logging.FileHandler:
        """
        Also write the package log to a file.

        Adding the same path twice reuses the existing handler.

        Args:
            log_file: Path to log file, parent directories are created
        """
        log_path = Path(log_file).expanduser().resolve()
        existing = self._file_handlers.get(log_path)
        if existing is not None and existing in self.logger.handlers:
            return existing

        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(self.log_level.value_int)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

        self.logger.addHandler(file_handler)
        self._file_handlers[log_path] = file_handler
        return file_handler

    def handle_exception(self, exception: Exception, context: Optional[str] = None) -> LogLevel:
        """
        Record and log a failure at the level its type maps to.

        Args:
            exception: Failure to report
            context: Operation that failed, e.g. ``"bob.init_x3dh_responder"``

        Returns:
            Level the failure was logged at
        """
        severity = severity_for(exception)
        self.error_history.append(
            {
                "timestamp": datetime.now().isoformat(),
                "type": type(exception).__name__,
                "message": str(exception),
                "context": context,
                "severity": severity.value,
            }
        )
        self.logger.log(
            severity.value_int, "[%s] %s: %s", context, type(exception).__name__, exception
        )
        return severity

    def get_error_history(
        self, count: int = 10, severity: Optional[LogLevel] = None
    ) -> List[Dict[str, Any]]:
        """Most recent failures, oldest first, optionally of one severity."""
        history = list(self.error_history)
        if severity:
            history = [e for e in history if e["severity"] == LogLevel(severity).value]
        return history[-count:] if count else history

    def clear_error_history(self) -> None:
        self.error_history.clear()


_error_handler = ErrorHandler()


def get_error_handler() -> ErrorHandler:
    """Get global error handler instance."""
    return _error_handler


def configure_logging(
    log_level: LogLevel = LogLevel.INFO, log_file: Optional[str] = None
) -> None:
    """
    Apply the logging settings of a ProtocolConfig.

    Args:
        log_level: Level for all package log handlers
        log_file: Optional log file path
    """
    if log_file:
        _error_handler.add_file_handler(log_file)
    _error_handler.set_log_level(log_level)


def handle_exception(exception: Exception, context: Optional[str] = None) -> LogLevel:
    """Record and log a failure on the global error handler."""
    return _error_handler.handle_exception(exception, context)
