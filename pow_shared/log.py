#!/usr/bin/env python3
"""
pow-1 Client Logging Configuration

Centralized logging setup for consistent formatting across the project.
Supports both development (colored console) and production (plain console,
optional file) modes.

Usage:
    from pow_shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Connecting...")
    logger.error("Connection failed", extra={"session_id": "1a2b3c4d", "url": "ws://localhost:3000"})
"""

from __future__ import annotations
import logging
import sys
from pathlib import Path
from typing import Any, Optional
import os


# ========================================
#           LOGGING FORMATTERS
# ========================================

class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    # ANSI Color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            # other handlers share the record
            record.levelname = levelname


class GenericFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        # Add call context if available
        call_context = []

        # Extract common call fields from extra data
        if hasattr(record, 'session_id'):
            call_context.append(f"session={record.session_id}")
        if hasattr(record, 'call'):
            call_context.append(f"call={record.call}")
        if hasattr(record, 'transport'):
            call_context.append(f"transport={record.transport}")
        if hasattr(record, 'url'):
            call_context.append(f"url={record.url}")

        message = super().format(record)
        if call_context:
            return f"[{' '.join(call_context)}] {message}"
        return message


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()

def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")

    Returns:
        Configured logger instance

    Examples:
        logger = get_logger(__name__)
        logger.info("Call starting")

        # With context
        logger.error("Connection failed", extra={
            "session_id": "1a2b3c4d",
            "call": "echo",
            "transport": "ws",
        })
    """
    logger = logging.getLogger(name)

    # Only configure each logger once
    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)

    return logger


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    """Configure a logger with appropriate handlers and formatters"""

    log_level = _get_log_level(level)
    logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    _add_console_handler(logger, colored=_is_development())

    log_file = os.getenv('POW_LOG_FILE')
    if log_file:
        _add_file_handler(logger, Path(log_file))

    # Prevent duplicate messages from parent loggers
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""

    level = level or os.getenv('POW_LOG_LEVEL')
    if level:
        return getattr(logging, level.upper(), logging.INFO)

    # Default based on environment
    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    """Detect if we're in development mode"""
    return (
        os.getenv('POW_ENV', '').lower() in ['dev', 'development'] or
        'pytest' in sys.modules
    )


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    handler = logging.StreamHandler(sys.stdout)

    if colored and _supports_color():
        formatter: logging.Formatter = ColoredFormatter(
            fmt=fmt,
            datefmt='%H:%M:%S'
        )
    else:
        formatter = GenericFormatter(
            fmt=fmt,
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger, log_file: Path) -> None:
    """Add file handler writing to log_file"""

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)

    formatter = GenericFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    # stdout must be a terminal
    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False

    # TERM should not be dumb
    if os.getenv("TERM", "") == "dumb":
        return False

    # Windows-specific check
    if sys.platform == "win32":
        # On modern Windows terminals, ANSI colors are supported
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode" or "WindowsTerminal" in os.getenv("TERM", "")

    return True

# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def configure_root_logging(level: str = "INFO") -> None:
    """
    Configure root logging for the entire application.
    Call this once at application startup.

    Args:
        level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
    """
    root_logger = logging.getLogger()
    _configure_logger(root_logger, level)


def set_level(level: str) -> None:
    """Change the level of every logger configured through get_logger()"""
    log_level = getattr(logging, level.upper(), logging.INFO)
    for name in _loggers_configured:
        logging.getLogger(name).setLevel(log_level)


def log_call_event(logger: logging.Logger, level: str, message: str,
                   session: Any = None,
                   **context: Any) -> None:
    """
    Log a protocol event with structured call context.

    Args:
        logger: Logger instance
        level: Log level ("debug", "info", "warning", "error")
        message: Log message
        session: CallSession for automatic context extraction
        **context: Additional context fields

    Example:
        log_call_event(logger, "info", "Call resolved",
                       session=self, transport="ws")
    """

    extra_context = {}

    # Extract context from the session
    if session is not None:
        extra_context.update({
            'session_id': session.session_id,
            'call': session.call.call,
            'url': session.remote.url,
        })

    # Add additional context
    extra_context.update(context)

    # Log with context
    log_func = getattr(logger, level.lower())
    log_func(message, extra=extra_context)
