#!/usr/bin/env python3
"""
Room chat logging configuration

Centralized logging setup for consistent formatting across the client.
Supports both development (console + file) and production modes.

Usage:
    from shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Connecting...")
    logger.error("Send failed", extra={"room": "lobby", "user": 42})
"""

from __future__ import annotations
import logging
import sys
from pathlib import Path
from typing import Optional, Dict, Any
import os


# ========================================
#           LOGGING FORMATTERS
# ========================================

class GenericFormatter(logging.Formatter):
    """Formatter that prefixes records with chat context passed through `extra`"""

    CONTEXT_FIELDS = (
        ('room', 'room'),
        ('user', 'user'),
        ('state', 'state'),
        ('msg_type', 'msg'),
    )

    def format(self, record: logging.LogRecord) -> str:
        context = []
        for attr, label in self.CONTEXT_FIELDS:
            value = getattr(record, attr, None)
            if value is not None:
                context.append(f"{label}={value}")
        record.chat_context = f"[{' '.join(context)}] " if context else ""
        return super().format(record)


class ColoredFormatter(GenericFormatter):
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
        # Copy so other handlers keep the plain level name
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"

        return super().format(record)


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()

CONSOLE_FORMAT = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(chat_context)s%(message)s'
FILE_FORMAT = '%(asctime)s | %(name)-30s | %(levelname)-8s | %(chat_context)s%(message)s'


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
        logger.info("Connected")

        # With context
        logger.warning("Payload dropped", extra={
            "room": "lobby",
            "user": 42,
            "msg_type": "UNKNOWN"
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

    logger.setLevel(_get_log_level(level))

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    if _is_development():
        _add_file_handler(logger)
        _add_console_handler(logger, colored=True)
    else:
        # Production: plain console + file logging
        _add_console_handler(logger, colored=False)
        _add_file_handler(logger)

    # Prevent duplicate messages from parent loggers
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""

    if level:
        return getattr(logging, level.upper(), logging.INFO)

    env_level = os.getenv('ROOMCHAT_LOG_LEVEL')
    if env_level:
        return getattr(logging, env_level.upper(), logging.INFO)

    # Default based on environment
    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    """Detect if we're in development mode"""
    return (
        os.getenv('ROOMCHAT_ENV', '').lower() in ['dev', 'development'] or
        'pytest' in sys.modules or
        __debug__  # Python -O flag not used
    )


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    handler = logging.StreamHandler(sys.stdout)

    if colored and _supports_color():
        formatter = ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt='%H:%M:%S')
    else:
        formatter = GenericFormatter(fmt=CONSOLE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger) -> None:
    """Add file handler under ROOMCHAT_LOG_DIR (default ./logs)"""

    log_dir = Path(os.getenv('ROOMCHAT_LOG_DIR', 'logs'))
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_dir / "roomchat.log", encoding="utf-8")
    handler.setFormatter(GenericFormatter(fmt=FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    # stdout must be a terminal
    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False

    # TERM should not be dumb
    if os.getenv("TERM", "") == "dumb":
        return False

    if sys.platform == "win32":
        # On modern Windows terminals, ANSI colors are supported
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode"

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


def log_chat_event(logger: logging.Logger, level: str, message: str,
                   envelope: Optional[Dict[str, Any]] = None,
                   **context: Any) -> None:
    """
    Log a chat wire message with structured context.

    Args:
        logger: Logger instance
        level: Log level ("debug", "info", "warning", "error")
        message: Log message
        envelope: Text envelope or user notification dict for context extraction
        **context: Additional context fields (room, user, state, ...)

    Example:
        log_chat_event(logger, "debug", "Sent message",
                       envelope=env.to_dict(), state="connected")
    """

    extra_context: Dict[str, Any] = {}

    if envelope:
        extra_context['msg_type'] = envelope.get('type') or envelope.get('event')
        if 'room_address' in envelope:
            extra_context['room'] = envelope.get('room_address')
        sender = envelope.get('sender', envelope.get('user'))
        if sender is not None:
            extra_context['user'] = sender

    extra_context.update(context)

    log_func = getattr(logger, level.lower())
    log_func(message, extra=extra_context)
