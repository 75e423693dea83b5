# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Unified logging and debug infrastructure for mcpz.

This module provides:
1. Centralized logging configuration for the ``mcpz`` logger namespace
2. Debug mode via MCPZ_DEBUG env var or programmatic flag
3. Log levels via MCPZ_LOG_LEVEL env var
4. Dual output: Rich console for CLI, rotating file log for debugging
5. Daemon mode: stderr-only output, used by ``mcpz run`` whose stdout
   carries the MCP protocol stream

Usage:
    from mcpz.utils.logging import get_logger, configure_logging

    # In CLI entry point:
    configure_logging(debug=debug)

    # In any CLI module:
    logger = get_logger(__name__)
    logger.info("Starting operation")
    logger.error("Something failed", exc=exception)

Core modules log through ``logging.getLogger(__name__)``; their records land in
the same handlers because every module lives under the ``mcpz`` namespace.

Environment Variables:
    MCPZ_DEBUG=1           Enable debug mode (verbose output)
    MCPZ_LOG_LEVEL=DEBUG   Set log level (DEBUG, INFO, WARNING, ERROR)
    MCPZ_LOG_FILE=/path    Override log file location
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console

from mcpz.paths import HostPaths

# Global state
_configured = False
_debug_mode = False
_daemon_mode = False
_log_file: Optional[Path] = None

# Shared Rich console instance
console = Console()

# Marks records that mcpzLogger already printed to the console
_ECHOED = {"echoed": True}

# Custom log level for success messages
SUCCESS_LEVEL = 25
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")


def _get_log_file() -> Path:
    """Get the log file path, creating its directory if needed."""
    global _log_file
    if _log_file:
        return _log_file

    env_log_file = os.environ.get("MCPZ_LOG_FILE")
    if env_log_file:
        _log_file = Path(env_log_file)
    else:
        _log_file = HostPaths.log_dir() / "mcpz.log"

    _log_file.parent.mkdir(parents=True, exist_ok=True)
    return _log_file


def is_debug_mode() -> bool:
    """Check if debug mode is enabled."""
    return _debug_mode or os.environ.get("MCPZ_DEBUG", "").lower() in ("1", "true", "yes")


def is_daemon_mode() -> bool:
    return _daemon_mode


def configure_logging(
    debug: bool = False,
    daemon: bool = False,
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
    force: bool = False,
) -> None:
    """Configure the logging system.

    Should be called once at application startup. ``mcpz run`` calls it again
    with ``daemon=True, force=True`` to move console output off stdout.

    Args:
        debug: Enable debug mode (verbose output, debug to console)
        daemon: Daemon mode (stderr only, no Rich formatting)
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Override log file path
        force: Reconfigure even if already configured
    """
    global _configured, _debug_mode, _daemon_mode, _log_file

    if _configured and not force:
        return

    _debug_mode = debug or is_debug_mode()
    _daemon_mode = daemon

    if log_file:
        _log_file = log_file

    if log_level:
        level_name = log_level.upper()
    else:
        level_name = os.environ.get("MCPZ_LOG_LEVEL", "DEBUG" if _debug_mode else "INFO").upper()

    level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger("mcpz")
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    # File handler with rotation (always enabled, captures all logs)
    try:
        file_handler = RotatingFileHandler(
            _get_log_file(),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(file_handler)
    except OSError:
        # Can't write log file, continue without it
        pass

    # Core modules log through the stdlib logger; surface their warnings on stderr.
    # Records from mcpzLogger are already echoed to the console and skipped here.
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.addFilter(lambda record: not getattr(record, "echoed", False))
    stderr_handler.setLevel(level if _daemon_mode else logging.WARNING)
    stderr_handler.setFormatter(logging.Formatter("%(name)s: %(levelname)s: %(message)s"))
    root_logger.addHandler(stderr_handler)

    _configured = True

    root_logger.debug(
        f"Logging configured: level={level_name}, debug={_debug_mode}, daemon={_daemon_mode}"
    )
    if _log_file:
        root_logger.debug(f"Log file: {_log_file}")


class mcpzLogger:
    """Unified logging with Rich console output.

    Provides:
    - Standard log levels (debug, info, warning, error)
    - Success level for green checkmark messages
    - Automatic Rich formatting for CLI output
    - File logging for debugging
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)
        self.console = console

    def _emit(self, prefix: str, message: str) -> None:
        print(f"{prefix}: {message}", file=sys.stderr)

    def debug(self, message: str, console_output: bool = False) -> None:
        """Log debug message.

        By default, debug only goes to the log file. Set console_output=True
        or enable MCPZ_DEBUG to see it in the console.
        """
        self.logger.debug(message, extra=_ECHOED)
        if console_output or is_debug_mode():
            if _daemon_mode:
                self._emit("DEBUG", message)
            else:
                self.console.print(f"[dim][DEBUG] {message}[/dim]")

    def info(self, message: str, console_output: bool = True) -> None:
        self.logger.info(message, extra=_ECHOED)
        if console_output and not _daemon_mode:
            self.console.print(f"[blue]{message}[/blue]")
        elif console_output and _daemon_mode:
            self._emit("INFO", message)

    def success(self, message: str, console_output: bool = True) -> None:
        """Log success message (green output)."""
        self.logger.log(SUCCESS_LEVEL, message, extra=_ECHOED)
        if console_output and not _daemon_mode:
            self.console.print(f"[green]✓ {message}[/green]")
        elif console_output and _daemon_mode:
            self._emit("SUCCESS", message)

    def warning(self, message: str, console_output: bool = True) -> None:
        """Log warning message (yellow output)."""
        self.logger.warning(message, extra=_ECHOED)
        if console_output and not _daemon_mode:
            self.console.print(f"[yellow]⚠ {message}[/yellow]")
        elif console_output and _daemon_mode:
            self._emit("WARNING", message)

    def error(
        self,
        message: str,
        exc: Optional[Exception] = None,
        console_output: bool = True,
    ) -> None:
        """Log error message (red output).

        Args:
            message: Error message
            exc: Optional exception to include in log
            console_output: Output to console
        """
        if exc:
            error_msg = f"{message}: {exc}"
            self.logger.error(error_msg, exc_info=exc, extra=_ECHOED)
        else:
            error_msg = message
            self.logger.error(error_msg, extra=_ECHOED)

        if console_output and not _daemon_mode:
            self.console.print(f"[red]✗ {error_msg}[/red]")
        elif console_output and _daemon_mode:
            self._emit("ERROR", error_msg)

    def exception(self, message: str, console_output: bool = True) -> None:
        """Log exception with full traceback. Call from within an except block."""
        self.logger.exception(message, extra=_ECHOED)
        if console_output and not _daemon_mode:
            self.console.print(f"[red]✗ {message}[/red]")
            if is_debug_mode():
                self.console.print_exception()
        elif console_output and _daemon_mode:
            self._emit("ERROR", message)

    def print(self, message: str, style: Optional[str] = None) -> None:
        """Print to console without logging."""
        if _daemon_mode:
            print(message, file=sys.stderr)
        elif style:
            self.console.print(f"[{style}]{message}[/{style}]")
        else:
            self.console.print(message)


def get_logger(name: str) -> mcpzLogger:
    """Get or create a logger for a module.

    Example:
        logger = get_logger(__name__)
        logger.info("Operation started")
    """
    if not _configured:
        configure_logging()

    if not name.startswith("mcpz"):
        name = f"mcpz.{name}"

    return mcpzLogger(name)


def get_daemon_logger(name: str) -> mcpzLogger:
    """Get a logger configured for daemon mode (stderr only)."""
    configure_logging(daemon=True, force=not _daemon_mode)
    return get_logger(name)


def log_startup_info() -> None:
    """Log startup diagnostic information (call from main entry points)."""
    logger = get_logger("mcpz.startup")
    logger.debug(f"Python: {sys.version}")
    logger.debug(f"Platform: {sys.platform}")
    logger.debug(f"PID: {os.getpid()}")
    logger.debug(f"Debug mode: {is_debug_mode()}")
    logger.debug(f"Home: {HostPaths.home()}")

    for var in ["MCPZ_DEBUG", "MCPZ_LOG_LEVEL", "MCPZ_HOME", "MCPZ_CONFIG"]:
        value = os.environ.get(var)
        if value:
            logger.debug(f"ENV {var}={value}")
