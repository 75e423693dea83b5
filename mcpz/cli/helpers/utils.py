# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Utility functions for CLI helpers."""

import functools
import sys
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel

from mcpz.errors import McpzError

# Errors go to stderr: `mcpz run` owns stdout for the protocol stream
_console = Console(stderr=True)

# Variables a server entry may not override (privilege escalation / injection)
BLOCKED_ENV_VARS = frozenset(
    {
        "PATH", "LD_LIBRARY_PATH", "LD_PRELOAD", "DYLD_LIBRARY_PATH", "DYLD_INSERT_LIBRARIES",
        "PYTHONPATH", "RUBYLIB", "PERL5LIB", "NODE_PATH",
        "HOME", "USER", "LOGNAME", "SHELL",
        "SUDO_USER", "SUDO_UID", "SUDO_GID", "SUDO_COMMAND",
        "SSH_AUTH_SOCK", "SSH_AGENT_PID",
        "GPG_AGENT_INFO", "GNUPGHOME",
        "TERM", "DISPLAY", "XAUTHORITY",
    }
)


def show_error_panel(title: str, message: str, hint: Optional[str] = None) -> None:
    """Display a formatted error panel.

    Args:
        title: Panel title (shown in red)
        message: Main error message
        hint: Optional command to try next
    """
    content = message
    if hint:
        content += f"\n\n[blue]Try:[/blue]\n  {hint}"
    _console.print(Panel(content, title=f"[red]{title}[/red]", border_style="red"))


def handle_errors(func: Callable) -> Callable:
    """Decorator that wraps CLI commands with standard error handling.

    - McpzError: panel titled after the error family, hint shown as "Try:"
    - ClickException: passed through, click formats it
    - Other exceptions: generic error panel

    Every handled error exits with code 1.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SystemExit:
            raise
        except click.ClickException:
            raise
        except click.exceptions.Abort:
            raise
        except McpzError as exc:
            show_error_panel(exc.title, str(exc), exc.hint)
            sys.exit(1)
        except KeyboardInterrupt:
            _console.print("[yellow]Interrupted[/yellow]")
            sys.exit(130)
        except Exception as exc:
            show_error_panel("Error", str(exc) or exc.__class__.__name__)
            sys.exit(1)

    return wrapper


def split_names(values: Iterable[str]) -> List[str]:
    """Flatten repeated and comma-separated option values, keeping order."""
    names: List[str] = []
    for value in values or ():
        for part in value.split(","):
            part = part.strip()
            if part and part not in names:
                names.append(part)
    return names


def parse_env_pairs(values: Iterable[str]) -> Tuple[Dict[str, str], List[str]]:
    """Parse ``KEY=VAL`` items (repeatable, comma-separated allowed).

    Returns the accepted variables and the names that were blocked.
    """
    env: Dict[str, str] = {}
    blocked: List[str] = []
    for item in split_names(values):
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--env")
        if key in BLOCKED_ENV_VARS:
            blocked.append(key)
            continue
        env[key] = value.strip()
    return env, blocked
