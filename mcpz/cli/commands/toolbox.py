# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Toolbox commands: named, ordered sets of servers."""

from typing import Tuple

import click
import questionary
from rich.table import Table

from mcpz.cli import cli
from mcpz.cli.helpers import console, get_store, handle_errors, split_names
from mcpz.cli.helpers.completions import _complete_server_names, _complete_toolbox_names
from mcpz.utils.logging import get_logger

logger = get_logger(__name__)

_deprecation_shown = False


def _warn_groups_deprecated() -> None:
    global _deprecation_shown
    if not _deprecation_shown:
        logger.warning("'mcpz groups' is deprecated, use 'mcpz toolbox'")
        _deprecation_shown = True


def _choose_servers(name: str):
    """Prompt for toolbox members. Returns None when cancelled."""
    config = get_store().load()
    current = set(config.toolboxes.get(name, []))
    choices = [
        questionary.Choice(
            title=f"{s.name} - {' '.join([s.command, *s.args]).strip()}",
            value=s.name,
            checked=s.name in current,
        )
        for s in config.servers
    ]
    if not choices:
        console.print("[yellow]No servers configured[/yellow]")
        return None

    console.print(f"[bold]Select servers for toolbox '{name}':[/bold]")
    console.print("[dim]Space to toggle, Enter to confirm, Ctrl+C to cancel[/dim]\n")
    try:
        return questionary.checkbox("Servers:", choices=choices).ask()
    except KeyboardInterrupt:
        return None


def _add(name: str, servers: Tuple[str, ...]) -> None:
    members = split_names(servers)
    if not members:
        selected = _choose_servers(name)
        if selected is None:
            console.print("[yellow]Cancelled[/yellow]")
            return
        members = selected
    if not members:
        raise click.ClickException("A toolbox needs at least one server")

    store = get_store()
    config = store.load()
    for member in members:
        if config.get_server(member) is None:
            logger.warning(f"'{member}' is not a configured server; it must come from a plugin")

    store.add_toolbox(name, members)
    logger.success(f"Toolbox '{name}': {', '.join(members)}")


def _remove(name: str) -> None:
    get_store().remove_toolbox(name)
    logger.success(f"Removed toolbox '{name}'")


def _list() -> None:
    config = get_store().load()
    if not config.toolboxes:
        console.print("[yellow]No toolboxes defined[/yellow]")
        return

    table = Table(title="Toolboxes")
    table.add_column("Name", style="cyan")
    table.add_column("Servers")
    for name, members in config.toolboxes.items():
        rendered = [m if config.get_server(m) else f"[dim]{m}[/dim]" for m in members]
        table.add_row(name, ", ".join(rendered))
    console.print(table)


@cli.group()
def toolbox():
    """Manage toolboxes (named server sets)."""


@toolbox.command(name="add")
@click.argument("name")
@click.option(
    "--servers",
    "-s",
    multiple=True,
    shell_complete=_complete_server_names,
    help="Member servers (repeatable or comma-separated); prompts when omitted",
)
@handle_errors
def toolbox_add(name: str, servers: Tuple[str, ...]):
    """Create or replace a toolbox."""
    _add(name, servers)


@toolbox.command(name="remove")
@click.argument("name", shell_complete=_complete_toolbox_names)
@handle_errors
def toolbox_remove(name: str):
    """Remove a toolbox."""
    _remove(name)


@toolbox.command(name="list")
@handle_errors
def toolbox_list():
    """List toolboxes."""
    _list()


@cli.group(hidden=True)
def groups():
    """Deprecated alias for 'toolbox'."""
    _warn_groups_deprecated()


@groups.command(name="add")
@click.argument("name")
@click.option("--servers", "-s", multiple=True)
@handle_errors
def groups_add(name: str, servers: Tuple[str, ...]):
    _add(name, servers)


@groups.command(name="remove")
@click.argument("name")
@handle_errors
def groups_remove(name: str):
    _remove(name)


@groups.command(name="list")
@handle_errors
def groups_list():
    _list()
