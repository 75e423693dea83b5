# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Server definition commands: list, add, remove."""

from typing import Optional, Tuple

import click
from rich.table import Table

from mcpz.cli import cli
from mcpz.cli.helpers import (
    console,
    get_discovery,
    get_store,
    handle_errors,
    parse_env_pairs,
)
from mcpz.cli.helpers.completions import _complete_server_names
from mcpz.errors import CapabilityError
from mcpz.models import ServerSpec
from mcpz.resolver import build_catalog
from mcpz.utils.logging import get_logger

logger = get_logger(__name__)


@cli.command(name="list")
@click.option("--plugins/--no-plugins", default=True, help="Include servers contributed by plugins")
@handle_errors
def list_servers(plugins: bool):
    """List configured servers and toolboxes."""
    config = get_store().load()

    active = []
    if plugins:
        try:
            active = get_discovery().discover_plugins()
        except CapabilityError as e:
            logger.warning(f"Plugin discovery failed: {e}")
    catalog, _ = build_catalog(config, active)

    if not catalog:
        console.print("[yellow]No servers configured[/yellow]")
        console.print("[blue]Add one with: mcpz add NAME --command CMD[/blue]")
        return

    table = Table(title="MCP Servers")
    table.add_column("Name", style="cyan")
    table.add_column("Command")
    table.add_column("Origin", style="magenta")
    table.add_column("Enabled")

    for server in catalog.values():
        command = " ".join([server.command, *server.args]).strip()
        enabled = "[green]yes[/green]" if server.enabled else "[dim]no[/dim]"
        table.add_row(server.name, command, server.origin, enabled)
    console.print(table)

    if config.toolboxes:
        boxes = Table(title="Toolboxes")
        boxes.add_column("Name", style="cyan")
        boxes.add_column("Servers")
        for name, members in config.toolboxes.items():
            boxes.add_row(name, ", ".join(members))
        console.print(boxes)


@cli.command(name="add")
@click.argument("name")
@click.option("--command", "-c", "command", required=True, help="Executable that starts the server")
@click.option("--args", "-a", "args", multiple=True, help="Arguments (repeatable or comma-separated)")
@click.option("--env", "-e", "env", multiple=True, help="KEY=VALUE (repeatable or comma-separated)")
@click.option("--port", type=click.IntRange(1, 65535), default=None, help="Port the server binds")
@click.option("--disabled", is_flag=True, help="Add the server disabled")
@click.option("--replace", is_flag=True, help="Overwrite an existing definition")
@handle_errors
def add_server(
    name: str,
    command: str,
    args: Tuple[str, ...],
    env: Tuple[str, ...],
    port: Optional[int],
    disabled: bool,
    replace: bool,
):
    """Add a server definition."""
    variables, blocked = parse_env_pairs(env)
    for key in blocked:
        logger.warning(f"Ignoring blocked environment variable {key}")

    argv = []
    for value in args:
        argv.extend(part.strip() for part in value.split(",") if part.strip())

    server = ServerSpec(
        name=name,
        command=command,
        args=argv,
        env=variables,
        port=port,
        enabled=not disabled,
    )
    get_store().add_server(server, replace=replace)
    logger.success(f"{'Updated' if replace else 'Added'} server '{name}'")


@cli.command(name="remove")
@click.argument("name", shell_complete=_complete_server_names)
@handle_errors
def remove_server(name: str):
    """Remove a server definition. Toolboxes that list it keep the name."""
    get_store().remove_server(name)
    logger.success(f"Removed server '{name}'")

