# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Config utilities: path, show, migrate."""

import json

import click

from mcpz.cli import cli
from mcpz.cli.helpers import console, get_store, handle_errors
from mcpz.models.config import CURRENT_CONFIG_VERSION
from mcpz.paths import HostPaths


@cli.group()
def config():
    """Configuration utilities (path/show/migrate)."""
    pass


@config.command("path")
def config_path():
    """Print the config file location."""
    click.echo(str(HostPaths.config_file()))


@config.command("show")
@handle_errors
def config_show():
    """Print the config document, migrated in memory to the current version."""
    document = get_store().load()
    console.print_json(json.dumps(document.to_dict()))


@config.command("migrate")
@click.option("--dry-run", is_flag=True, help="Show what would be migrated without applying")
@handle_errors
def config_migrate(dry_run: bool):
    """Migrate the config file to the latest format.

    Examples:
        mcpz config migrate           # Rewrite config.json in place
        mcpz config migrate --dry-run # Preview changes
    """
    store = get_store()
    results, document = store.migrate_file(dry_run=dry_run)

    if document is None:
        console.print(f"[yellow]No config file at {store.path}[/yellow]")
        return

    if not results:
        console.print(f"[green]Config is up to date! (version {CURRENT_CONFIG_VERSION})[/green]")
        return

    if dry_run:
        console.print("[bold]Pending migrations:[/bold]")
    else:
        console.print(f"[green]Applied {len(results)} migration(s):[/green]")
    for r in results:
        marker = "-" if dry_run else "[green]✓[/green]"
        console.print(f"  {marker} {r.migration_id}: v{r.from_version} → v{r.to_version}")
        for change in r.changes_made:
            console.print(f"      [dim]{change}[/dim]")
    if dry_run:
        console.print("[blue]Dry run - no changes made.[/blue]")
