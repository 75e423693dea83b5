# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Plugin commands. Plugins are npm packages (or local manifests) that contribute servers."""

import click
import questionary
from rich.table import Table

from mcpz.cli import cli
from mcpz.cli.helpers import (
    console,
    get_discovery,
    get_plugin_installer,
    get_store,
    handle_errors,
    sync_capabilities,
)
from mcpz.cli.helpers.completions import _complete_plugin_ids
from mcpz.utils.logging import get_logger

logger = get_logger(__name__)


def _report_changes(changes) -> None:
    if not changes:
        console.print("[green]Plugin and skill records are up to date[/green]")
        return
    for change in changes:
        console.print(f"  {change}")


@cli.group(invoke_without_command=True)
@click.pass_context
@handle_errors
def plugin(ctx):
    """Manage plugins (packages that contribute servers)."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(plugin_list)


@plugin.command(name="list")
@handle_errors
def plugin_list():
    """List discovered plugins and whether they are enabled."""
    config = get_store().load()
    discovered = {p.id: p for p in get_discovery().discover_plugins()}
    ids = sorted(set(discovered) | set(config.plugins))

    if not ids:
        console.print("[yellow]No plugins found[/yellow]")
        console.print("[blue]Install one with: mcpz plugin install PACKAGE[/blue]")
        return

    table = Table(title="Plugins")
    table.add_column("Plugin", style="cyan")
    table.add_column("Version")
    table.add_column("Origin", style="magenta")
    table.add_column("Servers")
    table.add_column("Status")

    for plugin_id in ids:
        found = discovered.get(plugin_id)
        record = config.plugins.get(plugin_id)
        if found is None:
            status = "[red]missing[/red]"
        elif record is None:
            status = "[blue]new[/blue]"
        elif record.enabled:
            status = "[green]enabled[/green]"
        else:
            status = "[dim]disabled[/dim]"
        servers = [s.name for s in found.servers] if found else record.servers
        version = (found.version if found else record.version) or "-"
        origin = found.origin if found else record.origin
        table.add_row(plugin_id, version, origin, ", ".join(servers), status)

    console.print(table)


@plugin.command(name="sync")
@handle_errors
def plugin_sync():
    """Refresh plugin and skill records from what is installed."""
    _report_changes(sync_capabilities())


@plugin.command(name="enable")
@click.argument("plugin_id", shell_complete=_complete_plugin_ids)
@handle_errors
def plugin_enable(plugin_id: str):
    """Enable a plugin's servers."""
    get_store().set_plugin_enabled(plugin_id, True)
    logger.success(f"Enabled plugin '{plugin_id}'")


@plugin.command(name="disable")
@click.argument("plugin_id", shell_complete=_complete_plugin_ids)
@handle_errors
def plugin_disable(plugin_id: str):
    """Disable a plugin; its servers drop out of every run."""
    get_store().set_plugin_enabled(plugin_id, False)
    logger.success(f"Disabled plugin '{plugin_id}'")


@plugin.command(name="install")
@click.argument("package")
@handle_errors
def plugin_install(package: str):
    """Install a plugin from npm and record it."""
    get_plugin_installer().install(package)
    _report_changes(sync_capabilities())
    logger.success(f"Installed plugin '{package}'")


@plugin.command(name="uninstall")
@click.argument("package", shell_complete=_complete_plugin_ids)
@handle_errors
def plugin_uninstall(package: str):
    """Uninstall an npm plugin and drop its record."""
    get_plugin_installer().uninstall(package)
    _report_changes(sync_capabilities())
    logger.success(f"Uninstalled plugin '{package}'")


@plugin.command(name="manage")
@handle_errors
def plugin_manage():
    """Interactive plugin selection with checkboxes."""
    sync_capabilities()
    store = get_store()
    config = store.load()

    if not config.plugins:
        console.print("[yellow]No plugins installed[/yellow]")
        return

    choices = [
        questionary.Choice(
            title=f"{plugin_id} ({', '.join(record.servers) or 'no servers'})",
            value=plugin_id,
            checked=record.enabled,
        )
        for plugin_id, record in config.plugins.items()
    ]

    console.print("[bold]Select plugins to enable:[/bold]")
    console.print("[dim]Space to toggle, Enter to confirm, Ctrl+C to cancel[/dim]\n")

    try:
        selected = questionary.checkbox("Plugins:", choices=choices).ask()
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        return

    if selected is None:
        console.print("[yellow]Cancelled[/yellow]")
        return

    selected_set = set(selected)
    changed = []

    def apply(doc):
        for plugin_id, record in doc.plugins.items():
            wanted = plugin_id in selected_set
            if record.enabled != wanted:
                doc.plugins[plugin_id] = record.model_copy(update={"enabled": wanted})
                changed.append((plugin_id, wanted))

    store.update(apply)

    if not changed:
        console.print("[green]No changes needed[/green]")
        return
    for plugin_id, wanted in sorted(changed):
        if wanted:
            console.print(f"[green]Enabled: {plugin_id}[/green]")
        else:
            console.print(f"[yellow]Disabled: {plugin_id}[/yellow]")
