# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Skill commands. Skills contribute tools without starting a process."""

from typing import Optional

import click
import questionary
from rich.table import Table

from mcpz.cli import cli
from mcpz.cli.helpers import (
    console,
    get_discovery,
    get_registry_client,
    get_skill_installer,
    get_store,
    handle_errors,
    sync_capabilities,
)
from mcpz.cli.helpers.completions import _complete_skill_names
from mcpz.utils.logging import get_logger

logger = get_logger(__name__)


@cli.group(invoke_without_command=True)
@click.pass_context
@handle_errors
def skill(ctx):
    """Manage skills - select which skills to enable."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(skill_list)


@skill.command(name="list")
@handle_errors
def skill_list():
    """List discovered skills."""
    config = get_store().load()
    skills = get_discovery().discover_skills()

    if not skills:
        console.print("[yellow]No skills found[/yellow]")
        console.print("[blue]Install one with: mcpz skill install github:user/repo/path[/blue]")
        return

    table = Table(title="Skills")
    table.add_column("Skill", style="cyan")
    table.add_column("Description")
    table.add_column("Tools")
    table.add_column("Origin", style="magenta")
    table.add_column("Status")

    for found in skills:
        record = config.skills.get(found.id)
        if record is None:
            status = "[blue]new[/blue]"
        elif record.enabled:
            status = "[green]enabled[/green]"
        else:
            status = "[dim]disabled[/dim]"
        desc = found.description[:50] + "..." if len(found.description) > 50 else found.description
        table.add_row(found.id, desc, ", ".join(t.name for t in found.tools), found.origin, status)

    console.print(table)


@skill.command(name="sync")
@handle_errors
def skill_sync():
    """Refresh skill and plugin records from what is installed."""
    changes = sync_capabilities()
    if not changes:
        console.print("[green]Plugin and skill records are up to date[/green]")
    for change in changes:
        console.print(f"  {change}")


@skill.command(name="enable")
@click.argument("name", shell_complete=_complete_skill_names)
@handle_errors
def skill_enable(name: str):
    """Enable a skill's tools."""
    get_store().set_skill_enabled(name, True)
    logger.success(f"Enabled skill '{name}'")


@skill.command(name="disable")
@click.argument("name", shell_complete=_complete_skill_names)
@handle_errors
def skill_disable(name: str):
    """Disable a skill."""
    get_store().set_skill_enabled(name, False)
    logger.success(f"Disabled skill '{name}'")


@skill.command(name="install")
@click.argument("source")
@click.option("--name", "name", default=None, help="Install under this name")
@handle_errors
def skill_install(source: str, name: Optional[str]):
    """Install a skill.

    SOURCE is github:user/repo[/path], a GitHub URL, or a registry name.
    """
    installed = get_skill_installer().install(source, name=name)
    sync_capabilities()
    logger.success(f"Installed skill '{installed.id}'")


@skill.command(name="remove")
@click.argument("name", shell_complete=_complete_skill_names)
@handle_errors
def skill_remove(name: str):
    """Remove a locally installed skill."""
    get_skill_installer().remove(name)
    sync_capabilities()
    logger.success(f"Removed skill '{name}'")


@skill.command(name="search")
@click.argument("query")
@handle_errors
def skill_search(query: str):
    """Search the skills registry."""
    results = get_registry_client().search_skills(query)
    if not results:
        console.print(f"[yellow]No skills matching '{query}'[/yellow]")
        return

    table = Table(title=f"Skills matching '{query}'")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    for item in results:
        table.add_row(str(item.get("name", "")), str(item.get("description", "")))
    console.print(table)


@skill.command(name="manage")
@handle_errors
def skill_manage():
    """Interactive skill selection with checkboxes."""
    sync_capabilities()
    store = get_store()
    config = store.load()

    if not config.skills:
        console.print("[yellow]No skills installed[/yellow]")
        return

    choices = [
        questionary.Choice(
            title=f"{name} ({', '.join(t.name for t in record.tools)})",
            value=name,
            checked=record.enabled,
        )
        for name, record in config.skills.items()
    ]

    console.print("[bold]Select skills to enable:[/bold]")
    console.print("[dim]Space to toggle, Enter to confirm, Ctrl+C to cancel[/dim]\n")

    try:
        selected = questionary.checkbox("Skills:", choices=choices).ask()
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        return

    if selected is None:
        console.print("[yellow]Cancelled[/yellow]")
        return

    selected_set = set(selected)
    enabled = []
    disabled = []

    def apply(doc):
        for name, record in doc.skills.items():
            wanted = name in selected_set
            if record.enabled != wanted:
                doc.skills[name] = record.model_copy(update={"enabled": wanted})
                (enabled if wanted else disabled).append(name)

    store.update(apply)

    if not enabled and not disabled:
        console.print("[green]No changes needed[/green]")
    if enabled:
        console.print(f"[green]Enabled skills: {', '.join(sorted(enabled))}[/green]")
    if disabled:
        console.print(f"[yellow]Disabled skills: {', '.join(sorted(disabled))}[/yellow]")
