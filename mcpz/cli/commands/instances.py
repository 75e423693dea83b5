# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Instance registry commands."""

from datetime import datetime
from typing import Optional

import click
from rich.table import Table

from mcpz.cli import cli
from mcpz.cli.helpers import console, get_manager, handle_errors, run_async
from mcpz.cli.helpers.completions import _complete_instance_ids
from mcpz.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_STYLES = {
    "starting": "yellow",
    "running": "green",
    "unreachable": "red",
    "exited": "dim",
}


@cli.group(invoke_without_command=True)
@click.pass_context
@handle_errors
def instances(ctx):
    """Inspect and stop server instances recorded by any mcpz process."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(instances_list)


@instances.command(name="list")
@click.option("--no-reconcile", is_flag=True, help="Show records as stored, without checking processes")
@handle_errors
def instances_list(no_reconcile: bool):
    """List instances."""
    manager = get_manager()
    records = manager.list() if no_reconcile else manager.reconcile()

    if not records:
        console.print("[yellow]No instances running[/yellow]")
        return

    table = Table(title="Instances")
    table.add_column("ID", style="cyan")
    table.add_column("Server")
    table.add_column("PID")
    table.add_column("Owner")
    table.add_column("Started")
    table.add_column("Status")

    for record in records:
        style = STATUS_STYLES.get(record.status.value, "white")
        started = datetime.fromtimestamp(record.start_time).strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(
            record.id,
            record.server_name,
            str(record.pid),
            str(record.owner_pid),
            started,
            f"[{style}]{record.status.value}[/{style}]",
        )
    console.print(table)


@instances.command(name="stop")
@click.argument("instance_id", shell_complete=_complete_instance_ids)
@click.option("--timeout", type=float, default=None, help="Seconds to wait before giving up")
@handle_errors
def instances_stop(instance_id: str, timeout: Optional[float]):
    """Stop an instance and remove its record."""
    run_async(get_manager().stop(instance_id, timeout=timeout))
    logger.success(f"Stopped {instance_id}")


@instances.command(name="reconcile")
@handle_errors
def instances_reconcile():
    """Drop records of processes that are gone; mark unverifiable ones unreachable."""
    survivors = get_manager().reconcile()
    logger.success(f"{len(survivors)} instance record(s) remain")


@instances.command(name="cleanup")
@handle_errors
def instances_cleanup():
    """Reconcile and remove exited records."""
    purged = get_manager().cleanup()
    if not purged:
        console.print("[green]Nothing to clean up[/green]")
        return
    for instance_id in purged:
        console.print(f"  removed {instance_id}")
    logger.success(f"Removed {len(purged)} record(s)")
