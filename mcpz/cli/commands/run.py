# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""``mcpz run`` and ``mcpz tools``.

``run`` owns stdout for the MCP stream: everything human-readable goes to
stderr through the daemon logger.
"""

import asyncio
from typing import Tuple

import click
from rich.table import Table

from mcpz.cli import cli
from mcpz.cli.helpers import (
    console,
    get_discovery,
    get_manager,
    get_store,
    handle_errors,
    run_async,
    split_names,
)
from mcpz.cli.helpers.completions import _complete_server_names, _complete_toolbox_names
from mcpz.composer import compose_endpoint, prefixed_name
from mcpz.errors import InstanceError
from mcpz.instances import InstanceManager, RunHandle
from mcpz.paths import HostPaths
from mcpz.resolver import ResolvedRunPlan, resolve
from mcpz.utils.logging import get_daemon_logger, get_logger


def selector_options(func):
    """Options shared by ``run`` and ``tools`` to pick servers, tools and skills."""
    options = [
        click.option("--server", "-s", "server", multiple=True, shell_complete=_complete_server_names,
                     help="Server to run (repeatable)"),
        click.option("--servers", "-S", "servers", multiple=True, help="Comma-separated servers"),
        click.option("--toolbox", "-t", "toolbox", multiple=True, shell_complete=_complete_toolbox_names,
                     help="Toolbox to run (repeatable)"),
        click.option("--toolboxes", "-T", "toolboxes", multiple=True, help="Comma-separated toolboxes"),
        click.option("--group", "-g", "group", multiple=True, hidden=True),
        click.option("--groups", "-G", "groups", multiple=True, hidden=True),
        click.option("--tool", "tool", multiple=True, help="Only advertise this tool (un-prefixed, repeatable)"),
        click.option("--tools", "tools", multiple=True, help="Comma-separated tool filter"),
        click.option("--skill", "skill", multiple=True, help="Skill to include (default: every enabled skill)"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_plan(
    server: Tuple[str, ...],
    servers: Tuple[str, ...],
    toolbox: Tuple[str, ...],
    toolboxes: Tuple[str, ...],
    group: Tuple[str, ...],
    groups: Tuple[str, ...],
    tool: Tuple[str, ...],
    tools: Tuple[str, ...],
    skill: Tuple[str, ...],
    logger,
) -> ResolvedRunPlan:
    if group or groups:
        logger.warning("--group/--groups are deprecated, use --toolbox/--toolboxes")

    config = get_store().load()
    discovery = get_discovery()
    plan = resolve(
        servers=split_names(server + servers),
        toolboxes=split_names(toolbox + toolboxes + group + groups),
        tool_filter=split_names(tool + tools) or None,
        config=config,
        active_plugins=discovery.discover_plugins(),
        skills=split_names(skill) or None,
        skill_descriptors=discovery.discover_skills(),
    )
    for collision in plan.collisions:
        logger.warning(str(collision))
    return plan


def _require_started(handle: RunHandle) -> None:
    if handle.instances:
        return
    names = ", ".join(f.server_name for f in handle.failures)
    raise InstanceError(
        f"None of the selected servers started: {names}",
        hint=f"Check the server logs in {HostPaths.log_dir()}",
    )


async def _close(handle: RunHandle, logger) -> None:
    for error in await handle.close():
        logger.warning(f"Shutdown: {error}")


async def _serve(manager: InstanceManager, plan: ResolvedRunPlan, logger) -> None:
    await asyncio.get_running_loop().run_in_executor(None, manager.reconcile)
    handle = await manager.launch(plan)
    try:
        _require_started(handle)
        for failure in handle.failures:
            logger.warning(f"Not serving {failure.server_name}: {failure.error}")
        endpoint = compose_endpoint(handle, plan, call_timeout=manager.call_timeout)
        logger.info(
            f"Serving {len(endpoint.tools)} tools from "
            f"{', '.join(i.spec.name for i in handle.instances) or 'skills only'}"
        )
        await endpoint.serve_stdio()
    finally:
        await _close(handle, logger)


@cli.command(name="run")
@selector_options
@handle_errors
def run(**selectors):
    """Run servers and serve their tools on stdio as one MCP server.

    With no selectors every enabled server is started.
    """
    logger = get_daemon_logger(__name__)
    plan = build_plan(logger=logger, **selectors)
    run_async(_serve(get_manager(), plan, logger))


async def _collect(manager: InstanceManager, plan: ResolvedRunPlan, logger) -> RunHandle:
    await asyncio.get_running_loop().run_in_executor(None, manager.reconcile)
    handle = await manager.launch(plan)
    try:
        _require_started(handle)
    except InstanceError:
        await _close(handle, logger)
        raise
    return handle


def _print_tools(handle: RunHandle, plan: ResolvedRunPlan) -> None:
    table = Table(title="Tools")
    table.add_column("Tool", style="cyan")
    table.add_column("Source", style="magenta")
    table.add_column("Description")

    for instance in handle.instances:
        for tool in instance.tools:
            name = tool.get("name", "")
            if plan.allows_tool(name):
                table.add_row(prefixed_name(instance.spec.name, name), instance.spec.name,
                              (tool.get("description") or "").strip().split("\n")[0])
    for skill in plan.skills:
        for definition in skill.tools:
            if plan.allows_tool(definition.name):
                table.add_row(prefixed_name(skill.id, definition.name), f"skill:{skill.id}",
                              definition.description.strip().split("\n")[0])
    console.print(table)

    for failure in handle.failures:
        console.print(f"[red]✗ {failure.server_name}: {failure.error}[/red]")


@cli.command(name="tools")
@selector_options
@handle_errors
def list_tools(**selectors):
    """Start the selected servers, print their tools, then stop them."""
    logger = get_logger(__name__)
    plan = build_plan(logger=logger, **selectors)
    manager = get_manager()

    async def collect_and_close():
        handle = await _collect(manager, plan, logger)
        try:
            _print_tools(handle, plan)
        finally:
            await _close(handle, logger)

    run_async(collect_and_close())
