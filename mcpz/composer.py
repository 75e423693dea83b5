# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Build the single MCP endpoint that fronts every running instance.

Server tools are advertised as ``<server>_<tool>`` with a ``[<server>]``
description prefix; skill tools as ``<skill>_<tool>``. The tool filter is
matched against the un-prefixed tool name.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from mcp import types

from mcpz import __version__
from mcpz.errors import SchemaIncompatible
from mcpz.instances.manager import LaunchedInstance, RunHandle
from mcpz.models.config import ToolDefinition
from mcpz.protocol.dialects import Dialect
from mcpz.protocol.endpoint import Endpoint, ToolHandler, create_endpoint, register_tool
from mcpz.resolver import ResolvedRunPlan, SkillSelection

logger = logging.getLogger(__name__)


def prefixed_name(owner: str, tool_name: str) -> str:
    return f"{owner}_{tool_name}"


def _forwarder(instance: LaunchedInstance, tool_name: str, timeout: Optional[float]) -> ToolHandler:
    async def forward(arguments: Dict[str, Any]) -> types.CallToolResult:
        try:
            return await instance.session.call_tool(tool_name, arguments, timeout=timeout)
        except asyncio.TimeoutError:
            message = f"{instance.spec.name} did not answer {tool_name} within {timeout:g}s"
            logger.warning(message)
            return types.CallToolResult(content=[types.TextContent(type="text", text=message)], isError=True)

    return forward


def _skill_responder(skill: SkillSelection, tool: ToolDefinition) -> ToolHandler:
    text = skill.instructions or tool.description or f"Skill {skill.id}"

    async def respond(arguments: Dict[str, Any]) -> types.CallToolResult:
        return types.CallToolResult(content=[types.TextContent(type="text", text=text)], isError=False)

    return respond


def compose_endpoint(
    handle: RunHandle,
    plan: ResolvedRunPlan,
    name: str = "mcpz",
    dialect: Dialect = Dialect.CURRENT,
    call_timeout: Optional[float] = None,
) -> Endpoint:
    """Register the tools of every launched instance and selected skill.

    Tools that cannot be expressed on the endpoint are skipped with a warning.
    A forwarded call that gets no answer within ``call_timeout`` seconds
    returns an error result; ``None`` waits indefinitely.
    """
    endpoint = create_endpoint(name, __version__, dialect)
    skipped: List[str] = []

    for instance in handle.instances:
        source_dialect = getattr(instance.session, "dialect", Dialect.CURRENT)
        for tool in instance.tools:
            tool_name = tool.get("name", "")
            if not plan.allows_tool(tool_name):
                continue
            public = prefixed_name(instance.spec.name, tool_name)
            try:
                register_tool(
                    endpoint,
                    tool,
                    _forwarder(instance, tool_name, call_timeout),
                    source_dialect=source_dialect,
                    name=public,
                    description=f"[{instance.spec.name}] {tool.get('description') or ''}".rstrip(),
                )
            except SchemaIncompatible as e:
                logger.warning(f"Skipping {public}: {e.reason}")
                skipped.append(public)

    for skill in plan.skills:
        for tool in skill.tools:
            if not plan.allows_tool(tool.name):
                continue
            public = prefixed_name(skill.id, tool.name)
            try:
                register_tool(
                    endpoint,
                    tool,
                    _skill_responder(skill, tool),
                    name=public,
                    description=f"[{skill.id}] {tool.description}".rstrip(),
                )
            except SchemaIncompatible as e:
                logger.warning(f"Skipping {public}: {e.reason}")
                skipped.append(public)

    logger.info(
        f"Endpoint ready with {len(endpoint.tools)} tools"
        + (f" ({len(skipped)} skipped)" if skipped else "")
    )
    return endpoint
