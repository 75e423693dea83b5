# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""The composed MCP endpoint mcpz exposes to its own client.

Built on FastMCP. Each advertised tool is a ProxiedTool whose ``run`` hands
the arguments to a handler (usually a call into a child session). Tool
schemas are translated into the endpoint's dialect on registration.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult
from mcp import types
from pydantic import PrivateAttr, ValidationError

from mcpz.errors import SchemaIncompatible, UnsupportedConstruct
from mcpz.models.config import ToolDefinition
from mcpz.protocol.dialects import Dialect, translate_tool

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Awaitable[types.CallToolResult]]


class ProxiedTool(Tool):
    """A FastMCP tool that forwards calls to a handler."""

    _handler: Optional[ToolHandler] = PrivateAttr(default=None)

    async def run(self, arguments: Dict[str, Any]) -> ToolResult:
        if self._handler is None:
            raise ToolError(f"Tool '{self.name}' has no handler")
        result = await self._handler(arguments)
        if result.isError:
            message = "\n".join(
                block.text for block in result.content if isinstance(block, types.TextContent)
            )
            raise ToolError(message or f"Tool '{self.name}' failed")
        return ToolResult(content=list(result.content), structured_content=result.structuredContent)


class Endpoint:
    """A named MCP server speaking one schema dialect."""

    def __init__(
        self,
        name: str,
        version: str,
        dialect: Dialect = Dialect.CURRENT,
        instructions: Optional[str] = None,
    ):
        self.name = name
        self.version = version
        self.dialect = Dialect(dialect)
        self.server = FastMCP(name=name, version=version, instructions=instructions)
        self.tools: Dict[str, ProxiedTool] = {}

    def tool_names(self):
        return list(self.tools)

    async def call(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResult:
        """Invoke a registered tool directly (used by ``mcpz tools`` and tests)."""
        tool = self.tools.get(name)
        if tool is None:
            raise ToolError(f"Unknown tool: {name}")
        return await tool.run(arguments or {})

    async def serve_stdio(self) -> None:
        """Serve over stdin/stdout until the client disconnects."""
        await self.server.run_async(transport="stdio", show_banner=False)


def create_endpoint(name: str, version: str, dialect: Dialect = Dialect.CURRENT) -> Endpoint:
    return Endpoint(name, version, dialect)


def register_tool(
    endpoint: Endpoint,
    tool: Union[ToolDefinition, Dict[str, Any]],
    handler: ToolHandler,
    source_dialect: Dialect = Dialect.CURRENT,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> ProxiedTool:
    """Advertise ``tool`` on ``endpoint``, optionally under another name.

    Raises:
        SchemaIncompatible: the schema cannot be expressed in the endpoint's
            dialect, the input schema is not an object schema, or the name
            is already taken
    """
    wire = tool.to_wire() if isinstance(tool, ToolDefinition) else dict(tool)
    public_name = name or wire.get("name") or ""
    if not public_name:
        raise SchemaIncompatible("?", "tool has no name")
    if public_name in endpoint.tools:
        raise SchemaIncompatible(public_name, "a tool with this name is already registered")

    try:
        translated = translate_tool(wire, source_dialect, endpoint.dialect)
    except UnsupportedConstruct as e:
        raise SchemaIncompatible(public_name, str(e)) from e

    input_schema = translated.get("inputSchema")
    if not isinstance(input_schema, dict) or input_schema.get("type") != "object":
        raise SchemaIncompatible(public_name, "inputSchema must be a JSON object schema")

    annotations = translated.get("annotations")
    try:
        proxied = ProxiedTool(
            name=public_name,
            title=translated.get("title"),
            description=description if description is not None else translated.get("description"),
            parameters=input_schema,
            output_schema=translated.get("outputSchema"),
            annotations=types.ToolAnnotations.model_validate(annotations) if annotations else None,
        )
    except ValidationError as e:
        raise SchemaIncompatible(public_name, f"rejected by the protocol library: {e.error_count()} error(s)") from e

    proxied._handler = handler
    endpoint.server.add_tool(proxied)
    endpoint.tools[public_name] = proxied
    logger.debug(f"Registered tool {public_name} on {endpoint.name}")
    return proxied
