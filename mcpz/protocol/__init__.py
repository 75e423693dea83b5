# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Protocol adapter: the only part of mcpz that touches the MCP libraries."""

from mcpz.protocol.dialects import Dialect, dialect_for_version, translate_schema, translate_tool
from mcpz.protocol.endpoint import Endpoint, ProxiedTool, create_endpoint, register_tool
from mcpz.protocol.session import StdioSession

__all__ = [
    "Dialect",
    "Endpoint",
    "ProxiedTool",
    "StdioSession",
    "create_endpoint",
    "dialect_for_version",
    "register_tool",
    "translate_schema",
    "translate_tool",
]
