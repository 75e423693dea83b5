# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""mcpz - Compose, launch and supervise MCP servers behind a single endpoint."""

__version__ = "1.1.0"
