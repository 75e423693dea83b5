# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Click shell completion functions.

Completion must never fail loudly, so every helper swallows store errors and
offers nothing instead.
"""

from typing import List

from mcpz.config_store import ConfigStore
from mcpz.errors import McpzError
from mcpz.instances.registry import InstanceRegistry


def _complete_server_names(ctx, param, incomplete: str) -> List[str]:
    try:
        config = ConfigStore().load()
    except McpzError:
        return []
    return [s.name for s in config.servers if s.name.startswith(incomplete)]


def _complete_toolbox_names(ctx, param, incomplete: str) -> List[str]:
    try:
        config = ConfigStore().load()
    except McpzError:
        return []
    return [name for name in config.toolboxes if name.startswith(incomplete)]


def _complete_skill_names(ctx, param, incomplete: str) -> List[str]:
    try:
        config = ConfigStore().load()
    except McpzError:
        return []
    return [name for name in config.skills if name.startswith(incomplete)]


def _complete_plugin_ids(ctx, param, incomplete: str) -> List[str]:
    try:
        config = ConfigStore().load()
    except McpzError:
        return []
    return [name for name in config.plugins if name.startswith(incomplete)]


def _complete_instance_ids(ctx, param, incomplete: str) -> List[str]:
    return [r.id for r in InstanceRegistry().list() if r.id.startswith(incomplete)]
