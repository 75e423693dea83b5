# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pydantic models for everything mcpz persists or exchanges."""

from mcpz.models.capability import PluginDescriptor, SkillDescriptor
from mcpz.models.config import (
    CURRENT_CONFIG_VERSION,
    ConfigDocument,
    PluginRecord,
    ServerSpec,
    SkillRecord,
    ToolDefinition,
)
from mcpz.models.instance import InstanceRecord, InstanceStatus
from mcpz.models.settings import SettingsModel

__all__ = [
    "CURRENT_CONFIG_VERSION",
    "ConfigDocument",
    "InstanceRecord",
    "InstanceStatus",
    "PluginDescriptor",
    "PluginRecord",
    "ServerSpec",
    "SettingsModel",
    "SkillDescriptor",
    "SkillRecord",
    "ToolDefinition",
]
