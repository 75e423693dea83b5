# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Normalized descriptors produced by capability discovery."""

import re
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mcpz.models.config import ServerSpec, ToolDefinition, plugin_origin

SKILL_NAME_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,62}[a-z0-9])?$")


def is_valid_skill_name(name: str) -> bool:
    """Lowercase alphanumerics and hyphens, at most 64 chars, no edge hyphens."""
    return bool(name) and bool(SKILL_NAME_RE.match(name))


class PluginDescriptor(BaseModel):
    """A discovered plugin: the servers it would contribute if enabled."""

    model_config = ConfigDict(frozen=True)

    id: str
    version: Optional[str] = None
    origin: str = "npm"
    servers: List[ServerSpec] = Field(default_factory=list)
    path: Optional[Path] = None

    @field_validator("servers")
    @classmethod
    def tag_servers(cls, servers: List[ServerSpec], info) -> List[ServerSpec]:
        plugin_id = info.data.get("id")
        if plugin_id is None:
            return servers
        origin = plugin_origin(plugin_id)
        return [s if s.origin == origin else s.model_copy(update={"origin": origin}) for s in servers]


class SkillDescriptor(BaseModel):
    """A discovered skill: the tool definitions it contributes."""

    model_config = ConfigDict(frozen=True)

    id: str
    description: str = ""
    version: Optional[str] = None
    origin: str = "local"
    instructions: str = ""
    tools: List[ToolDefinition] = Field(default_factory=list)
    path: Optional[Path] = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not is_valid_skill_name(v):
            raise ValueError(
                f"invalid skill name {v!r}: lowercase letters, digits and hyphens, "
                "max 64 chars, no leading or trailing hyphen"
            )
        return v
