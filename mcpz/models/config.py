# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pydantic models for the config document (~/.mcpz/config.json).

Validated on every load and before every save. Keys on disk are camelCase
where the document historically used them (``configVersion``, ``inputSchema``).
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

CURRENT_CONFIG_VERSION = 3

BUILTIN_ORIGIN = "builtin"

_ORIGIN_RE = re.compile(r"^(builtin|plugin:.+)$")

_PATH_CHARS = ("/", "\\", "\0")


def plugin_origin(plugin_id: str) -> str:
    return f"plugin:{plugin_id}"


class ServerSpec(BaseModel):
    """A named MCP server: how to launch it and where it came from."""

    model_config = ConfigDict(extra="forbid")

    name: str
    command: str = ""
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    origin: str = BUILTIN_ORIGIN
    enabled: bool = True
    port: Optional[int] = Field(default=None, ge=1, le=65535)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        # Instance ids and log files are named after the server
        if not v or v.startswith(".") or any(c.isspace() or c in _PATH_CHARS for c in v):
            raise ValueError(
                f"invalid server name {v!r}: must be non-empty, without whitespace, "
                "'/' or '\\', and not start with '.'"
            )
        return v

    @field_validator("origin")
    @classmethod
    def validate_origin(cls, v: str) -> str:
        if not _ORIGIN_RE.match(v):
            raise ValueError(f"origin must be 'builtin' or 'plugin:<id>', got {v!r}")
        return v

    @property
    def is_builtin(self) -> bool:
        return self.origin == BUILTIN_ORIGIN

    @property
    def plugin_id(self) -> Optional[str]:
        if self.origin.startswith("plugin:"):
            return self.origin[len("plugin:"):]
        return None


class ToolDefinition(BaseModel):
    """A tool as carried by skills and reported by servers.

    Field names follow the MCP wire format so definitions can be passed to
    the protocol adapter unchanged.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        alias="inputSchema",
    )
    output_schema: Optional[Dict[str, Any]] = Field(default=None, alias="outputSchema")
    title: Optional[str] = None
    annotations: Optional[Dict[str, Any]] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PluginRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    version: Optional[str] = None
    origin: str = "npm"
    servers: List[str] = Field(default_factory=list)

    @field_validator("origin")
    @classmethod
    def validate_origin(cls, v: str) -> str:
        if v not in ("npm", "local"):
            raise ValueError(f"plugin origin must be 'npm' or 'local', got {v!r}")
        return v


class SkillRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    version: Optional[str] = None
    tools: List[ToolDefinition] = Field(default_factory=list)


class ConfigDocument(BaseModel):
    """Root aggregate of the config file at the current schema version.

    ``toolboxes`` also accepts the legacy ``groups`` key on read and is always
    written back as ``toolboxes``.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    config_version: int = Field(default=CURRENT_CONFIG_VERSION, alias="configVersion")
    servers: List[ServerSpec] = Field(default_factory=list)
    toolboxes: Dict[str, List[str]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("toolboxes", "groups"),
        serialization_alias="toolboxes",
    )
    plugins: Dict[str, PluginRecord] = Field(default_factory=dict)
    skills: Dict[str, SkillRecord] = Field(default_factory=dict)

    @field_validator("toolboxes")
    @classmethod
    def validate_toolboxes(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        cleaned = {}
        for name, members in v.items():
            if not name or any(c.isspace() for c in name):
                raise ValueError(f"invalid toolbox name {name!r}")
            # Ordered set: keep the first occurrence of each member
            cleaned[name] = list(dict.fromkeys(members))
        return cleaned

    @model_validator(mode="after")
    def validate_unique_servers(self) -> "ConfigDocument":
        seen = set()
        for server in self.servers:
            if server.name in seen:
                raise ValueError(f"duplicate server name {server.name!r}")
            seen.add(server.name)
        return self

    def get_server(self, name: str) -> Optional[ServerSpec]:
        for server in self.servers:
            if server.name == name:
                return server
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for disk: camelCase keys, ``toolboxes`` never ``groups``."""
        return self.model_dump(by_alias=True, exclude_none=True)
