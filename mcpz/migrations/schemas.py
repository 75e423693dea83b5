# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Schemas of historical config versions.

A document is validated against the schema of the version it declares before
any migration runs, so a malformed legacy file is reported as corrupt instead
of being half-migrated.
"""

from typing import Any, Dict, List, Optional, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from mcpz.models.config import CURRENT_CONFIG_VERSION, ConfigDocument


class LegacyServer(BaseModel):
    """Server entry as written by version 1 and 2 clients."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    id: Optional[str] = None
    command: str = ""
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def require_name(self) -> "LegacyServer":
        if not (self.name or self.id):
            raise ValueError("server entry needs a 'name'")
        return self


class ConfigV1(BaseModel):
    model_config = ConfigDict(extra="allow")

    servers: List[LegacyServer] = Field(default_factory=list)
    groups: Dict[str, List[str]] = Field(default_factory=dict)
    toolboxes: Dict[str, List[str]] = Field(default_factory=dict)


class ConfigV2(BaseModel):
    model_config = ConfigDict(extra="allow")

    config_version: int = Field(alias="configVersion")
    servers: List[LegacyServer] = Field(default_factory=list)
    toolboxes: Dict[str, List[str]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("toolboxes", "groups"),
    )


SCHEMAS: Dict[int, Type[BaseModel]] = {
    1: ConfigV1,
    2: ConfigV2,
    CURRENT_CONFIG_VERSION: ConfigDocument,
}


def validate_for_version(raw_config: Dict[str, Any], version: int) -> BaseModel:
    """Validate ``raw_config`` against the schema of ``version``.

    Raises KeyError for versions this build does not know and pydantic's
    ValidationError for documents that do not match.
    """
    return SCHEMAS[version].model_validate(raw_config)
