# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Instance registry record (~/.mcpz/instances/<id>.json)."""

import os
import secrets
import time
from enum import Enum
from typing import Dict, FrozenSet, List

from pydantic import BaseModel, ConfigDict, Field


class InstanceStatus(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    UNREACHABLE = "unreachable"


# Allowed status changes; anything else raises InvalidTransition
TRANSITIONS: Dict[InstanceStatus, FrozenSet[InstanceStatus]] = {
    InstanceStatus.STARTING: frozenset(
        {InstanceStatus.RUNNING, InstanceStatus.EXITED, InstanceStatus.UNREACHABLE}
    ),
    InstanceStatus.RUNNING: frozenset({InstanceStatus.EXITED, InstanceStatus.UNREACHABLE}),
    InstanceStatus.UNREACHABLE: frozenset({InstanceStatus.EXITED}),
    InstanceStatus.EXITED: frozenset(),
}


def new_instance_id(server_name: str) -> str:
    """``<server>-<millis>-<random>``, fresh per launch."""
    return f"{server_name}-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


class InstanceRecord(BaseModel):
    """One launched server process, as persisted in the registry."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    id: str
    server_name: str = Field(alias="serverName")
    pid: int = Field(ge=0)
    owner_pid: int = Field(default_factory=os.getpid, alias="ownerPid")
    start_time: float = Field(default_factory=time.time, alias="startTime")
    status: InstanceStatus = InstanceStatus.STARTING
    command: str = ""
    args: List[str] = Field(default_factory=list)

    def can_move_to(self, target: InstanceStatus) -> bool:
        return target == self.status or target in TRANSITIONS[self.status]

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
