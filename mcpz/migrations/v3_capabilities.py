# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Version 2 -> 3: plugin/skill record maps and normalized server entries."""

import copy
from typing import Any, Dict, List

from mcpz.migrations.base import Migration

# Anything else on a server entry (id, type, alwaysAllow, autoApprove, ...) is dropped
SERVER_KEYS = ("name", "command", "args", "env", "origin", "enabled", "port")


def _normalize_server(server: Dict[str, Any]) -> Dict[str, Any]:
    entry = {key: copy.deepcopy(server[key]) for key in SERVER_KEYS if key in server}
    if "name" not in entry and "id" in server:
        entry["name"] = server["id"]
    if "enabled" not in entry and server.get("disabled") is True:
        entry["enabled"] = False
    entry.setdefault("args", [])
    entry.setdefault("env", {})
    entry.setdefault("origin", "builtin")
    entry.setdefault("enabled", True)
    return entry


class AddCapabilityRecords(Migration):
    """Add ``plugins``/``skills`` maps and give every server an origin."""

    id = "capability-records"
    description = "Add plugin and skill records, normalize server entries"
    from_version = 2
    to_version = 3

    def migrate(self, raw_config: Dict[str, Any]) -> Dict[str, Any]:
        config = copy.deepcopy(raw_config)
        config["servers"] = [
            _normalize_server(s) if isinstance(s, dict) else s for s in config.get("servers", [])
        ]
        config.setdefault("plugins", {})
        config.setdefault("skills", {})
        config["configVersion"] = max(config.get("configVersion", 1), self.to_version)
        return config

    def describe_changes(self, before: Dict[str, Any], after: Dict[str, Any]) -> List[str]:
        changes = []
        dropped = sorted(
            {
                key
                for server in before.get("servers", [])
                if isinstance(server, dict)
                for key in server
                if key not in SERVER_KEYS
            }
        )
        if dropped:
            changes.append(f"Dropped legacy server keys: {', '.join(dropped)}")
        for key in ("plugins", "skills"):
            if key not in before:
                changes.append(f"Added empty '{key}' map")
        changes.append(f"Set configVersion to {self.to_version}")
        return changes
