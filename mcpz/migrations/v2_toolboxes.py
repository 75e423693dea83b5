# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Version 1 -> 2: ``groups`` becomes ``toolboxes``."""

import copy
from typing import Any, Dict, List

from mcpz.migrations.base import Migration


class RenameGroupsToToolboxes(Migration):
    """Rename the top-level ``groups`` mapping to ``toolboxes``.

    When a document carries both keys, ``toolboxes`` wins and ``groups`` is
    dropped. Version 1 documents have no ``configVersion`` key at all.
    """

    id = "groups-to-toolboxes"
    description = "Rename 'groups' to 'toolboxes'"
    from_version = 1
    to_version = 2

    def migrate(self, raw_config: Dict[str, Any]) -> Dict[str, Any]:
        config = copy.deepcopy(raw_config)
        groups = config.pop("groups", None)
        if "toolboxes" not in config:
            config["toolboxes"] = groups if groups is not None else {}
        config["configVersion"] = max(config.get("configVersion", 1), self.to_version)
        return config

    def describe_changes(self, before: Dict[str, Any], after: Dict[str, Any]) -> List[str]:
        changes = []
        if "groups" in before:
            if "toolboxes" in before:
                changes.append("Dropped 'groups' (a 'toolboxes' mapping is already present)")
            else:
                names = ", ".join(sorted(before["groups"])) or "none"
                changes.append(f"Renamed 'groups' to 'toolboxes' ({names})")
        changes.append(f"Set configVersion to {self.to_version}")
        return changes
