# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Base class for config document migrations."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def declared_version(raw_config: Dict[str, Any]) -> int:
    """Schema version a raw document claims. Documents without one are version 1."""
    version = raw_config.get("configVersion", 1)
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ValueError(f"configVersion must be a positive integer, got {version!r}")
    return version


@dataclass
class MigrationResult:
    """Outcome of checking/applying one migration."""

    migration_id: str
    description: str
    from_version: int
    to_version: int
    applied: bool = False
    changes_made: List[str] = field(default_factory=list)
    error: Optional[str] = None


class Migration:
    """One forward step N -> N+1 of the config schema.

    Subclasses set the class attributes and implement ``migrate``. ``migrate``
    must be pure (return a new dict, never touch its argument) and idempotent:
    feeding its own output back in returns an equal document.
    """

    id: str = ""
    description: str = ""
    from_version: int = 0
    to_version: int = 0

    def detect(self, raw_config: Dict[str, Any]) -> bool:
        """Whether this step applies to a document at its declared version."""
        return declared_version(raw_config) == self.from_version

    def migrate(self, raw_config: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def describe_changes(self, before: Dict[str, Any], after: Dict[str, Any]) -> List[str]:
        """Human-readable list of what ``migrate`` changed (for --dry-run)."""
        return [self.description]

    def check(self, raw_config: Dict[str, Any]) -> MigrationResult:
        return MigrationResult(
            migration_id=self.id,
            description=self.description,
            from_version=self.from_version,
            to_version=self.to_version,
        )
