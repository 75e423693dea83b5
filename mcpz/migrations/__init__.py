# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Config document migrations.

Each migration moves a raw document exactly one schema version forward. The
runner chains them, so any historical version reaches the current one.
"""

from typing import List

from mcpz.migrations.base import Migration, MigrationResult, declared_version
from mcpz.migrations.v2_toolboxes import RenameGroupsToToolboxes
from mcpz.migrations.v3_capabilities import AddCapabilityRecords

MIGRATIONS: List[Migration] = [
    RenameGroupsToToolboxes(),
    AddCapabilityRecords(),
]


def get_all_migrations() -> List[Migration]:
    """All migrations ordered by the version they start from."""
    return sorted(MIGRATIONS, key=lambda m: m.from_version)


def get_migration(migration_id: str) -> Migration:
    for migration in MIGRATIONS:
        if migration.id == migration_id:
            return migration
    raise KeyError(f"Unknown migration: {migration_id}")


__all__ = [
    "Migration",
    "MigrationResult",
    "declared_version",
    "get_all_migrations",
    "get_migration",
]
