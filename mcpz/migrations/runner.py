# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Migration runner for the config document."""

import copy
import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from mcpz.migrations import get_all_migrations
from mcpz.migrations.base import MigrationResult, declared_version
from mcpz.migrations.schemas import validate_for_version
from mcpz.models.config import CURRENT_CONFIG_VERSION

logger = logging.getLogger(__name__)


class MigrationError(ValueError):
    """The document cannot be brought to the current version."""


class MigrationRunner:
    """Checks and runs config migrations on a raw document.

    The runner never mutates the dict it was given. ``run()`` validates the
    document against the schema of its declared version, applies every
    pending step in order and validates each intermediate result against the
    schema of the version it claims.
    """

    def __init__(self, raw_config: Dict[str, Any]):
        self.raw_config = copy.deepcopy(raw_config)
        self.results: List[MigrationResult] = []

    @property
    def version(self) -> int:
        return declared_version(self.raw_config)

    def needs_migration(self) -> bool:
        return self.version < CURRENT_CONFIG_VERSION

    def check_all(self) -> List[MigrationResult]:
        """Results for every step between the declared and current version."""
        version = self.version
        results = [m.check(self.raw_config) for m in get_all_migrations() if m.from_version >= version]
        self.results = results
        return results

    def run(self) -> Dict[str, Any]:
        """Return the document migrated to the current version.

        Raises:
            MigrationError: unknown/future version or a step produced an
                invalid intermediate document.
        """
        try:
            version = self.version
        except ValueError as e:
            raise MigrationError(str(e)) from e

        if version > CURRENT_CONFIG_VERSION:
            raise MigrationError(
                f"configVersion {version} is newer than this mcpz supports "
                f"({CURRENT_CONFIG_VERSION})"
            )

        self._validate(self.raw_config, version)

        config = copy.deepcopy(self.raw_config)
        self.results = []
        for migration in get_all_migrations():
            if migration.from_version != declared_version(config):
                continue
            result = migration.check(config)
            migrated = migration.migrate(config)
            result.applied = True
            result.changes_made = migration.describe_changes(config, migrated)
            self.results.append(result)
            logger.debug(f"Applied migration {migration.id} (v{result.from_version} -> v{result.to_version})")
            self._validate(migrated, migration.to_version)
            config = migrated

        if declared_version(config) != CURRENT_CONFIG_VERSION:
            raise MigrationError(f"No migration path from configVersion {declared_version(config)}")
        return config

    def _validate(self, config: Dict[str, Any], version: int) -> None:
        try:
            validate_for_version(config, version)
        except KeyError:
            raise MigrationError(f"Unknown configVersion {version}") from None
        except ValidationError as e:
            raise MigrationError(f"invalid for configVersion {version}: {_first_error(e)}") from e


def _first_error(error: ValidationError) -> str:
    errors = error.errors()
    if not errors:
        return str(error)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    more = f" (+{len(errors) - 1} more)" if len(errors) > 1 else ""
    return f"{location}: {first.get('msg', 'invalid')}{more}" if location else f"{first.get('msg')}{more}"


def migrate_document(raw_config: Dict[str, Any]) -> Dict[str, Any]:
    """Pure convenience wrapper: the raw document at the current version."""
    return MigrationRunner(raw_config).run()
