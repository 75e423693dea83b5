# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Versioned, validated persistence for the mcpz config document.

The document is only ever read and written as a whole:

    store = ConfigStore()
    config = store.load()          # migrated to the current version, validated
    store.save(config)             # validated again, written atomically

Read-modify-write cycles go through ``update()`` (or the helpers built on it),
which hold the store's advisory lock for the whole cycle so two mcpz processes
cannot interleave their writes.
"""

import json
import logging
import stat
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from mcpz.errors import ConfigCorrupt, ConfigUnreadable, ConfigWriteFailed, McpzError
from mcpz.migrations.base import MigrationResult
from mcpz.migrations.runner import MigrationError, MigrationRunner
from mcpz.models.config import (
    CURRENT_CONFIG_VERSION,
    ConfigDocument,
    PluginRecord,
    ServerSpec,
    SkillRecord,
)
from mcpz.paths import HostPaths
from mcpz.utils.atomic import atomic_write_json
from mcpz.utils.locking import FileLock

logger = logging.getLogger(__name__)

Updater = Callable[[ConfigDocument], Optional[ConfigDocument]]


class ConfigStore:
    """Load, migrate, validate and save the config document at ``path``."""

    def __init__(self, path: Optional[Path] = None, lock_timeout: float = 5.0):
        self.path = Path(path) if path else HostPaths.config_file()
        self.lock = FileLock(self.path.with_name(self.path.name + ".lock"), timeout=lock_timeout)

    # Reading

    def read_raw(self) -> Optional[Dict[str, Any]]:
        """Raw JSON object on disk, or None when the file does not exist."""
        if not self.path.exists():
            return None
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigUnreadable(
                f"Cannot read config file {self.path}: {e.strerror or e}",
                hint=f"Check the permissions of {self.path}",
            ) from e

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigCorrupt(self.path, f"invalid JSON at line {e.lineno}: {e.msg}") from e
        if not isinstance(raw, dict):
            raise ConfigCorrupt(self.path, "top level must be a JSON object")
        return raw

    def load(self) -> ConfigDocument:
        """Load the document, migrating older versions in memory.

        A missing file is an empty document at the current version. Older
        versions are not written back here; the next save persists them at
        the current version.

        Raises:
            ConfigUnreadable: the file exists but cannot be read
            ConfigCorrupt: invalid JSON, unknown version, or schema violation
        """
        raw = self.read_raw()
        if raw is None:
            return ConfigDocument()

        self._check_permissions()
        return self._to_document(raw)

    def _to_document(self, raw: Dict[str, Any]) -> ConfigDocument:
        runner = MigrationRunner(raw)
        try:
            migrated = runner.run()
        except MigrationError as e:
            raise ConfigCorrupt(self.path, str(e)) from e
        if runner.results:
            logger.debug(
                f"Migrated {self.path} in memory: "
                + ", ".join(r.migration_id for r in runner.results)
            )

        try:
            return ConfigDocument.model_validate(migrated)
        except ValidationError as e:
            raise ConfigCorrupt(self.path, f"schema validation failed: {e.error_count()} error(s)") from e

    def _check_permissions(self) -> None:
        try:
            mode = self.path.stat().st_mode
        except OSError:
            return
        if mode & (stat.S_IWGRP | stat.S_IWOTH):
            logger.warning(
                f"Config file {self.path} is writable by other users "
                f"(mode {stat.S_IMODE(mode):o}); run: chmod 600 {self.path}"
            )

    # Migration

    def migrate(self, document: Union[ConfigDocument, Dict[str, Any]]) -> ConfigDocument:
        """Return a new document at the current version. Pure and idempotent."""
        if isinstance(document, ConfigDocument):
            return document.model_copy(deep=True)
        return self._to_document(document)

    def migrate_file(self, dry_run: bool = False) -> Tuple[List[MigrationResult], Optional[ConfigDocument]]:
        """Migrate the file on disk. Returns the applied steps and the new document."""
        with self.lock:
            raw = self.read_raw()
            if raw is None:
                return [], None
            runner = MigrationRunner(raw)
            try:
                migrated = runner.run()
            except MigrationError as e:
                raise ConfigCorrupt(self.path, str(e)) from e
            document = ConfigDocument.model_validate(migrated)
            if runner.results and not dry_run:
                self.save(document)
            return runner.results, document

    # Writing

    def save(self, document: ConfigDocument) -> None:
        """Validate and atomically write the whole document (mode 0600).

        Raises:
            ConfigWriteFailed: validation failed or the write itself failed
            StoreLocked: another process held the lock past the lock wait
        """
        try:
            validated = ConfigDocument.model_validate(document.to_dict())
        except ValidationError as e:
            raise ConfigWriteFailed(f"Refusing to save an invalid config document: {e}") from e
        if validated.config_version != CURRENT_CONFIG_VERSION:
            raise ConfigWriteFailed(
                f"Refusing to save configVersion {validated.config_version}; "
                f"expected {CURRENT_CONFIG_VERSION}"
            )

        with self.lock:
            try:
                atomic_write_json(self.path, validated.to_dict(), mode=0o600)
            except OSError as e:
                raise ConfigWriteFailed(
                    f"Failed to write {self.path}: {e.strerror or e}",
                    hint=f"Check that {self.path.parent} is writable",
                ) from e
        logger.debug(f"Saved config to {self.path}")

    def update(self, fn: Updater) -> ConfigDocument:
        """Read-modify-write under the lock.

        ``fn`` receives the current document and either mutates it or returns
        a replacement. Nothing is written if ``fn`` raises.
        """
        with self.lock:
            document = self.load()
            result = fn(document)
            if result is not None:
                document = result
            self.save(document)
            return document

    # Logical operations used by the command layer

    def add_server(self, server: ServerSpec, replace: bool = False) -> ConfigDocument:
        def apply(doc: ConfigDocument) -> None:
            existing = doc.get_server(server.name)
            if existing and not replace:
                raise McpzError(
                    f"Server '{server.name}' already exists",
                    hint=f"mcpz remove {server.name}",
                )
            doc.servers = [s for s in doc.servers if s.name != server.name] + [server]

        return self.update(apply)

    def remove_server(self, name: str) -> ConfigDocument:
        """Remove a server. Toolboxes keep the dangling member name."""

        def apply(doc: ConfigDocument) -> None:
            if not doc.get_server(name):
                raise McpzError(f"Server '{name}' not found", hint="mcpz list")
            doc.servers = [s for s in doc.servers if s.name != name]

        return self.update(apply)

    def add_toolbox(self, name: str, servers: List[str]) -> ConfigDocument:
        def apply(doc: ConfigDocument) -> None:
            doc.toolboxes[name] = list(dict.fromkeys(servers))

        return self.update(apply)

    def remove_toolbox(self, name: str) -> ConfigDocument:
        def apply(doc: ConfigDocument) -> None:
            if name not in doc.toolboxes:
                raise McpzError(f"Toolbox '{name}' not found", hint="mcpz toolbox list")
            del doc.toolboxes[name]

        return self.update(apply)

    def set_plugin_enabled(self, plugin_id: str, enabled: bool) -> ConfigDocument:
        def apply(doc: ConfigDocument) -> None:
            record = doc.plugins.get(plugin_id)
            if record is None:
                raise McpzError(f"Plugin '{plugin_id}' is not known", hint="mcpz plugin sync")
            doc.plugins[plugin_id] = record.model_copy(update={"enabled": enabled})

        return self.update(apply)

    def set_skill_enabled(self, skill_id: str, enabled: bool) -> ConfigDocument:
        def apply(doc: ConfigDocument) -> None:
            record = doc.skills.get(skill_id)
            if record is None:
                raise McpzError(f"Skill '{skill_id}' is not known", hint="mcpz skill sync")
            doc.skills[skill_id] = record.model_copy(update={"enabled": enabled})

        return self.update(apply)

    def set_plugin_record(self, plugin_id: str, record: Optional[PluginRecord]) -> ConfigDocument:
        """Create/replace a plugin record, or drop it when ``record`` is None."""

        def apply(doc: ConfigDocument) -> None:
            if record is None:
                doc.plugins.pop(plugin_id, None)
            else:
                doc.plugins[plugin_id] = record

        return self.update(apply)

    def set_skill_record(self, skill_id: str, record: Optional[SkillRecord]) -> ConfigDocument:
        def apply(doc: ConfigDocument) -> None:
            if record is None:
                doc.skills.pop(skill_id, None)
            else:
                doc.skills[skill_id] = record

        return self.update(apply)
