# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for config document migrations."""

import copy

import pytest

from mcpz.migrations import get_all_migrations, get_migration
from mcpz.migrations.base import declared_version
from mcpz.migrations.runner import MigrationError, MigrationRunner, migrate_document
from mcpz.models import CURRENT_CONFIG_VERSION, ConfigDocument

V1_DOC = {
    "servers": [
        {"name": "files", "command": "npx", "args": ["-y", "server-files"]},
        {"id": "web", "command": "uvx", "disabled": True, "description": "legacy key"},
    ],
    "groups": {"dev": ["files", "web"]},
}


class TestDeclaredVersion:
    def test_missing_version_is_one(self):
        assert declared_version({"servers": []}) == 1

    def test_explicit_version(self):
        assert declared_version({"configVersion": 2}) == 2

    @pytest.mark.parametrize("value", [0, -1, "3", True, 1.5])
    def test_invalid_version_rejected(self, value):
        with pytest.raises(ValueError):
            declared_version({"configVersion": value})


class TestMigrationChain:
    def test_migrations_are_ordered_and_contiguous(self):
        migrations = get_all_migrations()
        assert [m.from_version for m in migrations] == list(range(1, CURRENT_CONFIG_VERSION))
        for m in migrations:
            assert m.to_version == m.from_version + 1

    def test_get_migration_by_id(self):
        assert get_migration("groups-to-toolboxes").to_version == 2
        with pytest.raises(KeyError):
            get_migration("nope")

    def test_v1_document_reaches_current_version(self):
        migrated = migrate_document(V1_DOC)

        assert migrated["configVersion"] == CURRENT_CONFIG_VERSION
        assert "groups" not in migrated
        assert migrated["toolboxes"] == {"dev": ["files", "web"]}
        assert migrated["plugins"] == {}
        assert migrated["skills"] == {}

    def test_legacy_server_entries_are_normalized(self):
        migrated = migrate_document(V1_DOC)
        files, web = migrated["servers"]

        assert files == {
            "name": "files",
            "command": "npx",
            "args": ["-y", "server-files"],
            "env": {},
            "origin": "builtin",
            "enabled": True,
        }
        assert web["name"] == "web"
        assert web["enabled"] is False
        assert "description" not in web
        assert "id" not in web

    def test_migration_does_not_mutate_input(self):
        original = copy.deepcopy(V1_DOC)
        migrate_document(V1_DOC)
        assert V1_DOC == original

    def test_migration_is_idempotent(self):
        once = migrate_document(V1_DOC)
        twice = migrate_document(once)
        assert once == twice

    def test_each_step_is_idempotent(self):
        for migration in get_all_migrations():
            doc = {"configVersion": migration.from_version, "servers": [], "toolboxes": {}}
            if migration.from_version == 1:
                doc = {"servers": [], "groups": {"g": []}}
            once = migration.migrate(doc)
            assert migration.migrate(once) == once

    def test_toolboxes_win_over_groups(self):
        doc = {"servers": [], "groups": {"old": []}, "toolboxes": {"new": []}}
        migrated = migrate_document(doc)
        assert migrated["toolboxes"] == {"new": []}

    def test_current_document_passes_through(self):
        doc = ConfigDocument().to_dict()
        runner = MigrationRunner(doc)
        assert not runner.needs_migration()
        assert runner.run() == doc
        assert runner.results == []

    def test_results_describe_changes(self):
        runner = MigrationRunner(V1_DOC)
        runner.run()

        assert [r.migration_id for r in runner.results] == ["groups-to-toolboxes", "capability-records"]
        assert all(r.applied for r in runner.results)
        assert any("Renamed 'groups'" in c for c in runner.results[0].changes_made)
        assert any("description" in c for c in runner.results[1].changes_made)


class TestMigrationErrors:
    def test_future_version_rejected(self):
        with pytest.raises(MigrationError, match="newer"):
            migrate_document({"configVersion": CURRENT_CONFIG_VERSION + 1})

    def test_invalid_version_rejected(self):
        with pytest.raises(MigrationError):
            migrate_document({"configVersion": "two"})

    def test_legacy_server_without_name_rejected(self):
        with pytest.raises(MigrationError, match="configVersion 1"):
            migrate_document({"servers": [{"command": "x"}]})

    def test_v2_document_must_be_well_formed(self):
        with pytest.raises(MigrationError):
            migrate_document({"configVersion": 2, "servers": "not-a-list"})

    def test_invalid_current_document_rejected(self):
        doc = {
            "configVersion": CURRENT_CONFIG_VERSION,
            "servers": [{"name": "a"}, {"name": "a"}],
        }
        with pytest.raises(MigrationError):
            migrate_document(doc)
