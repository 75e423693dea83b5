# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for the config store: load, migrate, validate, save, lock."""

import json
import stat
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from mcpz.config_store import ConfigStore
from mcpz.errors import ConfigCorrupt, ConfigUnreadable, ConfigWriteFailed, McpzError, StoreLocked
from mcpz.models import CURRENT_CONFIG_VERSION, ConfigDocument, ServerSpec
from mcpz.paths import HostPaths
from mcpz.utils.locking import FileLock
from tests.conftest import write_config


@pytest.fixture
def store(mcpz_home) -> ConfigStore:
    return ConfigStore(lock_timeout=0.5)


class TestLoad:
    def test_missing_file_is_empty_current_document(self, store):
        config = store.load()
        assert config.config_version == CURRENT_CONFIG_VERSION
        assert config.servers == []
        assert config.toolboxes == {}

    def test_default_path_follows_home(self, store, mcpz_home):
        assert store.path == mcpz_home / "config.json"
        assert store.path == HostPaths.config_file()

    def test_config_env_overrides_path(self, tmp_path, monkeypatch):
        custom = tmp_path / "elsewhere.json"
        monkeypatch.setenv("MCPZ_CONFIG", str(custom))
        assert ConfigStore().path == custom

    def test_legacy_document_is_migrated_in_memory(self, store, mcpz_home):
        path = write_config(mcpz_home, {"servers": [{"name": "a", "command": "x"}], "groups": {"g": ["a"]}})

        config = store.load()

        assert config.toolboxes == {"g": ["a"]}
        assert config.get_server("a").origin == "builtin"
        # Not persisted until the next save
        assert "groups" in json.loads(path.read_text())

    def test_next_save_persists_migration(self, store, mcpz_home):
        path = write_config(mcpz_home, {"servers": [], "groups": {"g": []}})

        store.save(store.load())

        on_disk = json.loads(path.read_text())
        assert on_disk["configVersion"] == CURRENT_CONFIG_VERSION
        assert "groups" not in on_disk
        assert on_disk["toolboxes"] == {"g": []}

    def test_invalid_json_is_corrupt(self, store, mcpz_home):
        mcpz_home.mkdir(parents=True)
        store.path.write_text("{not json")
        with pytest.raises(ConfigCorrupt, match="invalid JSON"):
            store.load()

    def test_non_object_is_corrupt(self, store, mcpz_home):
        write_config(mcpz_home, [])
        with pytest.raises(ConfigCorrupt, match="JSON object"):
            store.load()

    def test_future_version_is_corrupt(self, store, mcpz_home):
        write_config(mcpz_home, {"configVersion": CURRENT_CONFIG_VERSION + 1})
        with pytest.raises(ConfigCorrupt, match="newer"):
            store.load()

    def test_corrupt_file_is_left_untouched(self, store, mcpz_home):
        mcpz_home.mkdir(parents=True)
        store.path.write_text("[1, 2")
        with pytest.raises(ConfigCorrupt):
            store.load()
        assert store.path.read_text() == "[1, 2"

    def test_unreadable_file(self, store, mcpz_home):
        write_config(mcpz_home, {})
        with patch.object(Path, "read_text", side_effect=PermissionError(13, "Permission denied")):
            with pytest.raises(ConfigUnreadable):
                store.load()

    def test_group_writable_file_warns(self, store, mcpz_home, caplog):
        path = write_config(mcpz_home, {"configVersion": CURRENT_CONFIG_VERSION})
        path.chmod(0o664)

        with caplog.at_level("WARNING", logger="mcpz.config_store"):
            store.load()

        assert "writable by other users" in caplog.text

    def test_groups_key_accepted_at_current_version(self, store, mcpz_home):
        write_config(mcpz_home, {"configVersion": CURRENT_CONFIG_VERSION, "groups": {"g": ["a", "a", "b"]}})
        config = store.load()
        assert config.toolboxes == {"g": ["a", "b"]}
        assert "groups" not in config.to_dict()

    @pytest.mark.parametrize("name", ["acme/files", ".hidden", "..", "back\\slash"])
    def test_path_like_server_name_is_corrupt(self, store, mcpz_home, name):
        write_config(
            mcpz_home,
            {"configVersion": CURRENT_CONFIG_VERSION, "servers": [{"name": name, "command": "c"}]},
        )
        with pytest.raises(ConfigCorrupt):
            store.load()


class TestSave:
    def test_round_trip(self, store, sample_config):
        store.save(sample_config)
        assert store.load() == sample_config

    def test_file_mode_is_private(self, store, sample_config):
        store.save(sample_config)
        assert stat.S_IMODE(store.path.stat().st_mode) == 0o600

    def test_written_keys_are_camel_case(self, store, sample_config):
        store.save(sample_config)
        on_disk = json.loads(store.path.read_text())
        assert on_disk["configVersion"] == CURRENT_CONFIG_VERSION
        assert set(on_disk) == {"configVersion", "servers", "toolboxes", "plugins", "skills"}

    def test_invalid_document_is_refused(self, store, sample_config):
        store.save(sample_config)
        before = store.path.read_text()
        broken = sample_config.model_copy(deep=True)
        broken.servers.append(ServerSpec(name="a", command="dup"))

        with pytest.raises(ConfigWriteFailed):
            store.save(broken)
        assert store.path.read_text() == before

    def test_old_version_is_refused(self, store):
        with pytest.raises(ConfigWriteFailed, match="configVersion"):
            store.save(ConfigDocument(config_version=2))

    def test_write_failure_keeps_previous_file(self, store, sample_config):
        store.save(sample_config)
        before = store.path.read_text()

        with patch("mcpz.config_store.atomic_write_json", side_effect=OSError(28, "No space left on device")):
            with pytest.raises(ConfigWriteFailed, match="No space left"):
                store.save(ConfigDocument())
        assert store.path.read_text() == before

    def test_no_temp_files_left_behind(self, store, sample_config, mcpz_home):
        store.save(sample_config)
        store.save(sample_config)
        leftovers = [p.name for p in mcpz_home.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []


class TestLocking:
    def test_save_waits_then_fails_when_locked(self, store, sample_config):
        holder = FileLock(store.lock.path, timeout=1.0)
        with holder:
            with pytest.raises(StoreLocked) as excinfo:
                store.save(sample_config)
        assert excinfo.value.retryable
        assert not store.path.exists()

    def test_lock_released_after_save(self, store, sample_config):
        store.save(sample_config)
        assert not store.lock.held
        with FileLock(store.lock.path, timeout=0.1):
            pass

    def test_lock_is_reentrant(self, store):
        with store.lock:
            with store.lock:
                assert store.lock.held
            assert store.lock.held
        assert not store.lock.held

    def test_other_threads_do_not_share_the_hold(self, store):
        results = []

        def contend():
            try:
                with store.lock:
                    results.append("acquired")
            except StoreLocked:
                results.append("locked")

        with store.lock:
            worker = threading.Thread(target=contend)
            worker.start()
            worker.join()
        worker = threading.Thread(target=contend)
        worker.start()
        worker.join()

        assert results == ["locked", "acquired"]
        assert not store.lock.held

    def test_concurrent_updates_lose_nothing(self, mcpz_home):
        errors = []

        def add_many(prefix):
            store = ConfigStore(lock_timeout=10.0)
            try:
                for i in range(10):
                    store.add_server(ServerSpec(name=f"{prefix}{i}", command="x"))
            except Exception as e:  # pragma: no cover - reported below
                errors.append(e)

        threads = [threading.Thread(target=add_many, args=(p,)) for p in ("x", "y")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        names = {s.name for s in ConfigStore().load().servers}
        assert names == {f"{p}{i}" for p in ("x", "y") for i in range(10)}


class TestOperations:
    def test_add_server(self, store):
        store.add_server(ServerSpec(name="a", command="srv", args=["--flag"], env={"K": "V"}))
        server = store.load().get_server("a")
        assert server.args == ["--flag"]
        assert server.env == {"K": "V"}

    def test_add_duplicate_server_fails(self, store):
        store.add_server(ServerSpec(name="a", command="one"))
        with pytest.raises(McpzError, match="already exists"):
            store.add_server(ServerSpec(name="a", command="two"))
        assert store.load().get_server("a").command == "one"

    def test_replace_server(self, store):
        store.add_server(ServerSpec(name="a", command="one"))
        store.add_server(ServerSpec(name="a", command="two"), replace=True)
        config = store.load()
        assert len(config.servers) == 1
        assert config.get_server("a").command == "two"

    def test_remove_server_keeps_toolbox_member(self, store, sample_config):
        store.save(sample_config)
        store.remove_server("a")
        config = store.load()
        assert config.get_server("a") is None
        assert config.toolboxes["t"] == ["b", "a"]

    def test_remove_missing_server(self, store):
        with pytest.raises(McpzError, match="not found"):
            store.remove_server("ghost")

    def test_toolbox_members_deduplicated_in_order(self, store):
        store.add_toolbox("t", ["b", "a", "b"])
        assert store.load().toolboxes["t"] == ["b", "a"]

    def test_remove_toolbox(self, store):
        store.add_toolbox("t", ["a"])
        store.remove_toolbox("t")
        assert store.load().toolboxes == {}
        with pytest.raises(McpzError):
            store.remove_toolbox("t")

    def test_update_failure_leaves_file_unchanged(self, store, sample_config):
        store.save(sample_config)
        before = store.path.read_text()

        def explode(doc):
            doc.servers.clear()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.update(explode)
        assert store.path.read_text() == before

    def test_unknown_plugin_cannot_be_enabled(self, store):
        with pytest.raises(McpzError, match="not known"):
            store.set_plugin_enabled("ghost", True)


class TestMigrateFile:
    def test_dry_run_reports_without_writing(self, store, mcpz_home):
        path = write_config(mcpz_home, {"servers": [], "groups": {}})
        results, document = store.migrate_file(dry_run=True)

        assert [r.migration_id for r in results] == ["groups-to-toolboxes", "capability-records"]
        assert document.config_version == CURRENT_CONFIG_VERSION
        assert "configVersion" not in json.loads(path.read_text())

    def test_migrate_writes_current_version(self, store, mcpz_home):
        path = write_config(mcpz_home, {"servers": [], "groups": {}})
        store.migrate_file()
        assert json.loads(path.read_text())["configVersion"] == CURRENT_CONFIG_VERSION

        results, _ = store.migrate_file()
        assert results == []

    def test_missing_file(self, store):
        assert store.migrate_file() == ([], None)

    def test_migrate_is_pure(self, store):
        raw = {"servers": [{"name": "a"}]}
        first = store.migrate(raw)
        second = store.migrate(first)
        assert first == second
        assert raw == {"servers": [{"name": "a"}]}
