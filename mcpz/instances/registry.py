# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Durable instance registry: one JSON file per instance under ~/.mcpz/instances.

Records survive the controller, so a later ``mcpz`` invocation can find and
reconcile instances it did not start. Every write is atomic and happens under
the registry lock.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from mcpz.errors import InvalidTransition, NotFound
from mcpz.models.instance import InstanceRecord, InstanceStatus
from mcpz.paths import HostPaths
from mcpz.utils.atomic import atomic_write_json
from mcpz.utils.locking import FileLock

logger = logging.getLogger(__name__)


class InstanceRegistry:
    def __init__(self, directory: Optional[Path] = None, lock_timeout: float = 5.0):
        self.directory = Path(directory) if directory else HostPaths.instances_dir()
        self.lock = FileLock(self.directory / ".lock", timeout=lock_timeout)

    def _path(self, instance_id: str) -> Path:
        if "/" in instance_id or instance_id.startswith("."):
            raise NotFound(instance_id)
        return self.directory / f"{instance_id}.json"

    def _read(self, path: Path) -> Optional[InstanceRecord]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return InstanceRecord.model_validate(data)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Skipping corrupt instance record {path.name}: {e}")
            return None

    def list(self) -> List[InstanceRecord]:
        """All readable records, oldest first. Corrupt files are skipped."""
        if not self.directory.is_dir():
            return []
        records = [r for r in (self._read(p) for p in self.directory.glob("*.json")) if r]
        return sorted(records, key=lambda r: (r.start_time, r.id))

    def get(self, instance_id: str) -> InstanceRecord:
        record = self._read(self._path(instance_id))
        if record is None:
            raise NotFound(instance_id)
        return record

    def create(self, record: InstanceRecord) -> InstanceRecord:
        with self.lock:
            atomic_write_json(self._path(record.id), record.to_dict())
        logger.debug(f"Registered instance {record.id} (pid {record.pid}, {record.status.value})")
        return record

    def transition(self, instance_id: str, status: InstanceStatus) -> InstanceRecord:
        """Move a record to ``status``, enforcing the lifecycle state machine.

        Re-applying the current status is a no-op.

        Raises:
            NotFound: no such record
            InvalidTransition: the move is not allowed from the current status
        """
        with self.lock:
            record = self.get(instance_id)
            if record.status == status:
                return record
            if not record.can_move_to(status):
                raise InvalidTransition(instance_id, record.status.value, status.value)
            updated = record.model_copy(update={"status": status})
            atomic_write_json(self._path(instance_id), updated.to_dict())
        logger.debug(f"Instance {instance_id}: {record.status.value} -> {status.value}")
        return updated

    def purge(self, instance_id: str) -> bool:
        """Delete a record. Returns False when it was already gone."""
        with self.lock:
            try:
                self._path(instance_id).unlink()
            except FileNotFoundError:
                return False
        logger.debug(f"Purged instance {instance_id}")
        return True
