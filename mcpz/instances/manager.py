# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Start, supervise and tear down one process per resolved server.

Lifecycle of an instance record:

    starting --handshake ok--> running --process exit--> exited
        |                         |
        +--exit before handshake--+--> exited
                                  +--health probe fails--> unreachable --> exited

Every transition is persisted through the InstanceRegistry, so a later
controller can reconcile instances it never started. ``reconcile()`` only
deletes records whose process is verifiably gone; anything it cannot confirm
is left as ``unreachable``.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from mcpz.errors import (
    HandshakeFailed,
    InstanceError,
    InvalidTransition,
    McpzError,
    NotFound,
    PortInUse,
    ProtocolAdapterError,
    StopTimeout,
)
from mcpz.instances.process import (
    Connector,
    OsProcessTable,
    ProcessLauncher,
    ProcessState,
    ProcessTable,
    Session,
    SpawnedProcess,
    StdioConnector,
    SubprocessLauncher,
    port_available,
)
from mcpz.instances.registry import InstanceRegistry
from mcpz.models.config import ServerSpec
from mcpz.models.instance import InstanceRecord, InstanceStatus, new_instance_id
from mcpz.resolver import ResolvedRunPlan

logger = logging.getLogger(__name__)


@dataclass
class LaunchedInstance:
    """A locally started instance with its live session."""

    record: InstanceRecord
    spec: ServerSpec
    process: SpawnedProcess
    session: Session
    tools: List[Dict[str, Any]] = field(default_factory=list)
    watcher: Optional[asyncio.Task] = None

    @property
    def id(self) -> str:
        return self.record.id


@dataclass
class LaunchFailure:
    server_name: str
    error: McpzError

    def __str__(self) -> str:
        return str(self.error)


@dataclass
class RunHandle:
    """Result of ``launch()``: what started, what did not."""

    manager: "InstanceManager"
    plan: ResolvedRunPlan
    instances: List[LaunchedInstance] = field(default_factory=list)
    failures: List[LaunchFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.instances) and not self.failures

    @property
    def partial(self) -> bool:
        return bool(self.instances) and bool(self.failures)

    async def close(self) -> List[McpzError]:
        """Stop every launched instance. Returns the errors of those that would not stop."""
        errors: List[McpzError] = []
        for instance in self.instances:
            try:
                await self.manager.stop(instance.id)
            except NotFound:
                pass
            except InstanceError as e:
                logger.warning(str(e))
                errors.append(e)
        return errors


class InstanceManager:
    """Stateless apart from the instances it launched in this process.

    Every collaborator is injectable; defaults are the real OS implementations.
    """

    def __init__(
        self,
        registry: Optional[InstanceRegistry] = None,
        process_table: Optional[ProcessTable] = None,
        launcher: Optional[ProcessLauncher] = None,
        connector: Optional[Connector] = None,
        handshake_timeout: float = 10.0,
        stop_timeout: float = 5.0,
        max_parallel: int = 4,
        handshake_retries: int = 3,
        retry_backoff: float = 0.5,
        probe_retries: int = 2,
        call_timeout: Optional[float] = 60.0,
    ):
        self.registry = registry or InstanceRegistry()
        self.process_table = process_table or OsProcessTable()
        self.launcher = launcher or SubprocessLauncher()
        self.connector = connector or StdioConnector()
        self.handshake_timeout = handshake_timeout
        self.stop_timeout = stop_timeout
        self.max_parallel = max(1, max_parallel)
        self.handshake_retries = max(1, handshake_retries)
        self.retry_backoff = retry_backoff
        self.probe_retries = max(1, probe_retries)
        self.call_timeout = call_timeout
        self._local: Dict[str, LaunchedInstance] = {}

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "InstanceManager":
        return cls(
            registry=kwargs.pop("registry", None) or InstanceRegistry(lock_timeout=settings.timeouts.lock_wait),
            handshake_timeout=settings.timeouts.handshake,
            stop_timeout=settings.timeouts.stop,
            max_parallel=settings.launch.max_parallel,
            handshake_retries=settings.launch.handshake_retries,
            retry_backoff=settings.launch.retry_backoff,
            probe_retries=settings.health.probe_retries,
            call_timeout=settings.timeouts.tool_call,
            **kwargs,
        )

    # Launch

    async def launch(self, plan: ResolvedRunPlan) -> RunHandle:
        """Start every server of ``plan`` with bounded parallelism.

        Per-server spawn/handshake failures are collected in the handle while
        the other servers keep running. Anything else (e.g. the registry
        cannot be written) aborts the launch: the remaining tasks are
        cancelled and everything already spawned is torn down. Cancelling the
        launch tears down in the same way.
        """
        handle = RunHandle(manager=self, plan=plan)
        if not plan.servers:
            return handle

        semaphore = asyncio.Semaphore(self.max_parallel)
        spawned: Dict[str, LaunchedInstance] = {}
        pending: Dict[str, SpawnedProcess] = {}

        # Tasks are created in resolution order; completion order is free
        tasks = [
            asyncio.create_task(self._launch_one(spec, semaphore, pending, spawned), name=f"launch-{spec.name}")
            for spec in plan.servers
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            fatal = next((t.exception() for t in done if not t.cancelled() and t.exception()), None)
            if fatal is not None:
                raise fatal
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self._teardown(spawned, pending)
            raise

        for task in tasks:
            result = task.result()
            if isinstance(result, LaunchFailure):
                handle.failures.append(result)
            else:
                handle.instances.append(result)
        if handle.failures:
            logger.warning(
                f"Started {len(handle.instances)} of {len(plan.servers)} servers; failed: "
                + ", ".join(f.server_name for f in handle.failures)
            )
        return handle

    async def _launch_one(
        self,
        spec: ServerSpec,
        semaphore: asyncio.Semaphore,
        pending: Dict[str, SpawnedProcess],
        spawned: Dict[str, LaunchedInstance],
    ):
        async with semaphore:
            try:
                return await self._start(spec, pending, spawned)
            except (InstanceError, ProtocolAdapterError) as e:
                logger.warning(str(e))
                return LaunchFailure(spec.name, e)

    async def _start(
        self,
        spec: ServerSpec,
        pending: Dict[str, SpawnedProcess],
        spawned: Dict[str, LaunchedInstance],
    ) -> LaunchedInstance:
        if spec.port is not None and not port_available(spec.port):
            raise PortInUse(spec.name, spec.port)

        process = await self.launcher.spawn(spec)
        instance_id = new_instance_id(spec.name)
        pending[instance_id] = process
        session: Optional[Session] = None
        try:
            record = InstanceRecord(
                id=instance_id,
                server_name=spec.name,
                pid=process.pid,
                owner_pid=os.getpid(),
                status=InstanceStatus.STARTING,
                command=spec.command,
                args=list(spec.args),
            )
            await self._in_executor(self.registry.create, record)
            session = await self.connector.connect(process, spec)
            try:
                await self._handshake(spec, process, session)
                tools = await session.list_tools(timeout=self.handshake_timeout)
            except (asyncio.TimeoutError, ProtocolAdapterError, ValidationError) as e:
                raise HandshakeFailed(spec.name, f"tools/list failed: {e or 'timed out'}") from e
            record = await self._in_executor(self.registry.transition, instance_id, InstanceStatus.RUNNING)
        except Exception:
            pending.pop(instance_id, None)
            await self._abandon(instance_id, process, session)
            raise

        instance = LaunchedInstance(record=record, spec=spec, process=process, session=session, tools=tools)
        instance.watcher = asyncio.create_task(self._watch_exit(instance), name=f"watch-{instance_id}")
        self._local[instance_id] = instance
        spawned[instance_id] = instance
        pending.pop(instance_id, None)
        logger.info(f"Started {spec.name} (pid {process.pid}, {len(tools)} tools)")
        return instance

    async def _handshake(self, spec: ServerSpec, process: SpawnedProcess, session: Session) -> None:
        """Initialize with bounded retries and exponential backoff."""
        last_error: Optional[BaseException] = None
        for attempt in range(self.handshake_retries):
            if process.returncode is not None:
                break
            try:
                await session.initialize(timeout=self.handshake_timeout)
                return
            except (asyncio.TimeoutError, ProtocolAdapterError, ValidationError) as e:
                last_error = e
                logger.debug(f"Handshake with {spec.name} failed (attempt {attempt + 1}): {e!r}")
            if attempt + 1 < self.handshake_retries:
                await asyncio.sleep(self.retry_backoff * (2**attempt))

        if process.returncode is not None:
            raise HandshakeFailed(spec.name, f"process exited with code {process.returncode} before handshake")
        reason = str(last_error) if last_error and str(last_error) else "timed out"
        raise HandshakeFailed(spec.name, f"handshake failed after {self.handshake_retries} attempt(s): {reason}")

    async def _in_executor(self, func, *args):
        """Run a blocking registry call off the event loop (it may wait on the file lock).

        On cancellation the call is allowed to finish first, so a record written
        by it is visible to the teardown that follows.
        """
        future = asyncio.get_running_loop().run_in_executor(None, func, *args)
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            await asyncio.wait({future})
            raise

    async def _abandon(self, instance_id: str, process: SpawnedProcess, session: Optional[Session]) -> None:
        """Kill a process that never became ready and drop its record, if one was written."""
        if session is not None:
            await session.close()
        await self._terminate(process, self.stop_timeout)
        await self._in_executor(self._forget, instance_id)

    def _forget(self, instance_id: str) -> None:
        try:
            self.registry.transition(instance_id, InstanceStatus.EXITED)
        except (NotFound, InvalidTransition):
            pass
        try:
            self.registry.purge(instance_id)
        except NotFound:
            pass

    async def _watch_exit(self, instance: LaunchedInstance) -> None:
        code = await instance.process.wait()
        try:
            await self._in_executor(self.registry.transition, instance.id, InstanceStatus.EXITED)
        except (NotFound, InvalidTransition):
            return
        logger.info(f"{instance.spec.name} exited with code {code}")

    async def _teardown(self, spawned: Dict[str, LaunchedInstance], pending: Dict[str, SpawnedProcess]) -> None:
        for instance in list(spawned.values()):
            if instance.watcher:
                instance.watcher.cancel()
            await instance.session.close()
            await self._terminate(instance.process, self.stop_timeout)
            await self._in_executor(self.registry.purge, instance.id)
            self._local.pop(instance.id, None)
        for instance_id, process in list(pending.items()):
            await self._terminate(process, self.stop_timeout)
            await self._in_executor(self._forget, instance_id)
        logger.info(f"Launch aborted; cleaned up {len(spawned) + len(pending)} process(es)")

    async def _terminate(self, process: SpawnedProcess, timeout: float, force: bool = False) -> bool:
        """SIGTERM, then SIGKILL after half the timeout. True once the process is gone."""
        if process.returncode is not None:
            return True
        try:
            if force:
                process.kill()
            else:
                process.terminate()
            await asyncio.wait_for(process.wait(), timeout / 2)
            return True
        except ProcessLookupError:
            return True
        except asyncio.TimeoutError:
            pass
        try:
            process.kill()
            await asyncio.wait_for(process.wait(), timeout / 2)
            return True
        except ProcessLookupError:
            return True
        except asyncio.TimeoutError:
            return False

    # Queries

    def list(self) -> List[InstanceRecord]:
        return self.registry.list()

    def get_local(self, instance_id: str) -> LaunchedInstance:
        instance = self._local.get(instance_id)
        if instance is None:
            raise NotFound(instance_id)
        return instance

    # Stop

    async def stop(self, instance_id: str, timeout: Optional[float] = None) -> None:
        """Terminate an instance and purge its record.

        Raises:
            NotFound: no record with this id
            StopTimeout: the process was still present after ``timeout``
        """
        timeout = self.stop_timeout if timeout is None else timeout
        record = self.registry.get(instance_id)
        force = record.status == InstanceStatus.UNREACHABLE

        local = self._local.get(instance_id)
        if local is not None:
            if local.watcher:
                local.watcher.cancel()
            await local.session.close()
            if not await self._terminate(local.process, timeout, force=force):
                raise StopTimeout(instance_id, timeout)
            self._local.pop(instance_id, None)
        else:
            await self._stop_foreign(record, timeout, force)

        await self._in_executor(self.registry.purge, instance_id)
        logger.info(f"Stopped {record.server_name} ({instance_id})")

    async def _stop_foreign(self, record: InstanceRecord, timeout: float, force: bool) -> None:
        table = self.process_table
        if table.probe(record.pid) == ProcessState.GONE:
            return

        parent = table.parent_pid(record.pid)
        owner_alive = table.probe(record.owner_pid) == ProcessState.ALIVE
        if owner_alive and parent is not None and parent != record.owner_pid:
            # pid was reused by an unrelated process; nothing of ours to stop
            logger.debug(f"pid {record.pid} of {record.id} now belongs to another process")
            return

        table.signal(record.pid, force=force)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        escalated = force
        delay = 0.05
        while table.probe(record.pid) != ProcessState.GONE:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise StopTimeout(record.id, timeout)
            if not escalated and remaining <= timeout / 2:
                table.signal(record.pid, force=True)
                escalated = True
            await asyncio.sleep(min(delay, remaining))
            delay = min(delay * 2, 0.5)

    # Reconciliation

    def reconcile(self) -> List[InstanceRecord]:
        """Sweep the registry against the process table. Idempotent.

        gone                                      -> purge
        alive, owner alive, parent == owner       -> keep
        alive, owner alive, parent != owner       -> purge (pid reused)
        alive, owner dead or parent unknown       -> unreachable
        unknown                                   -> unreachable

        Returns the surviving records.
        """
        table = self.process_table
        for record in self.registry.list():
            state = table.probe(record.pid)
            if state == ProcessState.GONE:
                self._purge_quietly(record, "process is gone")
                continue

            if state == ProcessState.ALIVE:
                owner_alive = table.probe(record.owner_pid) == ProcessState.ALIVE
                parent = table.parent_pid(record.pid)
                if owner_alive and parent is not None:
                    if parent != record.owner_pid:
                        self._purge_quietly(record, f"pid {record.pid} was reused")
                    continue

            self._mark_unreachable(record)

        return self.registry.list()

    def _purge_quietly(self, record: InstanceRecord, reason: str) -> None:
        if self.registry.purge(record.id):
            logger.info(f"Removed stale instance {record.id}: {reason}")
        self._local.pop(record.id, None)

    def _mark_unreachable(self, record: InstanceRecord) -> None:
        try:
            self.registry.transition(record.id, InstanceStatus.UNREACHABLE)
        except InvalidTransition:
            # exited records cannot go back; leave them for cleanup()
            pass
        except NotFound:
            pass

    def cleanup(self) -> List[str]:
        """``reconcile()`` plus removal of ``exited`` records. Returns purged ids."""
        before = {r.id for r in self.registry.list()}
        survivors = self.reconcile()
        for record in survivors:
            if record.status == InstanceStatus.EXITED:
                self.registry.purge(record.id)
        remaining = {r.id for r in self.registry.list()}
        return sorted(before - remaining)

    # Health

    async def probe_health(self, instance_id: str) -> InstanceStatus:
        """Ping a locally launched instance with bounded retries.

        Returns the (possibly new) status: ``running`` when it answers,
        ``exited`` when the process is gone, ``unreachable`` otherwise.
        """
        instance = self.get_local(instance_id)
        for attempt in range(self.probe_retries):
            try:
                await instance.session.ping(timeout=self.handshake_timeout)
                return self.registry.get(instance_id).status
            except (asyncio.TimeoutError, ProtocolAdapterError) as e:
                logger.debug(f"Ping {instance_id} failed (attempt {attempt + 1}): {e!r}")
            if attempt + 1 < self.probe_retries:
                await asyncio.sleep(self.retry_backoff * (2**attempt))

        gone = (
            instance.process.returncode is not None
            or self.process_table.probe(instance.process.pid) == ProcessState.GONE
        )
        target = InstanceStatus.EXITED if gone else InstanceStatus.UNREACHABLE
        try:
            record = await self._in_executor(self.registry.transition, instance_id, target)
            return record.status
        except InvalidTransition:
            return self.registry.get(instance_id).status
