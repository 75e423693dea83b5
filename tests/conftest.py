# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pytest fixtures for mcpz.

Every test runs against a private MCPZ_HOME under tmp_path. Process and
session fakes let the instance manager run without spawning anything.
"""

import asyncio
import itertools
import json
from typing import Any, Dict, List, Optional

import pytest
from mcp import types

from mcpz.errors import RemoteError, SpawnFailed
from mcpz.instances import InstanceManager, InstanceRegistry, ProcessState
from mcpz.models import ConfigDocument, ServerSpec
from mcpz.protocol.dialects import Dialect
from mcpz.settings import reset_settings


@pytest.fixture(autouse=True)
def mcpz_home(tmp_path, monkeypatch):
    """Point MCPZ_HOME at a fresh temp directory."""
    home = tmp_path / "mcpz-home"
    monkeypatch.setenv("MCPZ_HOME", str(home))
    monkeypatch.delenv("MCPZ_CONFIG", raising=False)
    monkeypatch.delenv("MCPZ_DEBUG", raising=False)
    reset_settings()
    yield home
    reset_settings()


def write_config(home, data: Dict[str, Any]):
    """Write a raw config document into ``home``; returns its path."""
    home.mkdir(parents=True, exist_ok=True)
    path = home / "config.json"
    path.write_text(json.dumps(data))
    path.chmod(0o600)
    return path


@pytest.fixture
def sample_config() -> ConfigDocument:
    return ConfigDocument(
        servers=[
            ServerSpec(name="a", command="srv-a"),
            ServerSpec(name="b", command="srv-b"),
            ServerSpec(name="c", command="srv-c"),
            ServerSpec(name="off", command="srv-off", enabled=False),
        ],
        toolboxes={"t": ["b", "a"], "all": ["a", "b", "c"]},
    )


# Process fakes


_pids = itertools.count(40000)


class FakeProcess:
    """Stands in for asyncio.subprocess.Process."""

    def __init__(self, pid: Optional[int] = None, ignore_term: bool = False):
        self.pid = pid if pid is not None else next(_pids)
        self.returncode: Optional[int] = None
        self.stdin = None
        self.stdout = None
        self.ignore_term = ignore_term
        self.signals: List[str] = []
        self._exited = asyncio.Event()

    def exit(self, code: int = 0) -> None:
        if self.returncode is None:
            self.returncode = code
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def terminate(self) -> None:
        self.signals.append("TERM")
        if not self.ignore_term:
            self.exit(-15)

    def kill(self) -> None:
        self.signals.append("KILL")
        self.exit(-9)


class FakeLauncher:
    """Spawns FakeProcess objects; commands listed in ``fail`` raise SpawnFailed."""

    def __init__(self, fail=(), delay: float = 0.0, ignore_term=()):
        self.fail = set(fail)
        self.delay = delay
        self.ignore_term = set(ignore_term)
        self.spawned: Dict[str, FakeProcess] = {}
        self.order: List[str] = []

    async def spawn(self, spec: ServerSpec) -> FakeProcess:
        self.order.append(spec.name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if spec.command in self.fail:
            raise SpawnFailed(spec.name, f"command not found: {spec.command}")
        process = FakeProcess(ignore_term=spec.name in self.ignore_term)
        self.spawned[spec.name] = process
        return process


class FakeSession:
    """A connected child that answers initialize/tools/list from memory."""

    def __init__(
        self,
        tools: Optional[List[Dict[str, Any]]] = None,
        dialect: Dialect = Dialect.CURRENT,
        fail_initialize: int = 0,
        ping_ok: bool = True,
        call_delay: float = 0.0,
    ):
        self.tools = tools if tools is not None else []
        self.dialect = dialect
        self.fail_initialize = fail_initialize
        self.ping_ok = ping_ok
        self.call_delay = call_delay
        self.initialize_calls = 0
        self.calls: List[tuple] = []
        self.closed = False

    async def initialize(self, timeout: Optional[float] = None):
        self.initialize_calls += 1
        if self.initialize_calls <= self.fail_initialize:
            raise asyncio.TimeoutError()
        return None

    async def list_tools(self, timeout: Optional[float] = None):
        return [dict(t) for t in self.tools]

    async def call_tool(self, name, arguments=None, timeout=None) -> types.CallToolResult:
        self.calls.append((name, arguments))
        if self.call_delay:
            await asyncio.wait_for(asyncio.sleep(self.call_delay), timeout)
        if name == "boom":
            return types.CallToolResult(content=[types.TextContent(type="text", text="it broke")], isError=True)
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=f"{name}:{json.dumps(arguments, sort_keys=True)}")]
        )

    async def ping(self, timeout: Optional[float] = None) -> None:
        if not self.ping_ok:
            raise RemoteError(-32603, "not answering")

    async def close(self) -> None:
        self.closed = True


class FakeConnector:
    """Hands out a FakeSession per server; ``sessions`` maps server name to a prepared one."""

    def __init__(self, sessions: Optional[Dict[str, FakeSession]] = None, tools=None):
        self.sessions = dict(sessions or {})
        self.default_tools = tools if tools is not None else [
            {"name": "echo", "description": "Echo input", "inputSchema": {"type": "object", "properties": {}}}
        ]
        self.connected: Dict[str, FakeSession] = {}

    async def connect(self, process, spec: ServerSpec) -> FakeSession:
        session = self.sessions.get(spec.name) or FakeSession(tools=self.default_tools)
        self.connected[spec.name] = session
        return session


class FakeProcessTable:
    """Process table driven by a dict of pid -> (state, parent pid)."""

    def __init__(self):
        self.processes: Dict[int, tuple] = {}
        self.signals: List[tuple] = []
        self.exit_on_signal = True

    def add(self, pid: int, parent: Optional[int] = None, state: ProcessState = ProcessState.ALIVE):
        self.processes[pid] = (state, parent)

    def probe(self, pid: int) -> ProcessState:
        state, _ = self.processes.get(pid, (ProcessState.GONE, None))
        return state

    def parent_pid(self, pid: int) -> Optional[int]:
        _, parent = self.processes.get(pid, (ProcessState.GONE, None))
        return parent

    def signal(self, pid: int, force: bool = False) -> bool:
        self.signals.append((pid, force))
        if pid not in self.processes:
            return False
        if self.exit_on_signal:
            del self.processes[pid]
        return True


@pytest.fixture
def registry(mcpz_home) -> InstanceRegistry:
    return InstanceRegistry(mcpz_home / "instances", lock_timeout=0.5)


@pytest.fixture
def process_table() -> FakeProcessTable:
    return FakeProcessTable()


@pytest.fixture
def make_manager(registry, process_table):
    """Build an InstanceManager wired to fakes; keyword args override them."""

    def factory(**kwargs) -> InstanceManager:
        options = dict(
            registry=registry,
            process_table=process_table,
            launcher=FakeLauncher(),
            connector=FakeConnector(),
            handshake_timeout=0.5,
            stop_timeout=0.2,
            max_parallel=4,
            handshake_retries=2,
            retry_backoff=0.0,
            probe_retries=2,
        )
        options.update(kwargs)
        return InstanceManager(**options)

    return factory
