# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""OS seams of the instance manager: process table, launcher, connector.

Each seam is a small protocol with one real implementation here, so the
manager's state machine can be driven in tests by fakes instead of real
processes.
"""

import asyncio
import logging
import os
import signal
import socket
from enum import Enum
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Protocol

from mcp import types

from mcpz.errors import SpawnFailed
from mcpz.models.config import ServerSpec
from mcpz.paths import HostPaths
from mcpz.protocol.dialects import Dialect
from mcpz.protocol.session import StdioSession

logger = logging.getLogger(__name__)

# Children may send large tools/list replies on a single line
STREAM_LIMIT = 2**22


class ProcessState(str, Enum):
    ALIVE = "alive"
    GONE = "gone"
    UNKNOWN = "unknown"


class ProcessTable(Protocol):
    def probe(self, pid: int) -> ProcessState: ...

    def parent_pid(self, pid: int) -> Optional[int]: ...

    def signal(self, pid: int, force: bool = False) -> bool: ...


class OsProcessTable:
    """Process table backed by ``kill(pid, 0)`` and ``/proc``."""

    def __init__(self, proc_root: Path = Path("/proc")):
        self.proc_root = proc_root

    def _stat_fields(self, pid: int) -> Optional[List[str]]:
        try:
            raw = (self.proc_root / str(pid) / "stat").read_text()
        except OSError:
            return None
        # comm may contain spaces and parentheses; fields resume after the last ')'
        close = raw.rfind(")")
        if close == -1:
            return None
        return raw[close + 2:].split()

    def probe(self, pid: int) -> ProcessState:
        if pid <= 0:
            return ProcessState.UNKNOWN
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return ProcessState.GONE
        except PermissionError:
            # Exists, but belongs to someone else
            pass
        except OSError:
            return ProcessState.UNKNOWN

        fields = self._stat_fields(pid)
        if fields and fields[0] in ("Z", "X"):
            return ProcessState.GONE
        return ProcessState.ALIVE

    def parent_pid(self, pid: int) -> Optional[int]:
        fields = self._stat_fields(pid)
        if not fields or len(fields) < 2:
            return None
        try:
            return int(fields[1])
        except ValueError:
            return None

    def signal(self, pid: int, force: bool = False) -> bool:
        """Send SIGTERM (or SIGKILL). Returns False if the process is gone."""
        try:
            os.kill(pid, signal.SIGKILL if force else signal.SIGTERM)
        except ProcessLookupError:
            return False
        return True


def port_available(port: int, host: str = "127.0.0.1") -> bool:
    """Try to bind the port to see whether something else holds it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((host, port))
    except OSError:
        return False
    finally:
        sock.close()
    return True


class SpawnedProcess(Protocol):
    """The subset of ``asyncio.subprocess.Process`` the manager relies on."""

    pid: int
    returncode: Optional[int]
    stdin: Any
    stdout: Any

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


class ProcessLauncher(Protocol):
    async def spawn(self, spec: ServerSpec) -> SpawnedProcess: ...


class Session(Protocol):
    """What the manager and composer need from a connected child."""

    dialect: Dialect

    async def initialize(self, timeout: Optional[float] = None) -> Any: ...

    async def list_tools(self, timeout: Optional[float] = None) -> List[Dict[str, Any]]: ...

    async def call_tool(
        self, name: str, arguments: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None
    ) -> types.CallToolResult: ...

    async def ping(self, timeout: Optional[float] = None) -> None: ...

    async def close(self) -> None: ...


class Connector(Protocol):
    async def connect(self, process: SpawnedProcess, spec: ServerSpec) -> Session: ...


class SubprocessLauncher:
    """Spawn servers with piped stdio; stderr goes to ``logs/<server>.log``."""

    def __init__(self, log_dir: Optional[Path] = None):
        self.log_dir = log_dir or HostPaths.log_dir()

    def _stderr_target(self, spec: ServerSpec) -> Optional[IO[bytes]]:
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            return open(self.log_dir / f"{spec.name}.log", "ab")
        except OSError as e:
            logger.debug(f"No stderr log for {spec.name}: {e}")
            return None

    async def spawn(self, spec: ServerSpec) -> asyncio.subprocess.Process:
        if not spec.command:
            raise SpawnFailed(spec.name, "no command configured")

        env = {**os.environ, **spec.env}
        stderr = self._stderr_target(spec)
        try:
            process = await asyncio.create_subprocess_exec(
                spec.command,
                *spec.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=stderr if stderr is not None else asyncio.subprocess.DEVNULL,
                env=env,
                limit=STREAM_LIMIT,
            )
        except FileNotFoundError:
            raise SpawnFailed(spec.name, f"command not found: {spec.command}") from None
        except PermissionError:
            raise SpawnFailed(spec.name, f"permission denied: {spec.command}") from None
        except OSError as e:
            raise SpawnFailed(spec.name, str(e)) from e
        finally:
            # The child holds its own copy of the descriptor
            if stderr is not None:
                stderr.close()

        logger.debug(f"Spawned {spec.name}: pid {process.pid} ({spec.command} {' '.join(spec.args)})")
        return process


class StdioConnector:
    async def connect(self, process: SpawnedProcess, spec: ServerSpec) -> StdioSession:
        session = StdioSession(process.stdout, process.stdin, name=spec.name)
        session.start()
        return session
