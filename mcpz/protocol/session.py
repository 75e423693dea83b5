# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Client side of an MCP stdio session with one child server.

Messages are newline-delimited JSON-RPC. Framing and validation use the
``mcp`` package's pydantic types; this module only moves lines between the
child's pipes and matches replies to requests by id.
"""

import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional

from mcp import types
from pydantic import ValidationError

from mcpz import __version__
from mcpz.errors import RemoteError, SessionClosed
from mcpz.protocol.dialects import Dialect, dialect_for_version

logger = logging.getLogger(__name__)

# Upper bound on tools/list pages, guards against servers that loop on cursors
MAX_TOOL_PAGES = 100


class StdioSession:
    """JSON-RPC over a reader/writer pair (a child's stdout/stdin)."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        name: str = "server",
    ):
        self.reader = reader
        self.writer = writer
        self.name = name
        self.protocol_version: Optional[str] = None
        self.server_info: Optional[types.Implementation] = None
        self._ids = itertools.count(1)
        self._pending: Dict[int, asyncio.Future] = {}
        self._write_lock = asyncio.Lock()
        self._reader_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def dialect(self) -> Dialect:
        return dialect_for_version(self.protocol_version)

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(self._read_loop(), name=f"mcpz-read-{self.name}")

    async def _read_loop(self) -> None:
        try:
            while True:
                try:
                    line = await self.reader.readline()
                except (asyncio.LimitOverrunError, ValueError) as e:
                    logger.warning(f"[{self.name}] dropping oversized message: {e}")
                    continue
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                await self._dispatch(text)
        finally:
            self._fail_pending(SessionClosed(f"Session with '{self.name}' closed"))
            self._closed = True

    async def _dispatch(self, text: str) -> None:
        try:
            message = types.JSONRPCMessage.model_validate_json(text).root
        except ValidationError:
            # Servers occasionally log to stdout; ignore anything that is not JSON-RPC
            logger.debug(f"[{self.name}] non-protocol output: {text[:200]}")
            return

        if isinstance(message, (types.JSONRPCResponse, types.JSONRPCError)):
            future = self._pending.pop(message.id, None)
            if future is None or future.done():
                logger.debug(f"[{self.name}] reply for unknown request id {message.id}")
                return
            if isinstance(message, types.JSONRPCError):
                future.set_exception(RemoteError(message.error.code, message.error.message, message.error.data))
            else:
                future.set_result(message.result)
        elif isinstance(message, types.JSONRPCRequest):
            await self._answer_server_request(message)
        else:
            logger.debug(f"[{self.name}] notification {message.method}")

    async def _answer_server_request(self, request: types.JSONRPCRequest) -> None:
        if request.method == "ping":
            reply: Any = types.JSONRPCResponse(jsonrpc="2.0", id=request.id, result={})
        else:
            reply = types.JSONRPCError(
                jsonrpc="2.0",
                id=request.id,
                error=types.ErrorData(
                    code=types.METHOD_NOT_FOUND,
                    message=f"mcpz does not handle {request.method}",
                ),
            )
        try:
            await self._send(types.JSONRPCMessage(reply))
        except SessionClosed:
            pass

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    async def _send(self, message: types.JSONRPCMessage) -> None:
        if self._closed:
            raise SessionClosed(f"Session with '{self.name}' is closed")
        data = message.model_dump_json(by_alias=True, exclude_none=True) + "\n"
        async with self._write_lock:
            try:
                self.writer.write(data.encode("utf-8"))
                await self.writer.drain()
            except (ConnectionError, BrokenPipeError, RuntimeError) as e:
                raise SessionClosed(f"Cannot write to '{self.name}': {e}") from e

    async def request(
        self, method: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """Send a request and wait for its result.

        Raises:
            RemoteError: the server answered with a JSON-RPC error
            SessionClosed: the stream closed before the reply arrived
            asyncio.TimeoutError: no reply within ``timeout``
        """
        self.start()
        request_id = next(self._ids)
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._send(
                types.JSONRPCMessage(
                    types.JSONRPCRequest(jsonrpc="2.0", id=request_id, method=method, params=params)
                )
            )
            return await asyncio.wait_for(future, timeout)
        finally:
            self._pending.pop(request_id, None)

    async def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        await self._send(
            types.JSONRPCMessage(types.JSONRPCNotification(jsonrpc="2.0", method=method, params=params))
        )

    async def initialize(
        self, timeout: Optional[float] = None, protocol_version: str = types.LATEST_PROTOCOL_VERSION
    ) -> types.InitializeResult:
        """Run the MCP handshake (initialize + notifications/initialized)."""
        params = types.InitializeRequestParams(
            protocolVersion=protocol_version,
            capabilities=types.ClientCapabilities(),
            clientInfo=types.Implementation(name="mcpz", version=__version__),
        )
        raw = await self.request(
            "initialize", params.model_dump(by_alias=True, exclude_none=True, mode="json"), timeout
        )
        result = types.InitializeResult.model_validate(raw)
        self.protocol_version = str(result.protocolVersion)
        self.server_info = result.serverInfo
        await self.notify("notifications/initialized")
        logger.debug(
            f"[{self.name}] initialized: {result.serverInfo.name} {result.serverInfo.version}, "
            f"protocol {self.protocol_version}"
        )
        return result

    async def ping(self, timeout: Optional[float] = None) -> None:
        await self.request("ping", None, timeout)

    async def list_tools(self, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """All tools of the server as wire-format dicts, following pagination."""
        tools: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        for _ in range(MAX_TOOL_PAGES):
            raw = await self.request("tools/list", {"cursor": cursor} if cursor else None, timeout)
            page = types.ListToolsResult.model_validate(raw)
            # Keep the server's own dicts; the dialect adapter works on wire shapes
            tools.extend(t for t in raw.get("tools", []) if isinstance(t, dict))
            cursor = page.nextCursor
            if not cursor:
                break
        return tools

    async def call_tool(
        self, name: str, arguments: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None
    ) -> types.CallToolResult:
        raw = await self.request("tools/call", {"name": name, "arguments": arguments or {}}, timeout)
        return types.CallToolResult.model_validate(raw)

    async def close(self) -> None:
        self._closed = True
        self._fail_pending(SessionClosed(f"Session with '{self.name}' closed"))
        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None
        try:
            self.writer.close()
        except (ConnectionError, RuntimeError):
            pass
