# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for the stdio JSON-RPC session against a scripted child."""

import asyncio
import json

import pytest

from mcpz.errors import RemoteError, SessionClosed
from mcpz.protocol.dialects import Dialect
from mcpz.protocol.session import StdioSession


class ScriptedWriter:
    """Fake child stdin: answers each request via ``handler`` by feeding the reader."""

    def __init__(self, reader: asyncio.StreamReader, handler):
        self.reader = reader
        self.handler = handler
        self.sent = []
        self.closed = False

    def write(self, data: bytes) -> None:
        for line in data.decode().splitlines():
            message = json.loads(line)
            self.sent.append(message)
            if "method" in message and "id" in message:
                reply = self.handler(message)
                if reply is not None:
                    self.reader.feed_data((json.dumps(reply) + "\n").encode())

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


def result(message, value):
    return {"jsonrpc": "2.0", "id": message["id"], "result": value}


def init_handler(protocol_version="2025-06-18", tools_pages=None):
    pages = tools_pages or [{"tools": []}]

    def handle(message):
        method = message["method"]
        if method == "initialize":
            return result(
                message,
                {
                    "protocolVersion": protocol_version,
                    "capabilities": {"tools": {}},
                    "serverInfo": {"name": "fake", "version": "1.0"},
                },
            )
        if method == "tools/list":
            cursor = (message.get("params") or {}).get("cursor")
            return result(message, pages[int(cursor) if cursor else 0])
        if method == "ping":
            return result(message, {})
        return None

    return handle


def make_session(handler):
    reader = asyncio.StreamReader()
    writer = ScriptedWriter(reader, handler)
    return StdioSession(reader, writer, name="fake"), reader, writer


class TestHandshake:
    def test_initialize_negotiates_version(self):
        async def scenario():
            session, _, writer = make_session(init_handler("2024-11-05"))
            info = await session.initialize(timeout=1.0)
            await session.close()
            return session, info, writer

        session, info, writer = asyncio.run(scenario())

        assert info.serverInfo.name == "fake"
        assert session.protocol_version == "2024-11-05"
        assert session.dialect is Dialect.LEGACY
        assert [m["method"] for m in writer.sent] == ["initialize", "notifications/initialized"]
        assert writer.sent[0]["params"]["clientInfo"]["name"] == "mcpz"
        assert writer.closed

    def test_current_protocol(self):
        async def scenario():
            session, _, _ = make_session(init_handler())
            await session.initialize(timeout=1.0)
            await session.close()
            return session.dialect

        assert asyncio.run(scenario()) is Dialect.CURRENT

    def test_no_reply_times_out(self):
        async def scenario():
            session, _, _ = make_session(lambda message: None)
            try:
                await session.initialize(timeout=0.05)
            finally:
                await session.close()

        with pytest.raises(asyncio.TimeoutError):
            asyncio.run(scenario())


class TestRequests:
    def test_list_tools_follows_pages(self):
        pages = [
            {"tools": [{"name": "a", "inputSchema": {"type": "object"}}], "nextCursor": "1"},
            {"tools": [{"name": "b", "inputSchema": {"type": "object"}, "x-extra": True}]},
        ]

        async def scenario():
            session, _, _ = make_session(init_handler(tools_pages=pages))
            tools = await session.list_tools(timeout=1.0)
            await session.close()
            return tools

        tools = asyncio.run(scenario())

        assert [t["name"] for t in tools] == ["a", "b"]
        assert tools[1]["x-extra"] is True

    def test_error_reply(self):
        def handler(message):
            return {"jsonrpc": "2.0", "id": message["id"], "error": {"code": -32601, "message": "nope"}}

        async def scenario():
            session, _, _ = make_session(handler)
            try:
                await session.ping(timeout=1.0)
            finally:
                await session.close()

        with pytest.raises(RemoteError) as excinfo:
            asyncio.run(scenario())
        assert excinfo.value.code == -32601

    def test_stdout_noise_is_ignored(self):
        def handler(message):
            return None

        async def scenario():
            session, reader, writer = make_session(handler)
            task = asyncio.create_task(session.ping(timeout=1.0))
            await asyncio.sleep(0.01)
            reader.feed_data(b"Server starting up...\n\n")
            reader.feed_data((json.dumps(result(writer.sent[0], {})) + "\n").encode())
            await task
            await session.close()

        asyncio.run(scenario())

    def test_eof_fails_pending_requests(self):
        async def scenario():
            session, reader, _ = make_session(lambda message: None)
            task = asyncio.create_task(session.ping(timeout=1.0))
            await asyncio.sleep(0.01)
            reader.feed_eof()
            try:
                await task
            finally:
                await session.close()

        with pytest.raises(SessionClosed):
            asyncio.run(scenario())

    def test_send_after_close(self):
        async def scenario():
            session, _, _ = make_session(init_handler())
            await session.close()
            await session.ping(timeout=1.0)

        with pytest.raises(SessionClosed):
            asyncio.run(scenario())

    def test_server_ping_is_answered(self):
        async def scenario():
            session, reader, writer = make_session(init_handler())
            session.start()
            reader.feed_data(b'{"jsonrpc": "2.0", "id": 99, "method": "ping"}\n')
            reader.feed_data(b'{"jsonrpc": "2.0", "id": 100, "method": "sampling/createMessage"}\n')
            for _ in range(50):
                await asyncio.sleep(0.01)
                if len(writer.sent) >= 2:
                    break
            await session.close()
            return writer.sent

        sent = asyncio.run(scenario())

        assert sent[0] == {"jsonrpc": "2.0", "id": 99, "result": {}}
        assert sent[1]["id"] == 100
        assert sent[1]["error"]["code"] == -32601

    def test_call_tool(self):
        def handler(message):
            params = message["params"]
            text = f"{params['name']}:{params['arguments']['x']}"
            return result(message, {"content": [{"type": "text", "text": text}], "isError": False})

        async def scenario():
            session, _, _ = make_session(handler)
            reply = await session.call_tool("double", {"x": 2}, timeout=1.0)
            await session.close()
            return reply

        reply = asyncio.run(scenario())

        assert reply.content[0].text == "double:2"
        assert reply.isError is False
