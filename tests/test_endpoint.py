# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for the composed endpoint: tool registration, naming and forwarding."""

import asyncio

import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError
from mcp import types

from mcpz.composer import compose_endpoint, prefixed_name
from mcpz.errors import SchemaIncompatible
from mcpz.instances import LaunchedInstance, RunHandle
from mcpz.models import InstanceRecord, ServerSpec, ToolDefinition
from mcpz.protocol import Dialect, create_endpoint, register_tool
from mcpz.resolver import ResolvedRunPlan, SkillSelection
from tests.conftest import FakeProcess, FakeSession

OBJECT = {"type": "object", "properties": {"path": {"type": "string"}}}


def tool(name, description="", schema=None, **extra):
    data = {"name": name, "description": description, "inputSchema": schema or dict(OBJECT)}
    data.update(extra)
    return data


def instance(server, tools, dialect=Dialect.CURRENT):
    session = FakeSession(tools=tools, dialect=dialect)
    return LaunchedInstance(
        record=InstanceRecord(id=f"{server}-1", server_name=server, pid=1),
        spec=ServerSpec(name=server, command=server),
        process=FakeProcess(pid=1),
        session=session,
        tools=tools,
    )


def handle_for(plan, *instances):
    return RunHandle(manager=None, plan=plan, instances=list(instances))


async def ok_handler(arguments):
    return types.CallToolResult(content=[types.TextContent(type="text", text="ok")])


class TestRegisterTool:
    def test_register_and_call(self):
        endpoint = create_endpoint("test", "0.0.1")
        register_tool(endpoint, tool("read"), ok_handler)

        result = asyncio.run(endpoint.call("read", {}))

        assert endpoint.tool_names() == ["read"]
        assert result.content[0].text == "ok"

    def test_tool_definition_accepted(self):
        endpoint = create_endpoint("test", "0.0.1")
        proxied = register_tool(endpoint, ToolDefinition(name="guide", description="Guide"), ok_handler)
        assert proxied.description == "Guide"

    def test_duplicate_name_rejected(self):
        endpoint = create_endpoint("test", "0.0.1")
        register_tool(endpoint, tool("read"), ok_handler)
        with pytest.raises(SchemaIncompatible, match="already registered"):
            register_tool(endpoint, tool("read"), ok_handler)

    @pytest.mark.parametrize("schema", [{"type": "string"}, {"properties": {}}])
    def test_non_object_schema_rejected(self, schema):
        endpoint = create_endpoint("test", "0.0.1")
        with pytest.raises(SchemaIncompatible, match="JSON object schema"):
            register_tool(endpoint, tool("bad", schema=schema), ok_handler)
        assert endpoint.tools == {}

    def test_current_tool_on_legacy_endpoint_rejected(self):
        endpoint = create_endpoint("test", "0.0.1", Dialect.LEGACY)
        with pytest.raises(SchemaIncompatible) as excinfo:
            register_tool(endpoint, tool("pretty", title="Pretty"), ok_handler)
        assert excinfo.value.tool_name == "pretty"

    def test_legacy_schema_translated_on_registration(self):
        endpoint = create_endpoint("test", "0.0.1")
        schema = {"type": "object", "properties": {"n": {"$ref": "#/definitions/n"}}, "definitions": {"n": {}}}
        proxied = register_tool(endpoint, tool("t", schema=schema), ok_handler, source_dialect=Dialect.LEGACY)

        assert "$defs" in proxied.parameters
        assert proxied.parameters["properties"]["n"]["$ref"] == "#/$defs/n"

    def test_unknown_tool(self):
        endpoint = create_endpoint("test", "0.0.1")
        with pytest.raises(ToolError, match="Unknown tool"):
            asyncio.run(endpoint.call("ghost"))

    def test_error_result_raises(self):
        async def failing(arguments):
            return types.CallToolResult(content=[types.TextContent(type="text", text="disk full")], isError=True)

        endpoint = create_endpoint("test", "0.0.1")
        register_tool(endpoint, tool("write"), failing)

        with pytest.raises(ToolError, match="disk full"):
            asyncio.run(endpoint.call("write", {}))

    def test_tools_visible_to_mcp_clients(self):
        endpoint = create_endpoint("test", "0.0.1")
        register_tool(endpoint, tool("read", "Read a file"), ok_handler)

        async def scenario():
            async with Client(endpoint.server) as client:
                return await client.list_tools()

        tools = asyncio.run(scenario())

        assert [t.name for t in tools] == ["read"]
        assert tools[0].description == "Read a file"


class TestComposeEndpoint:
    def test_tools_are_prefixed_by_server(self):
        fs = instance("fs", [tool("read", "Read a file"), tool("write", "Write a file")])
        web = instance("web", [tool("read", "Fetch a URL")])
        plan = ResolvedRunPlan(servers=(fs.spec, web.spec))

        endpoint = compose_endpoint(handle_for(plan, fs, web), plan)

        assert sorted(endpoint.tool_names()) == ["fs_read", "fs_write", "web_read"]
        assert endpoint.tools["fs_read"].description == "[fs] Read a file"
        assert endpoint.tools["web_read"].description == "[web] Fetch a URL"

    def test_prefixed_name(self):
        assert prefixed_name("fs", "read") == "fs_read"

    def test_filter_matches_unprefixed_names(self):
        fs = instance("fs", [tool("read"), tool("write")])
        plan = ResolvedRunPlan(servers=(fs.spec,), tool_filter=frozenset({"read"}))

        endpoint = compose_endpoint(handle_for(plan, fs), plan)

        assert endpoint.tool_names() == ["fs_read"]

    def test_calls_are_forwarded(self):
        fs = instance("fs", [tool("read"), tool("boom")])
        plan = ResolvedRunPlan(servers=(fs.spec,))
        endpoint = compose_endpoint(handle_for(plan, fs), plan)

        result = asyncio.run(endpoint.call("fs_read", {"path": "/etc/hosts"}))

        assert result.content[0].text == 'read:{"path": "/etc/hosts"}'
        assert fs.session.calls == [("read", {"path": "/etc/hosts"})]

        with pytest.raises(ToolError, match="it broke"):
            asyncio.run(endpoint.call("fs_boom", {}))

    def test_unanswered_call_times_out(self, caplog):
        slow = instance("slow", [tool("read")])
        slow.session.call_delay = 5.0
        plan = ResolvedRunPlan(servers=(slow.spec,))
        endpoint = compose_endpoint(handle_for(plan, slow), plan, call_timeout=0.05)

        with caplog.at_level("WARNING", logger="mcpz.composer"):
            with pytest.raises(ToolError, match="slow did not answer read within 0.05s"):
                asyncio.run(endpoint.call("slow_read", {}))
        assert "did not answer" in caplog.text

    def test_legacy_server_tools_translated(self):
        schema = {"type": "object", "definitions": {"p": {"type": "string"}}}
        old = instance("old", [tool("t", schema=schema)], dialect=Dialect.LEGACY)
        plan = ResolvedRunPlan(servers=(old.spec,))

        endpoint = compose_endpoint(handle_for(plan, old), plan)

        assert endpoint.tools["old_t"].parameters == {"type": "object", "$defs": {"p": {"type": "string"}}}

    def test_incompatible_tools_are_skipped(self, caplog):
        new = instance("new", [tool("fancy", title="Fancy"), tool("plain")])
        plan = ResolvedRunPlan(servers=(new.spec,))

        with caplog.at_level("WARNING", logger="mcpz.composer"):
            endpoint = compose_endpoint(handle_for(plan, new), plan, dialect=Dialect.LEGACY)

        assert endpoint.tool_names() == ["new_plain"]
        assert "Skipping new_fancy" in caplog.text

    def test_skill_tools(self):
        skill = SkillSelection(
            id="review",
            tools=(ToolDefinition(name="guide", description="How to review"),),
            instructions="Read the diff before commenting.",
        )
        fs = instance("fs", [tool("read")])
        plan = ResolvedRunPlan(servers=(fs.spec,), skills=(skill,))

        endpoint = compose_endpoint(handle_for(plan, fs), plan)
        result = asyncio.run(endpoint.call("review_guide"))

        assert sorted(endpoint.tool_names()) == ["fs_read", "review_guide"]
        assert endpoint.tools["review_guide"].description == "[review] How to review"
        assert result.content[0].text == "Read the diff before commenting."

    def test_no_instances_gives_skills_only(self):
        skill = SkillSelection(id="notes", tools=(ToolDefinition(name="read"),))
        plan = ResolvedRunPlan(servers=(), skills=(skill,))

        endpoint = compose_endpoint(handle_for(plan), plan)

        assert endpoint.tool_names() == ["notes_read"]
