# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for SessionTransport."""

import asyncio
import json
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import BaseModel, ConfigDict

from tubeshot.exceptions import SessionError
from tubeshot.service.models import CallToolResult, JsonRpcMessage
from tubeshot.service.tools import ToolRegistry, ToolSpec
from tubeshot.service.transport import SessionTransport, format_sse


class SleepArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    label: str
    delay: float = 0.0


def make_tools(log: List[str]) -> ToolRegistry:
    async def sleeper(args: SleepArgs, ctx):
        log.append(f"start {args.label}")
        await ctx.progress.info(f"working on {args.label}")
        await asyncio.sleep(args.delay)
        await ctx.progress.warning(f"almost done with {args.label}")
        log.append(f"end {args.label}")
        return CallToolResult.text(f"done {args.label}")

    async def broken(args, ctx):
        raise RuntimeError("bug")

    tools = ToolRegistry()
    tools.register(ToolSpec("sleep", "Sleeps", SleepArgs, sleeper))
    tools.register(ToolSpec("broken", "Raises", SleepArgs, broken))
    return tools


@pytest.fixture
def log() -> List[str]:
    return []


@pytest.fixture
def controller():
    controller = MagicMock()
    controller.cleanup = AsyncMock()
    return controller


@pytest.fixture
def transport(log, controller):
    return SessionTransport("session-1", controller, make_tools(log))


def request(request_id, method, params=None) -> JsonRpcMessage:
    body = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        body["params"] = params
    return JsonRpcMessage.model_validate(body)


def call(request_id, label, delay=0.0, **extra) -> JsonRpcMessage:
    return request(request_id, "tools/call", {
        "name": "sleep",
        "arguments": {"label": label, "delay": delay},
        **extra,
    })


async def collect(outbox) -> list:
    items = []
    while True:
        item = await outbox.get()
        if item is None:
            return items
        items.append(item)


class TestDispatch:
    """Tests for JSON-RPC method dispatch."""

    @pytest.mark.asyncio
    async def test_initialize(self, transport):
        items = await collect(transport.submit(request(1, "initialize", {
            "protocolVersion": "2024-11-05",
            "capabilities": {},
            "clientInfo": {"name": "pytest", "version": "1"},
        })))

        assert len(items) == 1
        result = items[0]["result"]
        assert items[0]["id"] == 1
        assert result["protocolVersion"] == "2024-11-05"
        assert result["serverInfo"]["name"] == "tubeshot"
        assert result["capabilities"] == {"logging": {}, "tools": {"listChanged": False}}
        assert transport.client_info == {"name": "pytest", "version": "1"}

    @pytest.mark.asyncio
    async def test_unsupported_protocol_version_gets_default(self, transport):
        items = await collect(transport.submit(request(1, "initialize", {"protocolVersion": "1999-01-01"})))

        assert items[0]["result"]["protocolVersion"] == "2025-03-26"

    @pytest.mark.asyncio
    async def test_second_initialize_rejected(self, transport):
        await collect(transport.submit(request(1, "initialize", {})))

        items = await collect(transport.submit(request(2, "initialize", {})))

        assert items[0]["error"]["code"] == -32600

    @pytest.mark.asyncio
    async def test_ping(self, transport):
        items = await collect(transport.submit(request("p", "ping")))

        assert items == [{"jsonrpc": "2.0", "id": "p", "result": {}}]

    @pytest.mark.asyncio
    async def test_tools_list(self, transport):
        items = await collect(transport.submit(request(3, "tools/list")))

        names = [tool["name"] for tool in items[0]["result"]["tools"]]
        assert names == ["sleep", "broken"]
        assert "inputSchema" in items[0]["result"]["tools"][0]

    @pytest.mark.asyncio
    async def test_unknown_method(self, transport):
        items = await collect(transport.submit(request(4, "resources/list")))

        assert items[0]["error"]["code"] == -32601

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [
        {"name": "sleep", "arguments": {"label": "x", "bogus": 1}},
        {"name": "missing", "arguments": {}},
        {"arguments": {}},
        {"name": "sleep", "arguments": ["x"]},
    ])
    async def test_invalid_tool_calls(self, transport, log, params):
        items = await collect(transport.submit(request(5, "tools/call", params)))

        assert items[0]["error"]["code"] == -32602
        assert log == []

    @pytest.mark.asyncio
    async def test_handler_bug_becomes_internal_error(self, transport):
        items = await collect(transport.submit(request(6, "tools/call", {
            "name": "broken", "arguments": {"label": "x"},
        })))

        assert items[-1]["error"]["code"] == -32603

    @pytest.mark.asyncio
    async def test_worker_survives_handler_bug(self, transport):
        await collect(transport.submit(request(6, "tools/call", {
            "name": "broken", "arguments": {"label": "x"},
        })))

        items = await collect(transport.submit(call(7, "after")))

        assert items[-1]["result"]["content"][0]["text"] == "done after"

    @pytest.mark.asyncio
    async def test_notification_produces_no_output(self, transport):
        note = JsonRpcMessage.model_validate({"jsonrpc": "2.0", "method": "notifications/initialized"})

        assert await collect(transport.submit(note)) == []


class TestProgress:
    """Tests for progress delivery."""

    @pytest.mark.asyncio
    async def test_streamed_progress_precedes_result(self, transport):
        items = await collect(transport.submit(call(1, "a"), stream_progress=True))

        assert [item.get("method") for item in items] == [
            "notifications/message",
            "notifications/message",
            None,
        ]
        assert items[0]["params"]["data"] == "working on a"
        assert items[-1]["id"] == 1

    @pytest.mark.asyncio
    async def test_set_level_filters_notifications(self, transport):
        await collect(transport.submit(request(1, "logging/setLevel", {"level": "warning"})))

        items = await collect(transport.submit(call(2, "a"), stream_progress=True))

        levels = [item["params"]["level"] for item in items if "method" in item]
        assert levels == ["warning"]

    @pytest.mark.asyncio
    async def test_set_level_rejects_unknown(self, transport):
        items = await collect(transport.submit(request(1, "logging/setLevel", {"level": "loud"})))

        assert items[0]["error"]["code"] == -32602

    @pytest.mark.asyncio
    async def test_progress_token_adds_progress_notifications(self, transport):
        message = call(1, "a", _meta={"progressToken": "tok"})

        items = await collect(transport.submit(message, stream_progress=True))

        progress = [item["params"] for item in items if item.get("method") == "notifications/progress"]
        assert [p["progress"] for p in progress] == [1, 2]
        assert all(p["progressToken"] == "tok" for p in progress)

    @pytest.mark.asyncio
    async def test_json_mode_routes_progress_to_stream(self, transport):
        stream = transport.open_stream()

        items = await collect(transport.submit(call(1, "a")))

        assert len(items) == 1 and items[0]["id"] == 1
        pushed = [stream.get_nowait()["params"]["data"] for _ in range(stream.qsize())]
        assert pushed == ["working on a", "almost done with a"]

    @pytest.mark.asyncio
    async def test_json_mode_without_stream_drops_progress(self, transport):
        items = await collect(transport.submit(call(1, "a")))

        assert [item["id"] for item in items] == [1]


class TestOrdering:
    """Tests for per-session serialization."""

    @pytest.mark.asyncio
    async def test_calls_run_in_arrival_order(self, transport, log):
        first = transport.submit(call(1, "slow", delay=0.05))
        second = transport.submit(call(2, "fast"))

        await asyncio.gather(collect(first), collect(second))

        assert log == ["start slow", "end slow", "start fast", "end fast"]

    @pytest.mark.asyncio
    async def test_sessions_do_not_block_each_other(self, log, controller):
        a = SessionTransport("a", controller, make_tools(log))
        b = SessionTransport("b", controller, make_tools(log))

        slow = asyncio.ensure_future(collect(a.submit(call(1, "slow", delay=0.2))))
        await asyncio.sleep(0.01)
        await collect(b.submit(call(1, "fast")))

        assert "end fast" in log and "end slow" not in log
        await slow


class TestStreamAndClose:
    """Tests for the standalone stream and closing."""

    @pytest.mark.asyncio
    async def test_second_stream_conflicts(self, transport):
        stream = transport.open_stream()

        with pytest.raises(SessionError, match="Only one SSE stream"):
            transport.open_stream()

        transport.release_stream(stream)
        assert transport.open_stream() is not None

    @pytest.mark.asyncio
    async def test_close_waits_for_in_flight_call(self, transport, log, controller):
        outbox = transport.submit(call(1, "slow", delay=0.05))
        await asyncio.sleep(0)

        await transport.close()

        assert log == ["start slow", "end slow"]
        items = await collect(outbox)
        assert items[-1]["result"]["content"][0]["text"] == "done slow"
        controller.cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_notifies(self, transport, controller):
        closed = []
        transport.on_close(closed.append)

        await transport.close()
        await transport.close()

        assert closed == ["session-1"]
        assert transport.closed
        controller.cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_ends_stream(self, transport):
        stream = transport.open_stream()

        await transport.close()

        assert stream.get_nowait() is None

    @pytest.mark.asyncio
    async def test_submit_after_close(self, transport):
        await transport.close()

        with pytest.raises(SessionError):
            transport.submit(call(1, "late"))

    @pytest.mark.asyncio
    async def test_close_callbacks_run_when_cleanup_fails(self, transport, controller):
        controller.cleanup.side_effect = RuntimeError("browser gone")
        closed = []
        transport.on_close(closed.append)

        with pytest.raises(RuntimeError):
            await transport.close()

        assert closed == ["session-1"]


def test_format_sse():
    frame = format_sse({"jsonrpc": "2.0", "id": 1, "result": {}})

    assert frame.startswith("event: message\ndata: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame.split("data: ", 1)[1]) == {"jsonrpc": "2.0", "id": 1, "result": {}}
