"""
tests.test_connection
~~~~~~~~~~~~~~~~~~~~~

连接适配器与 SSE 事件流测试。
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from app.api.events import room_event_stream
from app.core.exceptions import ConnectionWriteFailure
from app.schemas.dice import RollRequest
from app.schemas.events import decode_event
from app.services.connection import Connection, QueueConnection, WebSocketConnection
from app.services.dice_system import DiceSystem


class TestQueueConnection:

    @pytest.mark.asyncio
    async def test_messages_delivered_in_order_then_end_marker(self) -> None:
        conn = QueueConnection(maxsize=4)
        await conn.send("a")
        await conn.send("b")
        conn.close()

        assert [await conn.receive(), await conn.receive(), await conn.receive()] == ["a", "b", None]

    @pytest.mark.asyncio
    async def test_overflow_closes_connection(self) -> None:
        conn = QueueConnection(maxsize=2)
        await conn.send("a")
        await conn.send("b")

        with pytest.raises(ConnectionWriteFailure):
            await conn.send("c")

        assert conn.closed
        assert [await conn.receive(), await conn.receive(), await conn.receive()] == ["a", "b", None]

    @pytest.mark.asyncio
    async def test_send_after_close_fails(self) -> None:
        conn = QueueConnection()
        conn.close()
        conn.close()

        with pytest.raises(ConnectionWriteFailure):
            await conn.send("late")

    def test_satisfies_protocol(self) -> None:
        assert isinstance(QueueConnection(), Connection)
        assert isinstance(WebSocketConnection(AsyncMock()), Connection)


class TestWebSocketConnection:

    @pytest.mark.asyncio
    async def test_send_text(self) -> None:
        ws = AsyncMock()
        conn = WebSocketConnection(ws)

        await conn.send("hello")

        ws.send_text.assert_awaited_once_with("hello")

    @pytest.mark.asyncio
    async def test_failure_is_wrapped_and_closes(self) -> None:
        ws = AsyncMock()
        ws.send_text.side_effect = ConnectionResetError("gone")
        conn = WebSocketConnection(ws)

        with pytest.raises(ConnectionWriteFailure):
            await conn.send("hello")

        assert conn.closed
        with pytest.raises(ConnectionWriteFailure):
            await conn.send("again")
        assert ws.send_text.await_count == 1


class TestRoomEventStream:

    @pytest.mark.asyncio
    async def test_stream_joins_pushes_and_leaves(self, system: DiceSystem) -> None:
        stream = room_event_stream(system, "sse", queue_size=8)

        first = decode_event((await anext(stream))["data"])
        second = decode_event((await anext(stream))["data"])
        assert first.type == "roomSnapshot"
        assert second.type == "userCountChanged"
        assert second.data == 1
        assert "sse" in system.registry

        record = await system.roll("sse", RollRequest(player_name="Sam", num_dice=2))
        pushed = decode_event((await anext(stream))["data"])
        assert pushed.type == "rollOccurred"
        assert pushed.data.rolls == record.rolls

        await stream.aclose()

        assert "sse" not in system.registry

    @pytest.mark.asyncio
    async def test_stream_ends_when_dropped_for_overflow(self, system: DiceSystem) -> None:
        stream = room_event_stream(system, "slow", queue_size=2)
        await anext(stream)

        # 队列中已有 userCountChanged；不再消费，第二次掷骰时队列已满，连接被服务端断开
        for _ in range(2):
            await system.roll("slow", RollRequest())

        assert "slow" not in system.registry
        remaining = [item async for item in stream]
        assert len(remaining) == 2

    @pytest.mark.asyncio
    async def test_client_gone_while_joining_is_not_counted(
        self, system: DiceSystem, make_stalling_connection,
    ) -> None:
        peer = make_stalling_connection()
        await system.join("r1", peer)
        peer.stall()

        # 新的 SSE 客户端加入时，人数广播卡在慢速的 peer 上；此时客户端断开
        stream = room_event_stream(system, "r1", queue_size=8)

        async def first_event() -> dict[str, str]:
            return await anext(stream)

        task = asyncio.create_task(first_event())
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        peer.release()

        state = system.registry.get_state("r1")
        assert state.connected_users == 1
        assert system.registry.connections_in_room("r1") == [peer]
