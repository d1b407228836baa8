"""
app.api.events
~~~~~~~~~~~~~~

Server-Sent Events 推送接口。

``GET /events?room=<room_id>`` 建立一条 SSE 长连接并加入房间：
首条消息为房间快照，之后依次推送在线人数变化与掷骰结果。
掷骰请求通过 ``POST /roll`` 发送。
"""
from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, Query
from sse_starlette.sse import EventSourceResponse

from app.api.deps import get_dice_system
from app.core.logging import get_logger, request_id_ctx_var
from app.core.settings import settings
from app.services.connection import QueueConnection
from app.services.dice_system import DiceSystem

logger = get_logger(__name__)

router: APIRouter = APIRouter()


async def room_event_stream(
    system: DiceSystem, room_id: str | None, queue_size: int,
) -> AsyncGenerator[dict[str, str], None]:
    """加入房间并逐条产出待推送的事件，生成器结束时离开房间。"""
    request_id_ctx_var.set(f"sse-{uuid.uuid4().hex[:8]}")
    connection = QueueConnection(maxsize=queue_size)
    handle = await system.join(room_id, connection)
    try:
        while True:
            message = await connection.receive()
            if message is None:
                logger.info("SSE 连接已被服务端关闭 | room=%s", handle.room_id)
                break
            yield {"data": message}
    finally:
        # 客户端断开时生成器会被取消，shield 保证离开流程完整执行
        await asyncio.shield(system.leave(handle))


@router.get("/events", summary="订阅房间事件（SSE）")
async def room_events(
    room: str | None = Query(default=None, max_length=64, description="房间 ID，缺省为默认房间"),
    system: DiceSystem = Depends(get_dice_system),
) -> EventSourceResponse:
    """以 SSE 方式订阅指定房间的实时事件。"""
    return EventSourceResponse(
        room_event_stream(system, room, settings.SSE_QUEUE_SIZE),
        ping=settings.SSE_PING_INTERVAL,
    )
