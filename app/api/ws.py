"""
app.api.ws
~~~~~~~~~~

WebSocket 实时交互接口。

- ``/ws/rooms/{room_id}``、``/ws?room=...`` —— 带类型标签的消息协议:
    - ``{"type": "rollDice", "data": {"numDice": 2, "diceType": 6, "playerName": "..."}}``
    - ``{"type": "updatePlayerName", "data": {"playerName": "..."}}``
- ``/ws/raw?room=...`` —— 极简协议：每个文本帧就是一个掷骰请求对象。

服务端推送的事件格式见 ``app.schemas.events``；请求出错时只向本连接回复
``{"type": "error", "data": {"error": "..."}}``，不影响房间内其他人。
"""
from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from app.api.deps import get_ws_dice_system
from app.core.exceptions import ConnectionWriteFailure, describe_validation_errors
from app.core.logging import get_logger, request_id_ctx_var
from app.core.rate_limit import WebSocketRateLimiter
from app.core.settings import settings
from app.schemas.dice import RollRequest
from app.schemas.events import UpdatePlayerNameMessage, decode_client_message
from app.services.connection import WebSocketConnection
from app.services.dice_system import DiceSystem
from app.services.room_registry import RegistrationHandle

logger = get_logger(__name__)

router: APIRouter = APIRouter()


async def _send_error(handle: RegistrationHandle, error: str) -> None:
    """只向当前连接回复错误。连接已断开时忽略，交给接收循环收尾。"""
    try:
        await handle.connection.send(json.dumps({"type": "error", "data": {"error": error}}))
    except ConnectionWriteFailure:
        logger.debug("错误回复发送失败，连接已断开 | room=%s", handle.room_id)


@asynccontextmanager
async def _room_session(
    websocket: WebSocket, system: DiceSystem, room_id: str | None,
) -> AsyncIterator[RegistrationHandle]:
    """接受连接并加入房间；退出时（正常断开或异常）离开房间。"""
    token = request_id_ctx_var.set(f"ws-{uuid.uuid4().hex[:8]}")
    try:
        await websocket.accept()
        handle = await system.join(room_id, WebSocketConnection(websocket))
        try:
            yield handle
        except WebSocketDisconnect:
            pass  # 正常断开
        except Exception as e:
            logger.error("WebSocket 异常: %s | room=%s", e, handle.room_id, exc_info=True)
        finally:
            await system.leave(handle)
    finally:
        request_id_ctx_var.reset(token)


async def _handle_roll(
    system: DiceSystem,
    handle: RegistrationHandle,
    request: RollRequest,
    ws_limiter: WebSocketRateLimiter,
) -> None:
    if not ws_limiter.is_allowed(handle.connection_id):
        await _send_error(handle, "Rolling too fast, please slow down")
        return
    try:
        await system.roll(handle.room_id, request)
    except HTTPException as e:
        await _send_error(handle, str(e.detail))


async def _serve_tagged(websocket: WebSocket, system: DiceSystem, room_id: str | None) -> None:
    ws_limiter = WebSocketRateLimiter(interval_seconds=settings.WS_RATE_LIMIT_INTERVAL)
    player_name: str | None = None

    async with _room_session(websocket, system, room_id) as handle:
        while True:
            raw: str = await websocket.receive_text()
            try:
                message = decode_client_message(raw)
            except ValidationError:
                logger.debug("无法解析的消息: %.80s", raw)
                await _send_error(handle, "Invalid message")
                continue

            if isinstance(message, UpdatePlayerNameMessage):
                player_name = message.data.player_name.strip() or None
                continue

            request = message.data
            if not request.player_name and player_name:
                request = request.model_copy(update={"player_name": player_name})
            await _handle_roll(system, handle, request, ws_limiter)


@router.websocket("/ws/rooms/{room_id}")
async def websocket_room_endpoint(
    websocket: WebSocket,
    room_id: str,
    system: DiceSystem = Depends(get_ws_dice_system),
) -> None:
    """WebSocket 房间端点，通过 URL 中的 ``room_id`` 加入指定房间。"""
    await _serve_tagged(websocket, system, room_id)


@router.websocket("/ws")
async def websocket_default_endpoint(
    websocket: WebSocket,
    room: str | None = Query(default=None),
    system: DiceSystem = Depends(get_ws_dice_system),
) -> None:
    """WebSocket 端点，``room`` 缺省时加入默认房间。"""
    await _serve_tagged(websocket, system, room)


@router.websocket("/ws/raw")
async def websocket_raw_endpoint(
    websocket: WebSocket,
    room: str | None = Query(default=None),
    system: DiceSystem = Depends(get_ws_dice_system),
) -> None:
    """极简 WebSocket 端点：每个文本帧都是一个掷骰请求。"""
    ws_limiter = WebSocketRateLimiter(interval_seconds=settings.WS_RATE_LIMIT_INTERVAL)

    async with _room_session(websocket, system, room) as handle:
        while True:
            raw: str = await websocket.receive_text()
            try:
                request = RollRequest.model_validate_json(raw)
            except ValidationError as e:
                await _send_error(handle, describe_validation_errors(e.errors()))
                continue
            await _handle_roll(system, handle, request, ws_limiter)
