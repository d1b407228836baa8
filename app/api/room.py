"""
app.api.room
~~~~~~~~~~~~

掷骰 REST 接口 —— 房间查询 + HTTP 掷骰。

端点:
  - ``POST /roll``              → 掷骰并向房间广播（SSE 客户端使用）
  - ``GET  /rooms``             → 获取存活房间列表
  - ``GET  /rooms/{room_id}``   → 获取房间完整快照
"""
from fastapi import APIRouter, Depends, Request

from app.api.deps import get_dice_system
from app.core.rate_limit import limiter
from app.schemas.dice import (
    ErrorResponse,
    RollRequest,
    RollResponse,
    RoomListing,
    RoomSnapshotData,
)
from app.services.dice_system import DiceSystem

router: APIRouter = APIRouter()

_ERROR_RESPONSES: dict[int | str, dict] = {
    400: {"model": ErrorResponse, "description": "请求体不合法"},
    404: {"model": ErrorResponse, "description": "房间不存在"},
}


# ── 掷骰端点 ──────────────────────────────────────────────────────────

@router.post(
    "/roll",
    summary="掷骰",
    response_model=RollResponse,
    responses=_ERROR_RESPONSES,
)
@limiter.limit("10/second")
async def roll_dice(
    request: Request,
    roll_request: RollRequest,
    system: DiceSystem = Depends(get_dice_system),
) -> RollResponse:
    """在指定房间掷骰，结果会广播给该房间的所有在线连接。

    请求体中的 ``roomId`` 缺省时使用默认房间。房间内没有任何连接时返回 404。

    Args:
        request: FastAPI Request 对象（用于限流判断）。
        roll_request: 掷骰参数（面数、数量、昵称、房间）。
    """
    record = await system.roll(roll_request.room_id, roll_request)
    return RollResponse(rolls=list(record.rolls), total=record.total)


# ── 房间查询端点 ──────────────────────────────────────────────────────

@router.get("/rooms", summary="获取存活房间列表", response_model=RoomListing)
@limiter.limit("10/second")
async def list_rooms(
    request: Request, system: DiceSystem = Depends(get_dice_system),
) -> RoomListing:
    """返回所有至少有一个在线连接的房间。"""
    return RoomListing(rooms=system.list_rooms())


@router.get(
    "/rooms/{room_id}",
    summary="获取房间快照",
    response_model=RoomSnapshotData,
    responses={404: _ERROR_RESPONSES[404]},
)
async def room_info(
    room_id: str, system: DiceSystem = Depends(get_dice_system),
) -> RoomSnapshotData:
    """返回指定房间的完整状态（最近掷骰、历史、在线人数）。"""
    return system.room_snapshot(room_id)
