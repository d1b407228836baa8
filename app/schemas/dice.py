"""
app.schemas.dice
~~~~~~~~~~~~~~~~

掷骰相关的 Pydantic 请求/响应模型。

对外 JSON 一律使用 camelCase 字段名（``rolledBy``、``numDice`` ……），
Python 侧使用 snake_case，由 ``alias_generator`` 自动转换。
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase 别名的基类，既可以用别名也可以用字段名构造。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── 领域值对象 ────────────────────────────────────────────────────────

class RollRecord(CamelModel):
    """一次掷骰的结果（不可变）。"""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True,
    )

    rolls: tuple[int, ...] = Field(..., min_length=1, description="每颗骰子的点数")
    total: int = Field(..., description="点数之和")
    dice_type: int = Field(default=6, ge=2, description="骰子面数")
    num_dice: int = Field(..., ge=1, description="骰子数量")
    rolled_by: str = Field(..., description="掷骰者昵称")
    timestamp: str = Field(..., description="掷骰时间（ISO 格式）")


class RoomSnapshotData(CamelModel):
    """房间完整状态快照，新连接加入时下发。"""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True,
    )

    last_roll: tuple[int, ...] | None = Field(default=None, description="最近一次掷骰点数")
    rolled_by: str | None = Field(default=None, description="最近一次掷骰者")
    timestamp: str | None = Field(default=None, description="最近一次掷骰时间")
    connected_users: int = Field(default=0, ge=0, description="当前在线人数")
    roll_history: tuple[RollRecord, ...] = Field(
        default=(), description="掷骰历史（新 → 旧）",
    )


class RoomSummary(CamelModel):
    """房间列表中的一项。"""

    id: str = Field(..., description="房间 ID")
    connected_users: int = Field(..., ge=0, description="当前在线人数")
    last_activity: str | None = Field(default=None, description="最近一次掷骰时间")


# ── 请求 / 响应 ───────────────────────────────────────────────────────

class RollRequest(CamelModel):
    """掷骰请求体。所有字段均可省略。"""

    player_name: str | None = Field(
        default=None, max_length=64, description="掷骰者昵称，空则为 Anonymous",
    )
    room_id: str | None = Field(default=None, max_length=64, description="目标房间")
    dice_type: int | None = Field(default=None, ge=2, description="骰子面数，默认 6")
    num_dice: int | None = Field(default=None, description="骰子数量，超出上限时截断")


class RollResponse(BaseModel):
    """掷骰成功响应。"""

    success: bool = True
    rolls: list[int]
    total: int


class RoomListing(BaseModel):
    """房间列表响应。"""

    rooms: list[RoomSummary]


class ErrorResponse(BaseModel):
    """错误响应。"""

    error: str
