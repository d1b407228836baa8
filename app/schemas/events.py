"""
app.schemas.events
~~~~~~~~~~~~~~~~~~

房间事件 —— 服务端推送给连接的封闭标签联合（tagged union）。

线上格式::

    {"type": "roomSnapshot" | "userCountChanged" | "rollOccurred",
     "data": <payload>,
     "roomId": "<room id>"}

以及 WebSocket 客户端发来的消息（``rollDice`` / ``updatePlayerName``）。
序列化/反序列化只发生在传输层边界。
"""
from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter

from app.schemas.dice import (
    CamelModel,
    RollRecord,
    RollRequest,
    RoomSnapshotData,
)


# ── 服务端 → 客户端 ───────────────────────────────────────────────────

class RollOccurredData(CamelModel):
    """``rollOccurred`` 的载荷：本次结果 + 掷骰后的历史快照。"""

    rolls: tuple[int, ...]
    total: int
    dice_type: int
    num_dice: int
    rolled_by: str
    timestamp: str
    roll_history: tuple[RollRecord, ...] = ()

    @classmethod
    def from_record(
        cls, record: RollRecord, history: tuple[RollRecord, ...],
    ) -> RollOccurredData:
        return cls(**record.model_dump(), roll_history=history)


class RoomSnapshot(CamelModel):
    type: Literal["roomSnapshot"] = "roomSnapshot"
    data: RoomSnapshotData
    room_id: str | None = None


class UserCountChanged(CamelModel):
    type: Literal["userCountChanged"] = "userCountChanged"
    data: int = Field(..., ge=0)
    room_id: str | None = None


class RollOccurred(CamelModel):
    type: Literal["rollOccurred"] = "rollOccurred"
    data: RollOccurredData
    room_id: str | None = None


RoomEvent = Annotated[
    Union[RoomSnapshot, UserCountChanged, RollOccurred],
    Field(discriminator="type"),
]

_room_event_adapter: TypeAdapter[RoomEvent] = TypeAdapter(RoomEvent)


def encode_event(event: RoomSnapshot | UserCountChanged | RollOccurred) -> str:
    """把事件编码为线上 JSON 文本。"""
    return event.model_dump_json(by_alias=True)


def decode_event(raw: str | bytes) -> RoomSnapshot | UserCountChanged | RollOccurred:
    """解析线上 JSON 文本为事件对象（客户端 / 测试使用）。"""
    return _room_event_adapter.validate_json(raw)


# ── 客户端 → 服务端（WebSocket） ──────────────────────────────────────

class PlayerNameData(CamelModel):
    player_name: str = Field(default="", max_length=64)


class RollDiceMessage(CamelModel):
    type: Literal["rollDice"]
    data: RollRequest = Field(default_factory=RollRequest)


class UpdatePlayerNameMessage(CamelModel):
    type: Literal["updatePlayerName"]
    data: PlayerNameData = Field(default_factory=PlayerNameData)


ClientMessage = Annotated[
    Union[RollDiceMessage, UpdatePlayerNameMessage],
    Field(discriminator="type"),
]

_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def decode_client_message(raw: str | bytes) -> RollDiceMessage | UpdatePlayerNameMessage:
    """解析 WebSocket 客户端消息。

    Raises:
        pydantic.ValidationError: JSON 非法、``type`` 未知或字段不合法。
    """
    return _client_message_adapter.validate_json(raw)
