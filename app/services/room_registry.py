"""
app.services.room_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~

连接注册表 —— 按房间维护在线连接与房间状态。

房间在第一个连接注册时懒创建，最后一个连接注销时同步删除，
因此不同房间 ID 反复连接/断开不会遗留任何状态。

所有读取接口返回防御性拷贝，广播过程中增删连接是安全的。
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field

from app.core.logging import get_logger
from app.schemas.dice import RoomSummary
from app.services.connection import Connection
from app.services.room_state import RoomState

logger = get_logger(__name__)


@dataclass(frozen=True)
class RegistrationHandle:
    """注册凭证，用于之后注销。"""

    room_id: str
    connection_id: int
    connection: Connection = field(compare=False, repr=False)


class _Room:
    __slots__ = ("state", "connections")

    def __init__(self, state: RoomState) -> None:
        self.state = state
        # connection_id -> handle，保持注册顺序
        self.connections: dict[int, RegistrationHandle] = {}


class RoomRegistry:
    """房间 → 在线连接 的注册表。

    由 ``DiceSystem`` 持有，进程内一个实例；测试中可以随意创建多个独立实例。

    Attributes:
        history_limit: 新建房间的掷骰历史上限。
    """

    def __init__(self, history_limit: int = 20) -> None:
        self.history_limit = history_limit
        self._rooms: dict[str, _Room] = {}
        self._ids = itertools.count(1)

    def register(self, room_id: str, connection: Connection) -> RegistrationHandle:
        """把连接加入房间（房间不存在则创建），在线人数 +1。"""
        room = self._rooms.get(room_id)
        if room is None:
            room = _Room(RoomState(room_id, history_limit=self.history_limit))
            self._rooms[room_id] = room
            logger.info("房间已创建 | room=%s", room_id)

        handle = RegistrationHandle(
            room_id=room_id, connection_id=next(self._ids), connection=connection,
        )
        room.connections[handle.connection_id] = handle
        room.state.connected_users = len(room.connections)
        return handle

    def unregister(self, handle: RegistrationHandle) -> RoomState | None:
        """把连接移出房间，在线人数 -1；人数归零时删除房间。

        重复注销同一个 handle 不会产生任何效果。

        Returns:
            注销后房间仍存在时返回其状态，否则返回 None。
        """
        room = self._rooms.get(handle.room_id)
        if room is None or room.connections.pop(handle.connection_id, None) is None:
            return None

        room.state.connected_users = len(room.connections)
        if not room.connections:
            del self._rooms[handle.room_id]
            logger.info("房间已清空并删除 | room=%s", handle.room_id)
            return None
        return room.state

    def is_registered(self, handle: RegistrationHandle) -> bool:
        room = self._rooms.get(handle.room_id)
        return room is not None and handle.connection_id in room.connections

    def handles_in_room(self, room_id: str) -> list[RegistrationHandle]:
        """房间内所有连接凭证的快照（按注册顺序）。"""
        room = self._rooms.get(room_id)
        if room is None:
            return []
        return list(room.connections.values())

    def connections_in_room(self, room_id: str) -> list[Connection]:
        """房间内所有连接的快照（按注册顺序）。"""
        return [handle.connection for handle in self.handles_in_room(room_id)]

    def get_state(self, room_id: str) -> RoomState | None:
        room = self._rooms.get(room_id)
        return room.state if room is not None else None

    def list_rooms(self) -> list[RoomSummary]:
        """所有存活房间的摘要快照。"""
        return [room.state.summary() for room in self._rooms.values()]

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
