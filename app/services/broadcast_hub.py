"""
app.services.broadcast_hub
~~~~~~~~~~~~~~~~~~~~~~~~~~

房间广播器 —— 把一个事件编码一次，发送给房间内所有在线连接。

单个连接写入失败（异常或超时）只影响它自己：其它连接照常收到，
失败的连接被标记关闭并从注册表移除，异常不会抛给调用方。
"""
from __future__ import annotations

import asyncio

from app.core.logging import get_logger
from app.schemas.events import RollOccurred, RoomSnapshot, UserCountChanged, encode_event
from app.services.connection import Connection
from app.services.room_registry import RegistrationHandle, RoomRegistry

logger = get_logger(__name__)

Event = RoomSnapshot | UserCountChanged | RollOccurred


class BroadcastHub:
    """按房间广播事件。

    Attributes:
        registry: 房间注册表。
        send_timeout: 单个连接写入超时（秒），None 表示不限时。
    """

    def __init__(self, registry: RoomRegistry, send_timeout: float | None = 5.0) -> None:
        self.registry = registry
        self.send_timeout = send_timeout

    async def _deliver(self, connection: Connection, message: str) -> None:
        if self.send_timeout is None:
            await connection.send(message)
        else:
            await asyncio.wait_for(connection.send(message), timeout=self.send_timeout)

    async def send(self, handle: RegistrationHandle, event: Event) -> bool:
        """只向一个连接发送事件。

        Returns:
            是否发送成功；失败的连接会被移除。
        """
        await self._fan_out([handle], encode_event(event))
        return not handle.connection.closed

    async def emit(self, room_id: str, event: Event) -> int:
        """向房间内所有连接广播事件。

        Returns:
            本次广播中因写入失败而被移除的连接数。
        """
        handles = self.registry.handles_in_room(room_id)
        if not handles:
            return 0
        return await self._fan_out(handles, encode_event(event))

    async def _fan_out(self, handles: list[RegistrationHandle], message: str) -> int:
        live: list[RegistrationHandle] = []
        dropped = 0
        for handle in handles:
            if handle.connection.closed:
                dropped += self._drop(handle, "连接已关闭")
            else:
                live.append(handle)

        results = await asyncio.gather(
            *(self._deliver(h.connection, message) for h in live),
            return_exceptions=True,
        )
        for handle, result in zip(live, results):
            if isinstance(result, BaseException):
                dropped += self._drop(handle, repr(result))
        return dropped

    def _drop(self, handle: RegistrationHandle, reason: str) -> bool:
        handle.connection.close()
        if not self.registry.is_registered(handle):
            return False
        self.registry.unregister(handle)
        logger.warning(
            "广播失败，移除断开的连接 | room=%s | conn=%d | %s",
            handle.room_id, handle.connection_id, reason,
        )
        return True
