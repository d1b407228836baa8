"""
app.services.dice_system
~~~~~~~~~~~~~~~~~~~~~~~~

掷骰系统 —— 进程内唯一的协调者，串起注册表、广播器与掷骰引擎。

在 FastAPI lifespan 中创建并挂载于 ``app.state.dice_system``，
各传输层通过依赖注入拿到它，不引用任何模块级全局状态。

连接的生命周期::

    Connecting ──join()──▶ Joined(room_id) ──▶ [接收事件] ──leave()──▶ Closed

同一房间内的事件（加入、离开、掷骰）在房间锁内逐个处理完毕（含广播），
因此每个连接看到的事件顺序与发出顺序一致；不同房间互不阻塞。
"""
from __future__ import annotations

import asyncio
import random
import weakref
from collections.abc import Coroutine
from typing import Any

from app.core.exceptions import RoomNotFound
from app.core.logging import get_logger
from app.core.settings import Settings
from app.schemas.dice import RollRecord, RollRequest, RoomSnapshotData, RoomSummary
from app.schemas.events import RollOccurred, RollOccurredData, RoomSnapshot, UserCountChanged
from app.services.broadcast_hub import BroadcastHub
from app.services.connection import Connection
from app.services.room_registry import RegistrationHandle, RoomRegistry
from app.services.roll_engine import RollEngine

logger = get_logger(__name__)


class DiceSystem:
    """掷骰系统。

    - ``join(room_id, connection)`` → 注册连接，单独下发房间快照，广播在线人数
    - ``leave(handle)``             → 注销连接，向剩余成员广播在线人数
    - ``roll(room_id, request)``    → 掷骰并广播结果
    - ``list_rooms()``              → 列出所有存活房间

    Attributes:
        registry: 房间注册表。
        hub: 房间广播器。
        engine: 掷骰引擎。
        default_room_id: 未指定房间时使用的房间 ID。
    """

    def __init__(
        self,
        registry: RoomRegistry,
        hub: BroadcastHub,
        engine: RollEngine,
        default_room_id: str = "default",
    ) -> None:
        self.registry = registry
        self.hub = hub
        self.engine = engine
        self.default_room_id = default_room_id
        # 锁只在有人持有/等待时存活，房间删除后不会遗留
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._background: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls, settings: Settings, rng: random.Random | None = None,
    ) -> DiceSystem:
        """按配置组装一个完整的系统实例。"""
        registry = RoomRegistry(history_limit=settings.ROLL_HISTORY_LIMIT)
        hub = BroadcastHub(registry, send_timeout=settings.BROADCAST_SEND_TIMEOUT)
        engine = RollEngine(
            registry,
            rng=rng,
            max_dice=settings.MAX_DICE,
            default_dice_type=settings.DEFAULT_DICE_TYPE,
            require_room=settings.ROLL_REQUIRES_ROOM,
        )
        return cls(registry, hub, engine, default_room_id=settings.DEFAULT_ROOM_ID)

    def resolve_room_id(self, room_id: str | None) -> str:
        """空白或缺省的房间 ID 归一为默认房间。"""
        if room_id is None or not room_id.strip():
            return self.default_room_id
        return room_id.strip()

    def _lock_for(self, room_id: str) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[room_id] = lock
        return lock

    # ── 连接生命周期 ──────────────────────────────────────────────────

    async def join(self, room_id: str | None, connection: Connection) -> RegistrationHandle:
        """Connecting → Joined：注册，单独下发快照，向全房间广播在线人数。"""
        room_id = self.resolve_room_id(room_id)
        lock = self._lock_for(room_id)
        async with lock:
            handle = self.registry.register(room_id, connection)
            state = self.registry.get_state(room_id)
            logger.info(
                "用户进入房间 | room=%s | conn=%d | 在线: %d",
                room_id, handle.connection_id, state.connected_users,
            )
            try:
                await self.hub.send(handle, RoomSnapshot(data=state.snapshot(), room_id=room_id))
                await self._broadcast_user_count(room_id)
            except BaseException:
                # 加入过程中被取消：调用方拿不到 handle，必须在这里注销
                handle.connection.close()
                remaining = self.registry.unregister(handle)
                logger.info("加入房间被中断 | room=%s | conn=%d", room_id, handle.connection_id)
                if remaining is not None:
                    self._spawn(self._announce_user_count(room_id))
                raise
        return handle

    async def leave(self, handle: RegistrationHandle) -> None:
        """→ Closed：停止写入，注销，向剩余成员广播在线人数。重复调用无副作用。"""
        handle.connection.close()
        if not self.registry.is_registered(handle):
            return

        state = self.registry.unregister(handle)
        logger.info(
            "用户离开房间 | room=%s | conn=%d | 在线: %d",
            handle.room_id, handle.connection_id,
            state.connected_users if state is not None else 0,
        )
        if state is None:
            # 房间已随最后一个连接一起删除，无人需要通知
            return
        await self._announce_user_count(handle.room_id)

    # ── 掷骰 ──────────────────────────────────────────────────────────

    async def roll(self, room_id: str | None, request: RollRequest) -> RollRecord:
        """掷骰并向房间广播 ``rollOccurred``。

        Raises:
            RoomNotFound: 房间不存在且配置要求房间必须存在。
            MalformedRequest: 请求参数不合法。
        """
        room_id = self.resolve_room_id(room_id)
        lock = self._lock_for(room_id)
        async with lock:
            record = self.engine.roll(room_id, request)
            state = self.registry.get_state(room_id)
            history = state.roll_history if state is not None else (record,)
            event = RollOccurred(
                data=RollOccurredData.from_record(record, history), room_id=room_id,
            )
            if await self.hub.emit(room_id, event):
                await self._broadcast_user_count(room_id)
        return record

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _announce_user_count(self, room_id: str) -> None:
        async with self._lock_for(room_id):
            await self._broadcast_user_count(room_id)

    async def _broadcast_user_count(self, room_id: str) -> None:
        # 广播过程中可能又移除了失效连接，人数变化后需要重新通知，直到没有连接被移除
        while True:
            state = self.registry.get_state(room_id)
            if state is None:
                return
            event = UserCountChanged(data=state.connected_users, room_id=room_id)
            if not await self.hub.emit(room_id, event):
                return

    # ── 只读查询 ──────────────────────────────────────────────────────

    def list_rooms(self) -> list[RoomSummary]:
        return self.registry.list_rooms()

    def room_snapshot(self, room_id: str) -> RoomSnapshotData:
        """返回房间完整快照。

        Raises:
            RoomNotFound: 房间不存在。
        """
        state = self.registry.get_state(room_id)
        if state is None:
            raise RoomNotFound(room_id)
        return state.snapshot()
