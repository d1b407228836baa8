"""
app.services.room_state
~~~~~~~~~~~~~~~~~~~~~~~

房间状态领域模型 —— 最近一次掷骰、掷骰历史、在线人数。

``RoomState`` 由 ``RoomRegistry`` 创建与销毁，由 ``RollEngine`` 修改，
对外只通过 ``snapshot()`` 暴露不可变快照。
"""
from __future__ import annotations

from collections import deque

from app.schemas.dice import RollRecord, RoomSnapshotData, RoomSummary


class RoomState:
    """单个房间的可变状态。

    Attributes:
        room_id: 房间唯一标识。
        last_roll: 最近一次掷骰的点数，尚未掷骰时为 None。
        rolled_by: 最近一次掷骰者。
        timestamp: 最近一次掷骰时间（仅用于展示）。
        connected_users: 当前在线连接数，由 ``RoomRegistry`` 维护。
        history_limit: 掷骰历史上限。
    """

    def __init__(self, room_id: str, history_limit: int = 20) -> None:
        if history_limit < 1:
            raise ValueError("history_limit 必须 >= 1")
        self.room_id = room_id
        self.history_limit = history_limit
        self.last_roll: tuple[int, ...] | None = None
        self.rolled_by: str | None = None
        self.timestamp: str | None = None
        self.connected_users: int = 0
        # 左侧为最新；appendleft 超出 maxlen 时自动从右侧淘汰最旧的记录
        self._history: deque[RollRecord] = deque(maxlen=history_limit)

    @property
    def roll_history(self) -> tuple[RollRecord, ...]:
        """掷骰历史（新 → 旧）。"""
        return tuple(self._history)

    def apply_roll(self, record: RollRecord) -> None:
        """记录一次掷骰：覆盖最近结果并插入历史头部。"""
        self.last_roll = record.rolls
        self.rolled_by = record.rolled_by
        self.timestamp = record.timestamp
        self._history.appendleft(record)

    def snapshot(self) -> RoomSnapshotData:
        return RoomSnapshotData(
            last_roll=self.last_roll,
            rolled_by=self.rolled_by,
            timestamp=self.timestamp,
            connected_users=self.connected_users,
            roll_history=self.roll_history,
        )

    def summary(self) -> RoomSummary:
        return RoomSummary(
            id=self.room_id,
            connected_users=self.connected_users,
            last_activity=self.timestamp,
        )
