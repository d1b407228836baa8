"""
app.services.roll_engine
~~~~~~~~~~~~~~~~~~~~~~~~

掷骰引擎 —— 生成点数、写入房间状态。

随机源与时钟都可以注入：给定固定的随机序列，结果完全确定。
"""
from __future__ import annotations

import random
from collections.abc import Callable
from datetime import datetime, timezone

from app.core.exceptions import MalformedRequest, RoomNotFound
from app.core.logging import get_logger
from app.schemas.dice import RollRecord, RollRequest
from app.services.room_registry import RoomRegistry

logger = get_logger(__name__)

ANONYMOUS: str = "Anonymous"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def roll_dice(num_dice: int, dice_type: int, rng: random.Random) -> list[int]:
    """掷 ``num_dice`` 颗 ``dice_type`` 面的骰子，每颗独立均匀分布于 ``[1, dice_type]``。"""
    return [rng.randint(1, dice_type) for _ in range(num_dice)]


class RollEngine:
    """掷骰引擎。

    Attributes:
        registry: 房间注册表，用于查找房间状态。
        max_dice: 单次骰子数量上限，超出部分被截断。
        default_dice_type: 请求未指定面数时使用的默认值。
        require_room: 为 True 时，对不存在的房间掷骰会抛出 ``RoomNotFound``。
    """

    def __init__(
        self,
        registry: RoomRegistry,
        rng: random.Random | None = None,
        clock: Callable[[], str] | None = None,
        max_dice: int = 10,
        default_dice_type: int = 6,
        require_room: bool = True,
    ) -> None:
        self.registry = registry
        self.rng = rng or random.Random()
        self.clock = clock or _utc_now_iso
        self.max_dice = max_dice
        self.default_dice_type = default_dice_type
        self.require_room = require_room

    def roll(self, room_id: str, request: RollRequest) -> RollRecord:
        """为指定房间掷一次骰子并更新房间状态。

        Args:
            room_id: 目标房间。
            request: 掷骰请求（面数、数量、昵称）。

        Returns:
            本次掷骰结果。

        Raises:
            MalformedRequest: 骰子面数小于 2。
            RoomNotFound: ``require_room`` 为 True 且房间不存在。
        """
        dice_type = request.dice_type or self.default_dice_type
        if dice_type < 2:
            raise MalformedRequest("diceType must be at least 2")
        num_dice = max(1, min(request.num_dice or 1, self.max_dice))
        player_name = (request.player_name or "").strip() or ANONYMOUS

        state = self.registry.get_state(room_id)
        if state is None and self.require_room:
            raise RoomNotFound(room_id)

        rolls = roll_dice(num_dice, dice_type, self.rng)
        record = RollRecord(
            rolls=tuple(rolls),
            total=sum(rolls),
            dice_type=dice_type,
            num_dice=num_dice,
            rolled_by=player_name,
            timestamp=self.clock(),
        )

        # 房间不存在（且不要求房间）时不保留任何状态
        if state is not None:
            state.apply_roll(record)

        logger.info(
            "%s 掷出 %dd%d: %s = %d | room=%s",
            player_name, num_dice, dice_type, rolls, record.total, room_id,
        )
        return record
