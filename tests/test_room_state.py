"""
tests.test_room_state
~~~~~~~~~~~~~~~~~~~~~

RoomState 单元测试：历史上限、淘汰顺序、快照。
"""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.schemas.dice import RollRecord
from app.services.room_state import RoomState


def make_record(value: int, rolled_by: str = "Alice") -> RollRecord:
    return RollRecord(
        rolls=(value,),
        total=value,
        dice_type=6,
        num_dice=1,
        rolled_by=rolled_by,
        timestamp=f"t{value}",
    )


class TestRoomState:

    def test_fresh_state_is_empty(self) -> None:
        state = RoomState("r1")

        snapshot = state.snapshot()
        assert snapshot.last_roll is None
        assert snapshot.rolled_by is None
        assert snapshot.timestamp is None
        assert snapshot.connected_users == 0
        assert snapshot.roll_history == ()

    def test_apply_roll_overwrites_last_roll(self) -> None:
        state = RoomState("r1")

        state.apply_roll(make_record(3, "Alice"))
        state.apply_roll(make_record(5, "Bob"))

        assert state.last_roll == (5,)
        assert state.rolled_by == "Bob"
        assert state.timestamp == "t5"

    def test_history_is_most_recent_first(self) -> None:
        state = RoomState("r1", history_limit=10)

        for value in (1, 2, 3):
            state.apply_roll(make_record(value))

        assert [r.total for r in state.roll_history] == [3, 2, 1]

    def test_history_never_exceeds_limit_and_evicts_oldest(self) -> None:
        state = RoomState("r1", history_limit=3)

        for value in range(1, 8):
            state.apply_roll(make_record(value))
            assert len(state.roll_history) <= 3

        assert [r.total for r in state.roll_history] == [7, 6, 5]

    def test_invalid_history_limit(self) -> None:
        with pytest.raises(ValueError):
            RoomState("r1", history_limit=0)

    def test_snapshot_is_detached_from_later_rolls(self) -> None:
        state = RoomState("r1")
        state.apply_roll(make_record(2))
        snapshot = state.snapshot()

        state.apply_roll(make_record(4))

        assert snapshot.last_roll == (2,)
        assert len(snapshot.roll_history) == 1

    def test_roll_record_is_immutable(self) -> None:
        record = make_record(1)

        with pytest.raises(ValidationError):
            record.total = 99  # type: ignore[misc]

    def test_summary(self) -> None:
        state = RoomState("lobby")
        state.connected_users = 2
        state.apply_roll(make_record(6))

        summary = state.summary()

        assert summary.id == "lobby"
        assert summary.connected_users == 2
        assert summary.last_activity == "t6"
