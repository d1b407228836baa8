"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 固定随机源、假连接、独立的掷骰系统与应用实例，
使每个测试都拿到互不干扰的全新房间状态。
"""
from __future__ import annotations

import asyncio
import os
import random
import time
from collections.abc import Callable

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("WS_RATE_LIMIT_INTERVAL", "0")

from fastapi import FastAPI  # noqa: E402

from app.core.exceptions import ConnectionWriteFailure  # noqa: E402
from app.core.settings import settings  # noqa: E402
from app.schemas.events import decode_event  # noqa: E402
from app.services.broadcast_hub import BroadcastHub  # noqa: E402
from app.services.dice_system import DiceSystem  # noqa: E402
from app.services.room_registry import RoomRegistry  # noqa: E402
from app.services.roll_engine import RollEngine  # noqa: E402

FIXED_TIMESTAMP: str = "2026-01-01T12:00:00+00:00"


class FakeConnection:
    """记录收到的消息；``fail=True`` 时模拟已断开的连接。"""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.closed = False
        self.messages: list[str] = []

    async def send(self, message: str) -> None:
        if self.closed or self.fail:
            raise ConnectionWriteFailure("connection reset by peer")
        self.messages.append(message)

    def close(self) -> None:
        self.closed = True

    @property
    def events(self) -> list:
        return [decode_event(m) for m in self.messages]

    def types(self) -> list[str]:
        return [event.type for event in self.events]


class StallingConnection(FakeConnection):
    """``stall()`` 之后每次写入都会挂起，直到 ``release()``，模拟网络很慢的客户端。"""

    def __init__(self) -> None:
        super().__init__()
        self._gate = asyncio.Event()
        self._gate.set()

    def stall(self) -> None:
        self._gate.clear()

    def release(self) -> None:
        self._gate.set()

    async def send(self, message: str) -> None:
        await self._gate.wait()
        await super().send(message)


@pytest.fixture()
def make_connection() -> Callable[..., FakeConnection]:
    return FakeConnection


@pytest.fixture()
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture()
def registry() -> RoomRegistry:
    return RoomRegistry(history_limit=5)


@pytest.fixture()
def hub(registry: RoomRegistry) -> BroadcastHub:
    return BroadcastHub(registry, send_timeout=1.0)


@pytest.fixture()
def engine(registry: RoomRegistry, rng: random.Random) -> RollEngine:
    return RollEngine(registry, rng=rng, clock=lambda: FIXED_TIMESTAMP)


@pytest.fixture()
def system(registry: RoomRegistry, hub: BroadcastHub, engine: RollEngine) -> DiceSystem:
    return DiceSystem(registry, hub, engine)


@pytest.fixture()
def app(rng: random.Random) -> FastAPI:
    from app.main import create_app

    return create_app(system=DiceSystem.from_settings(settings, rng=rng))


def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture()
def wait_until() -> Callable[..., bool]:
    """轮询等待条件成立（用于等待服务端处理完 WebSocket 断开）。"""
    return _wait_until


@pytest.fixture()
def make_stalling_connection() -> Callable[[], StallingConnection]:
    return StallingConnection
