"""
app.services.connection
~~~~~~~~~~~~~~~~~~~~~~~

连接适配器 —— 把不同传输方式统一成 ``Connection`` 协议。

广播器只依赖 ``send(message)`` 与 ``closed``：

- ``WebSocketConnection``：直接写 WebSocket 文本帧。
- ``QueueConnection``：写入有界队列，由 SSE 响应协程取出发送；
  队列溢出说明客户端跟不上，视为写失败并断开。
"""
from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from fastapi import WebSocket

from app.core.exceptions import ConnectionWriteFailure


@runtime_checkable
class Connection(Protocol):
    """可写连接。``closed`` 为 True 后不再接受任何写入。"""

    closed: bool

    async def send(self, message: str) -> None: ...

    def close(self) -> None: ...


class WebSocketConnection:
    """WebSocket 连接适配器。"""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.closed = False

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionWriteFailure("WebSocket 已关闭")
        try:
            await self.websocket.send_text(message)
        except Exception as e:
            self.closed = True
            raise ConnectionWriteFailure(str(e)) from e

    def close(self) -> None:
        self.closed = True


class QueueConnection:
    """基于 ``asyncio.Queue`` 的连接适配器（SSE 使用）。

    ``None`` 作为结束标记放入队列，消费端读到后停止。
    """

    def __init__(self, maxsize: int = 64) -> None:
        # 预留一个位置给结束标记
        self.queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self.closed = False

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionWriteFailure("连接已关闭")
        if self.queue.qsize() >= self._maxsize:
            self.close()
            raise ConnectionWriteFailure("发送队列已满，客户端消费过慢")
        self.queue.put_nowait(message)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.queue.put_nowait(None)

    async def receive(self) -> str | None:
        """取出下一条待发送消息；连接关闭后返回 None。"""
        return await self.queue.get()
