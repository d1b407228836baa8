"""
app.core.exceptions
~~~~~~~~~~~~~~~~~~~

集中定义业务异常。

需要以 HTTP 响应返回给调用方的异常继承 ``HTTPException``，
由 ``app.main`` 中的全局处理器统一渲染为 ``{"error": detail}``；
仅在进程内部处理的异常（写连接失败、端口绑定失败）继承普通 ``Exception``。
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from fastapi import HTTPException, status


class MalformedRequest(HTTPException):
    """请求体无法解析或字段不合法。"""

    def __init__(self, detail: str = "Invalid request") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class RoomNotFound(HTTPException):
    """目标房间不存在（没有任何在线连接）。"""

    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")


class ConnectionWriteFailure(Exception):
    """向已断开 / 已过期的连接写入失败。只在进程内部处理，不会返回给任何客户端。"""


class BindFailure(Exception):
    """监听端口绑定失败（非端口占用错误，或重试次数耗尽）。"""

    def __init__(self, host: str, port: int, reason: str) -> None:
        self.host = host
        self.port = port
        super().__init__(f"无法绑定 {host}:{port} -> {reason}")


def describe_validation_errors(errors: Sequence[Mapping[str, Any]]) -> str:
    """把 pydantic 校验错误列表压缩成一条对外的错误信息。

    非法 JSON 固定为 ``Invalid JSON``，否则取第一条错误，形如 ``diceType: <msg>``。
    """
    if any(err.get("type") == "json_invalid" for err in errors):
        return "Invalid JSON"
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
