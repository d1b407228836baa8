"""
app.core.rate_limit
~~~~~~~~~~~~~~~~~~~

HTTP 接口与 WebSocket 掷骰的限流配置。
"""
from __future__ import annotations

import time
from collections.abc import Callable, Hashable

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.settings import settings

# --------- HTTP 接口限流器 ---------
# 基于客户端 IP 地址进行限流，RATE_LIMIT_ENABLED=false 时整体关闭
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=settings.RATE_LIMIT_ENABLED,
)


# --------- WebSocket 限流器 ---------
class WebSocketRateLimiter:
    """基于内存的简单 WebSocket 掷骰限流器。

    记录每个连接上一次被放行的时间，间隔不足 ``interval_seconds`` 的请求被拒绝。
    ``interval_seconds`` 为 0 时不限流。
    """

    def __init__(
        self,
        interval_seconds: float = 0.3,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._last_message_time: dict[Hashable, float] = {}

    def is_allowed(self, client_id: Hashable) -> bool:
        """检查客户端是否允许发送消息。

        Args:
            client_id: 客户端唯一标识（如 ``id(websocket)``）。

        Returns:
            是否允许发送。如果允许，则同时更新上次发送时间。
        """
        if self.interval_seconds <= 0:
            return True

        now = self._clock()
        last_time = self._last_message_time.get(client_id)
        if last_time is None or now - last_time >= self.interval_seconds:
            self._last_message_time[client_id] = now
            return True
        return False
