from app.core.rate_limit import WebSocketRateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


# ==============================================================================
# 单元测试: 测试 WebSocketRateLimiter 逻辑
# ==============================================================================
def test_websocket_rate_limiter_unit():
    """测试 WebSocket 内存限流器的基础逻辑"""
    clock = FakeClock()
    limiter = WebSocketRateLimiter(interval_seconds=0.5, clock=clock)
    client_id = 999

    # 第一次掷骰应该允许
    assert limiter.is_allowed(client_id) is True

    # 立刻掷第二次应该被拦截
    clock.now += 0.1
    assert limiter.is_allowed(client_id) is False

    # 超过间隔时间后应该放行
    clock.now += 0.5
    assert limiter.is_allowed(client_id) is True


def test_clients_are_limited_independently():
    limiter = WebSocketRateLimiter(interval_seconds=1.0, clock=FakeClock())

    assert limiter.is_allowed(1) is True
    assert limiter.is_allowed(2) is True
    assert limiter.is_allowed(1) is False


def test_zero_interval_disables_limit():
    limiter = WebSocketRateLimiter(interval_seconds=0, clock=FakeClock())

    assert all(limiter.is_allowed(1) for _ in range(5))
