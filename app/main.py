"""
app.main
~~~~~~~~

FastAPI 应用入口 —— 组装掷骰系统、注册路由、挂载中间件、定义生命周期。

启动::

    python -m app.main          # 读取 HOST / PORT，端口被占用时自动尝试 +1
"""
from __future__ import annotations

import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import events, room, ws
from app.core.exceptions import BindFailure, describe_validation_errors
from app.core.logging import get_logger, setup_logging
from app.core.rate_limit import limiter
from app.core.server import bind_socket
from app.core.settings import settings
from app.services.dice_system import DiceSystem

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子，仅在 worker 启动/关闭时各执行一次。"""
    logger.info(
        "🚀 应用已启动 | env=%s | debug=%s | log_level=%s | history_limit=%d | max_dice=%d",
        settings.ENVIRONMENT,
        settings.debug,
        settings.effective_log_level,
        settings.ROLL_HISTORY_LIMIT,
        settings.MAX_DICE,
    )
    yield
    logger.info("👋 应用已关闭 | 剩余房间: %d", len(app.state.dice_system.registry))


# ── 全局异常处理器 ────────────────────────────────────────────────────

async def http_exception_handler(
    request: Request, exc: StarletteHTTPException,
) -> JSONResponse:
    """所有 HTTPException（含 MalformedRequest / RoomNotFound）统一渲染为 ``{"error": ...}``。"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    """请求体校验失败返回 400，非法 JSON 固定返回 ``Invalid JSON``。"""
    message = describe_validation_errors(exc.errors())
    logger.debug("请求校验失败: %s %s -> %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"error": message})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，避免返回 HTML 错误页面。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "Internal server error"
    return JSONResponse(status_code=500, content={"error": detail})


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

def create_app(system: DiceSystem | None = None) -> FastAPI:
    """创建应用实例。

    Args:
        system: 可选的掷骰系统实例（测试中注入固定随机源）；缺省按配置创建。
    """
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="多人实时掷骰房间服务",
        version=settings.VERSION,
        debug=settings.debug,
        lifespan=lifespan,
    )
    application.state.dice_system = system or DiceSystem.from_settings(settings)
    application.state.limiter = limiter

    # ── CORS 中间件 ──
    if settings.allow_cors_all_origins:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=[],
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    # ── 异常处理 ──
    application.add_exception_handler(StarletteHTTPException, http_exception_handler)
    application.add_exception_handler(RequestValidationError, validation_exception_handler)
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    application.add_exception_handler(Exception, global_exception_handler)

    # ── 路由挂载 ──
    application.include_router(room.router, tags=["Dice & Rooms"])
    application.include_router(events.router, tags=["Server-Sent Events"])
    application.include_router(ws.router, tags=["WebSocket"])

    @application.get("/health", tags=["System"])
    async def health_check() -> JSONResponse:
        """验证服务是否正常运行。"""
        return JSONResponse(
            content={
                "status": "ok",
                "environment": settings.ENVIRONMENT,
                "debug": settings.debug,
                "log_level": settings.effective_log_level,
                "rooms": len(application.state.dice_system.registry),
                "message": "Dice Sync 已就绪！🎲",
            },
        )

    return application


app: FastAPI = create_app()


def run() -> None:
    """绑定端口（占用时自动 +1）并启动 uvicorn。其它绑定错误直接退出。"""
    try:
        sock = bind_socket(settings.HOST, settings.PORT, settings.PORT_RETRY_LIMIT)
    except BindFailure as e:
        logger.critical("服务启动失败: %s", e)
        sys.exit(1)

    host, port = sock.getsockname()[:2]
    logger.info("🎲 Dice Sync 服务运行于 http://%s:%d", host, port)

    config = uvicorn.Config(app, log_level=settings.effective_log_level.lower())
    uvicorn.Server(config).run(sockets=[sock])


if __name__ == "__main__":
    run()
