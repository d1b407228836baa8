"""
app.core.server
~~~~~~~~~~~~~~~

监听端口绑定 —— 端口被占用时依次尝试 ``port+1``、``port+2`` ……

由进程自己完成 ``bind``，再把已绑定的 socket 交给 uvicorn，
这样"端口占用"与"其它绑定错误"可以被区分处理。
"""
from __future__ import annotations

import errno
import socket

from app.core.exceptions import BindFailure
from app.core.logging import get_logger

logger = get_logger(__name__)


def _family_for(host: str) -> socket.AddressFamily:
    return socket.AF_INET6 if ":" in host else socket.AF_INET


def bind_socket(host: str, port: int, max_attempts: int = 10) -> socket.socket:
    """绑定一个可用的监听端口。

    Args:
        host: 监听地址。
        port: 首选端口。
        max_attempts: 最多尝试的端口数（含首选端口）。

    Returns:
        已 ``bind`` 并 ``listen`` 的 socket。

    Raises:
        BindFailure: 遇到非 ``EADDRINUSE`` 的错误，或所有候选端口都被占用。
    """
    for candidate in range(port, port + max_attempts):
        sock = socket.socket(_family_for(host), socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, candidate))
        except OSError as e:
            sock.close()
            if e.errno == errno.EADDRINUSE:
                logger.warning("端口 %d 已被占用，尝试端口 %d ...", candidate, candidate + 1)
                continue
            raise BindFailure(host, candidate, str(e)) from e
        sock.listen(socket.SOMAXCONN)
        sock.set_inheritable(True)
        return sock

    raise BindFailure(
        host, port + max_attempts - 1, f"连续 {max_attempts} 个端口均被占用",
    )
