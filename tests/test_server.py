"""
tests.test_server
~~~~~~~~~~~~~~~~~

端口绑定测试：占用时自动尝试下一个端口，其它错误直接失败。
"""
from __future__ import annotations

import errno
import socket
from unittest.mock import MagicMock, patch

import pytest

from app.core.exceptions import BindFailure
from app.core.server import bind_socket


def test_binds_requested_port_when_free() -> None:
    scratch = socket.socket()
    scratch.bind(("127.0.0.1", 0))
    port = scratch.getsockname()[1]
    scratch.close()

    sock = bind_socket("127.0.0.1", port, max_attempts=5)
    try:
        assert port <= sock.getsockname()[1] < port + 5
    finally:
        sock.close()


def test_retries_next_port_when_in_use() -> None:
    occupied = socket.socket()
    occupied.bind(("127.0.0.1", 0))
    occupied.listen()
    port = occupied.getsockname()[1]
    try:
        sock = bind_socket("127.0.0.1", port, max_attempts=5)
        try:
            bound = sock.getsockname()[1]
            assert port < bound < port + 5
        finally:
            sock.close()
    finally:
        occupied.close()


def _fake_socket(bind_error: OSError | None) -> MagicMock:
    fake = MagicMock()
    if bind_error is not None:
        fake.bind.side_effect = bind_error
    return fake


def test_other_bind_errors_are_fatal() -> None:
    denied = OSError(errno.EACCES, "Permission denied")
    with patch("app.core.server.socket.socket", return_value=_fake_socket(denied)):
        with pytest.raises(BindFailure) as exc_info:
            bind_socket("127.0.0.1", 80, max_attempts=5)

    assert exc_info.value.port == 80


def test_gives_up_after_max_attempts() -> None:
    in_use = OSError(errno.EADDRINUSE, "Address already in use")
    fakes = [_fake_socket(in_use) for _ in range(3)]
    with patch("app.core.server.socket.socket", side_effect=fakes):
        with pytest.raises(BindFailure):
            bind_socket("127.0.0.1", 4000, max_attempts=3)

    assert [f.bind.call_args.args[0] for f in fakes] == [
        ("127.0.0.1", 4000), ("127.0.0.1", 4001), ("127.0.0.1", 4002),
    ]
    assert all(f.close.called for f in fakes)
