"""Socket options applied to listening sockets before they bind."""

from __future__ import annotations

import socket
import sys
from collections.abc import Callable
from dataclasses import dataclass

ControlFunc = Callable[[socket.socket], None]

_SO_REUSEPORT = getattr(socket, "SO_REUSEPORT", 15)


@dataclass(frozen=True)
class ListenerSocketOpts:
    """Options for a listening socket; zero buffer sizes are left alone."""

    so_reuseport: bool = False
    so_rcvbuf: int = 0
    so_sndbuf: int = 0


_NO_OPTS = ListenerSocketOpts()


def _apply(sock: socket.socket, opts: ListenerSocketOpts) -> None:
    """Set each requested option; the first failure raises ``OSError``."""
    if opts.so_reuseport:
        sock.setsockopt(socket.SOL_SOCKET, _SO_REUSEPORT, 1)
    if opts.so_rcvbuf > 0:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, opts.so_rcvbuf)
    if opts.so_sndbuf > 0:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, opts.so_sndbuf)


def nop_control(sock: socket.socket) -> None:
    """Apply the empty option set, which leaves the socket unchanged."""
    _apply(sock, _NO_OPTS)


def listener_control(opts: ListenerSocketOpts) -> ControlFunc:
    """Return a function that applies ``opts`` to a socket.

    Options are applied on Linux only; elsewhere the socket is left as is.
    The first failing option raises ``OSError`` and the rest are skipped.
    """
    if not sys.platform.startswith("linux"):
        return nop_control

    def control(sock: socket.socket) -> None:
        _apply(sock, opts)

    return control