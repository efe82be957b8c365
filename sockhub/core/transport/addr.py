import socket
from typing import Any


def _as_address(info: Any) -> tuple[str, int] | None:
    if isinstance(info, (list, tuple)) and len(info) >= 2:
        return str(info[0]), int(info[1])
    return None


def get_remote_addr(transport: Any) -> tuple[str, int] | None:
    """
    Return the (host, port) of the peer of an asyncio transport or
    StreamWriter, or None when it cannot be determined.
    """
    sock = transport.get_extra_info("socket")
    if sock is not None:
        try:
            return _as_address(sock.getpeername())
        except OSError:
            return None

    return _as_address(transport.get_extra_info("peername"))


def get_local_addr(transport: Any) -> tuple[str, int] | None:
    """
    Return the local (host, port) of an asyncio transport or StreamWriter,
    or None when it cannot be determined.
    """
    sock = transport.get_extra_info("socket")
    if sock is not None:
        try:
            return _as_address(sock.getsockname())
        except OSError:
            return None

    return _as_address(transport.get_extra_info("sockname"))


def is_connected(sock: socket.socket) -> bool:
    """
    Return True if the socket is open and has a peer.
    """
    if sock.fileno() == -1:
        return False

    try:
        sock.getpeername()
    except OSError:
        return False

    return True
