from typing import Any, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from sockhub.core.connections.handler import ConnectionHandler


class MessageListener(Protocol):
    """
    Callback invoked for every payload received on a connection.

    It runs synchronously inside the receive task of the connection that
    got the payload, so it must not block: a slow listener stalls the
    reading of that connection.
    """

    def __call__(self, handler: "ConnectionHandler", payload: Any) -> None:
        ...


class DisconnectListener(Protocol):
    """
    Callback invoked exactly once when a connection closes, before its
    resources are released. The handler identity and name are still
    available at that point.
    """

    def __call__(self, handler: "ConnectionHandler") -> None:
        ...


class ConnectionListener(Protocol):
    """
    Callback invoked by a ServerHandler after an accepted connection has
    been registered and started receiving.
    """

    def __call__(self, handler: "ConnectionHandler") -> None:
        ...
