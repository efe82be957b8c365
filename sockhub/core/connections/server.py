import asyncio
import logging
import socket
from typing import Any

from sockhub.core.connections.handler import ConnectionHandler
from sockhub.core.errors import InvalidArgument, IOFailure
from sockhub.core.helpers.listeners import ListenerSet
from sockhub.core.helpers.spawn import TaskSpawner
from sockhub.core.helpers.utils import describe_address
from sockhub.core.models.config import ServerConfig
from sockhub.core.models.listeners import ConnectionListener, DisconnectListener, MessageListener
from sockhub.core.ports.serializer import Serializer
from sockhub.infra.msgpack_serializer import MsgPackSerializer


class ServerHandler:
    """
    Accepts connections on a listening socket and keeps a registry of the
    ConnectionHandlers it created.

    The server attaches itself to every accepted handler as a message and
    disconnect listener, forming a hub: events of each client flow up to
    the server, and the server pushes payloads down to the clients. By
    default every payload received from any client is broadcast to all
    registered clients, the sender included, which makes the server a
    relay. Installing another message_listener changes that behavior for
    existing and future connections alike.

    Accepting happens in batches: start_accepting(n) runs one accept task
    that takes up to n connections, one at a time, and then stops without
    closing the listening socket. A new batch can be started afterwards as
    long as the server has not been closed.

    Teardown is split in three steps:
    - close_listening() stops future accepts, existing clients keep going
    - clear_connections() closes and forgets every registered client
    - shutdown() does both and terminates the execution context
    """
    def __init__(
        self,
        sock: socket.socket,
        serializer: Serializer | None = None,
        config: ServerConfig | None = None,
    ) -> None:
        if sock is None:
            raise InvalidArgument("The listening socket is None")

        self._socket = sock
        self._socket.setblocking(False)
        self._config = config or ServerConfig()
        self._serializer = serializer or MsgPackSerializer()

        self._connections: list[ConnectionHandler] = []
        self._retired: list[ConnectionHandler] = []
        self._connection_listeners: ListenerSet[ConnectionListener] = ListenerSet("connection listeners")
        self._disconnect_listeners: ListenerSet[DisconnectListener] = ListenerSet("disconnect listeners")
        self._message_listener: MessageListener = self.relay_to_all

        self.failure: Exception | None = None
        self._spawner = TaskSpawner(name="server")
        self._accept_task: asyncio.Task | None = None
        self._listening = False
        self._closed = False

        self._logger = logging.getLogger("core.connections.server")

    @classmethod
    def listen(
        cls,
        config: ServerConfig | None = None,
        serializer: Serializer | None = None,
    ) -> "ServerHandler":
        """
        Bind a new listening socket on config.host/config.port.

        With port 0 the OS picks an ephemeral port, see `address`.
        """
        config = config or ServerConfig()
        try:
            sock = socket.create_server((config.host, config.port), backlog=config.backlog)
        except OSError as ex:
            raise IOFailure(f"Unable to listen on {config.host}:{config.port}: {ex}") from ex

        return cls(sock, serializer, config)

    @property
    def address(self) -> tuple[str, int] | None:
        if self._socket.fileno() == -1:
            return None
        host, port = self._socket.getsockname()[:2]
        return host, port

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def connection_count(self) -> int:
        """
        Number of registered handlers. Closed handlers stay registered until
        clear_connections() or drop() is called.
        """
        return len(self._connections)

    @property
    def connections(self) -> tuple[ConnectionHandler, ...]:
        return tuple(self._connections)

    @property
    def message_listener(self) -> MessageListener:
        return self._message_listener

    @message_listener.setter
    def message_listener(self, listener: MessageListener | None) -> None:
        if listener is None:
            return
        self._message_listener = listener

    def add_connection_listener(self, listener: ConnectionListener | None) -> None:
        self._connection_listeners.add(listener)

    def remove_connection_listener(self, listener: ConnectionListener | None) -> None:
        self._connection_listeners.remove(listener)

    def add_disconnect_listener(self, listener: DisconnectListener | None) -> None:
        self._disconnect_listeners.add(listener)

    def remove_disconnect_listener(self, listener: DisconnectListener | None) -> None:
        self._disconnect_listeners.remove(listener)

    def start_accepting(self, max_clients: int) -> None:
        """
        Start an accept task taking up to max_clients connections.

        Does nothing while a batch is already running or once the server
        has been closed.
        """
        if max_clients < 1:
            raise InvalidArgument("The number of clients must be greater than 0")
        if self._listening or self._closed or self._spawner.is_shutdown:
            return

        self._listening = True
        self._accept_task = self._spawner.spawn(self._accept_loop(max_clients), name="accept")

    def attach(self, handler: ConnectionHandler) -> None:
        """
        Wire a connection into the hub and register it.

        Used by the accept task for every accepted socket. Attaching a
        handler that is already registered does nothing.
        """
        if handler is None:
            raise InvalidArgument("The connection handler is None")
        if handler in self._connections:
            return

        handler.add_message_listener(self._relay_message)
        handler.add_disconnect_listener(self._relay_disconnect)
        handler.name = self._config.connection_name
        handler.start_receiving()

        self._connections.append(handler)
        self._logger.info(f"{handler} - Connection registered ({len(self._connections)} total)")

        self._connection_listeners.notify(handler)

    def close_listening(self) -> None:
        """
        Close the listening socket. Registered connections are not affected.
        """
        if self._closed:
            return

        self._closed = True
        self._listening = False

        if self._accept_task is not None:
            self._accept_task.cancel()

        try:
            self._socket.close()
        except OSError as ex:
            self.failure = IOFailure(f"Error while closing the listening socket: {ex}")
            raise self.failure from ex

        self._logger.info("Listening socket closed")

    def clear_connections(self) -> None:
        """
        Close every registered connection and empty the registry.

        The server keeps accepting if a batch is running. The first close
        error, if any, is raised once every handler has been closed.
        """
        connections = tuple(self._connections)
        errors: list[IOFailure] = []

        for handler in connections:
            try:
                handler.close()
            except IOFailure as ex:
                errors.append(ex)

        # Disconnect listeners may already have dropped some of them
        removed = [handler for handler in connections if handler in self._connections]
        self._connections = [handler for handler in self._connections if handler not in connections]
        self._retire(*removed)

        if errors:
            raise errors[0]

    def drop(self, handler: ConnectionHandler | None) -> None:
        """
        Close one connection and remove it from the registry.

        The handler is kept for wait_closed() until its tasks are done.
        """
        if handler is None or handler not in self._connections:
            return

        self._connections.remove(handler)
        self._retire(handler)
        handler.close()

    def shutdown(self) -> None:
        """
        Stop accepting, close every connection and terminate the execution
        context of the server. The server cannot be restarted.
        """
        try:
            self.close_listening()
        finally:
            try:
                self.clear_connections()
            finally:
                self._spawner.shutdown()

    async def wait_closed(self, timeout: float | None = None) -> None:
        """
        Wait for the server tasks and for the connections closed through
        this server to finish.
        """
        await self._spawner.wait(timeout)

        retired, self._retired = self._retired, []
        if retired:
            await asyncio.gather(
                *(handler.wait_closed(timeout) for handler in retired),
                return_exceptions=True
            )

    def broadcast(self, payload: Any, exclude: ConnectionHandler | None = None) -> None:
        """
        Send a payload to every registered, open connection, except
        `exclude` when given. Returns immediately.
        """
        if payload is None or self._spawner.is_shutdown:
            return

        self._spawner.spawn(self._fan_out(payload, exclude), name="broadcast")

    def send_to(self, handler: ConnectionHandler | None, payload: Any) -> None:
        """
        Send a payload to a single connection. Returns immediately.
        """
        if handler is None or payload is None or self._spawner.is_shutdown:
            return

        self._spawner.spawn(self._deliver(handler, payload), name="send_to")

    def relay_to_all(self, handler: ConnectionHandler, payload: Any) -> None:
        """Default message listener: broadcast to every client, sender included."""
        self.broadcast(payload)

    def relay_to_others(self, handler: ConnectionHandler, payload: Any) -> None:
        """Message listener broadcasting to every client but the sender."""
        self.broadcast(payload, exclude=handler)

    def _retire(self, *handlers: ConnectionHandler) -> None:
        # Keep closed handlers for wait_closed() only until their tasks are done
        self._retired = [handler for handler in self._retired if not handler.finished]
        self._retired.extend(handlers)

    async def _accept_loop(self, max_clients: int) -> None:
        loop = asyncio.get_running_loop()
        accepted = 0
        self._logger.info(
            f"Accepting up to {max_clients} client(s) on {describe_address(self.address)}"
        )

        try:
            while not self._closed and accepted < max_clients:
                try:
                    sock, address = await loop.sock_accept(self._socket)
                except OSError as ex:
                    if self._closed:
                        # The listening socket was closed while accept() was pending
                        break
                    self.failure = IOFailure(f"Accept failed: {ex}")
                    self._logger.error(str(self.failure), exc_info=ex)
                    raise self.failure from ex

                accepted += 1
                await self._register(sock, address)
        finally:
            self._listening = False
            self._accept_task = None

        self._logger.info(f"Accept batch finished after {accepted} client(s)")

    async def _register(self, sock: socket.socket, address: Any) -> None:
        try:
            handler = await ConnectionHandler.open(sock, self._serializer, self._config.handler)
        except InvalidArgument as ex:
            self._logger.warning(f"{describe_address(address)} - Connection lost before registration: {ex}")
            sock.close()
            return
        except BaseException:
            sock.close()
            raise

        self.attach(handler)

    async def _fan_out(self, payload: Any, exclude: ConnectionHandler | None) -> None:
        for handler in tuple(self._connections):
            if handler is exclude or handler.closed:
                continue
            handler.send(payload)

    async def _deliver(self, handler: ConnectionHandler, payload: Any) -> None:
        handler.send(payload)

    def _relay_message(self, handler: ConnectionHandler, payload: Any) -> None:
        self._message_listener(handler, payload)

    def _relay_disconnect(self, handler: ConnectionHandler) -> None:
        self._logger.info(f"{handler} - Client disconnected")
        self._disconnect_listeners.notify(handler)
