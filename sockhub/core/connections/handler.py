import asyncio
import logging
import socket
from typing import Any

from sockhub.core.errors import DecodingFailure, EncodingFailure, InvalidArgument, IOFailure
from sockhub.core.helpers.listeners import ListenerSet
from sockhub.core.helpers.spawn import TaskSpawner
from sockhub.core.helpers.utils import describe_address
from sockhub.core.models.config import HandlerConfig
from sockhub.core.models.listeners import DisconnectListener, MessageListener
from sockhub.core.ports.serializer import Serializer
from sockhub.core.transport.addr import get_local_addr, get_remote_addr, is_connected
from sockhub.core.transport.framing import FrameReader, FrameWriter
from sockhub.infra.msgpack_serializer import MsgPackSerializer


class ConnectionHandler:
    """
    Owns one connected stream socket and exchanges payloads over it.

    A handler runs two background tasks inside its own TaskSpawner:
    - the receive task reads one frame at a time and hands every decoded
      payload to the message listeners, in registration order
    - the send task drains an unbounded outbound queue and writes each
      payload as one frame, so payloads reach the peer in the order in
      which send() was called

    send() and start_receiving() only schedule work and return
    immediately. They must be called from the thread running the event
    loop.

    Closing is terminal and happens exactly once, whichever side triggers
    it: an explicit close(), the peer going away, or a failed write. The
    disconnect listeners are notified first, while the handler is still
    fully identifiable, then the frame streams and the transport are
    released and the execution context is shut down. A disconnect is a
    normal event and never raises; an undecodable frame closes the
    connection and is reported as a DecodingFailure.
    """
    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        serializer: Serializer | None = None,
        config: HandlerConfig | None = None,
    ) -> None:
        if reader is None or writer is None:
            raise InvalidArgument("A connection needs both a reader and a writer")

        self._config = config or HandlerConfig()
        self._serializer = serializer or MsgPackSerializer()
        self._reader = reader
        self._writer = writer
        self._input = FrameReader(
            reader,
            self._serializer,
            max_message_size=self._config.max_message_size
        )
        self._output = FrameWriter(writer, self._serializer)
        self._outbox: asyncio.Queue[Any] = asyncio.Queue()

        self._message_listeners: ListenerSet[MessageListener] = ListenerSet("message listeners")
        self._disconnect_listeners: ListenerSet[DisconnectListener] = ListenerSet("disconnect listeners")

        self.name = self._config.name
        self.failure: Exception | None = None
        self._remote = get_remote_addr(writer)
        self._spawner = TaskSpawner(name=f"connection-{describe_address(self._remote)}")
        self._send_task: asyncio.Task | None = None
        self._receiving = False
        self._closed = False

        self._logger = logging.getLogger("core.connections.handler")

    def __repr__(self) -> str:
        return f"<ConnectionHandler {self.name} {describe_address(self._remote)}>"

    @classmethod
    async def open(
        cls,
        sock: socket.socket,
        serializer: Serializer | None = None,
        config: HandlerConfig | None = None,
    ) -> "ConnectionHandler":
        """
        Wrap an already connected socket.

        The socket must be open and have a peer. Its ownership moves to the
        handler, which closes it on close().
        """
        if sock is None:
            raise InvalidArgument("The socket is None")
        if not is_connected(sock):
            raise InvalidArgument(f"The socket {sock!r} is not connected")

        try:
            reader, writer = await asyncio.open_connection(sock=sock)
        except OSError as ex:
            raise IOFailure(f"Unable to obtain the streams of the socket: {ex}") from ex

        return cls(reader, writer, serializer, config)

    @classmethod
    async def connect(
        cls,
        host: str,
        port: int,
        serializer: Serializer | None = None,
        config: HandlerConfig | None = None,
    ) -> "ConnectionHandler":
        """
        Open a TCP connection to a remote endpoint and wrap it.
        """
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as ex:
            raise IOFailure(f"Unable to connect to {host}:{port}: {ex}") from ex

        return cls(reader, writer, serializer, config)

    @property
    def transport(self) -> asyncio.StreamWriter:
        return self._writer

    @property
    def socket(self) -> socket.socket | None:
        return self._writer.get_extra_info("socket")

    @property
    def remote_address(self) -> tuple[str, int] | None:
        return self._remote

    @property
    def local_address(self) -> tuple[str, int] | None:
        return get_local_addr(self._writer)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def receiving(self) -> bool:
        return self._receiving

    @property
    def finished(self) -> bool:
        """True once the handler is closed and none of its tasks is left."""
        return self._closed and self._spawner.remaining_tasks == 0

    @property
    def pending(self) -> int:
        """Number of payloads queued by send() and not yet written."""
        return self._outbox.qsize()

    def add_message_listener(self, listener: MessageListener | None) -> None:
        self._message_listeners.add(listener)

    def remove_message_listener(self, listener: MessageListener | None) -> None:
        self._message_listeners.remove(listener)

    def add_disconnect_listener(self, listener: DisconnectListener | None) -> None:
        self._disconnect_listeners.add(listener)

    def remove_disconnect_listener(self, listener: DisconnectListener | None) -> None:
        self._disconnect_listeners.remove(listener)

    def start_receiving(self) -> None:
        """
        Start the receive task.

        Only one receive task ever runs for a handler: repeated calls, and
        calls made after close(), do nothing.
        """
        if self._receiving or self._spawner.is_shutdown:
            return

        self._receiving = True
        self._spawner.spawn(self._receive_loop(), name="receive")

    def send(self, payload: Any) -> None:
        """
        Queue a payload for the peer and return immediately.

        None payloads, and payloads sent after close(), are ignored.
        """
        if payload is None or self._closed or self._spawner.is_shutdown:
            return

        self._outbox.put_nowait(payload)

        if self._send_task is None:
            self._send_task = self._spawner.spawn(self._send_loop(), name="send")

    def close(self) -> None:
        """
        Close the connection.

        Only the first call has an effect. Every resource is released even
        if releasing another one failed; the first release error is then
        raised as an IOFailure.
        """
        if self._closed:
            return
        self._closed = True

        self._logger.debug(f"{self} - Connection closed")
        self._disconnect_listeners.notify(self)

        errors: list[Exception] = []
        for release in (self._input.close, self._output.close, self._writer.close):
            try:
                release()
            except (OSError, RuntimeError) as ex:
                errors.append(ex)

        self._spawner.shutdown()

        if errors:
            self.failure = IOFailure(f"Error while closing {self}: {errors[0]}")
            self._logger.error(str(self.failure), exc_info=errors[0])
            raise self.failure from errors[0]

    async def wait_closed(self, timeout: float | None = None) -> None:
        """
        Wait until the transport is closed and the background tasks of the
        handler have finished.
        """
        try:
            await self._writer.wait_closed()
        except OSError as ex:
            self._logger.debug(f"{self} - Transport closed with error: {ex!r}")

        await self._spawner.wait(timeout)

    async def _receive_loop(self) -> None:
        try:
            while not self._closed:
                payload = await self._input.read()
                if payload is None:
                    continue
                self._message_listeners.notify(self, payload)
        except (asyncio.IncompleteReadError, OSError) as ex:
            # Expected when the peer disconnects or the connection is closed locally
            self._logger.debug(f"{self} - Peer disconnected: {ex!r}")
            self.close()
        except DecodingFailure as ex:
            self.failure = ex
            self._logger.error(f"{self} - Closing connection, undecodable frame: {ex}")
            self.close()
            raise

    async def _send_loop(self) -> None:
        while not self._closed:
            payload = await self._outbox.get()

            if self._writer.is_closing():
                self._logger.debug(f"{self} - Transport closing, payload dropped")
                continue

            try:
                await self._output.write(payload)
            except EncodingFailure as ex:
                self.failure = ex
                self._logger.error(f"{self} - Closing connection: {ex}", exc_info=ex)
                self.close()
            except OSError as ex:
                # A failed write is handled like a peer disconnect
                self._logger.debug(f"{self} - Send failed: {ex!r}")
                self.close()
