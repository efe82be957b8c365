import asyncio
import enum
import struct
from typing import Any

from sockhub.core.errors import DecodingFailure, EncodingFailure
from sockhub.core.ports.serializer import Serializer

# "!I" = uint32 big-endian (network order)
HEADER = struct.Struct("!I")


class StreamState(enum.Enum):
    UNBOUND = "unbound"
    BOUND = "bound"
    CLOSED = "closed"


class FrameReader:
    """
    Reads length-prefixed frames from an asyncio StreamReader and turns
    them back into payloads.

    Each frame begins with a 4-byte big-endian length prefix followed by
    the serialized payload. The reader is bound lazily on the first read
    and becomes unusable once closed; CLOSED is terminal.

    Errors are split in two families:
    - asyncio.IncompleteReadError / ConnectionError: the peer went away
    - DecodingFailure: the bytes received cannot be a valid payload
    """
    def __init__(
        self,
        reader: asyncio.StreamReader,
        serializer: Serializer,
        max_message_size: int = 1 * 1024 * 1024,
    ) -> None:
        self._reader = reader
        self._serializer = serializer
        self._max_message_size = max_message_size
        self.state = StreamState.UNBOUND

    async def read(self) -> Any:
        if self.state is StreamState.CLOSED:
            raise ConnectionResetError("Frame reader is closed")
        self.state = StreamState.BOUND

        header = await self._reader.readexactly(HEADER.size)
        length = HEADER.unpack(header)[0]
        if length > self._max_message_size:
            raise DecodingFailure(
                f"Frame of {length} bytes exceeds the limit of {self._max_message_size} bytes"
            )

        body = await self._reader.readexactly(length)
        try:
            return self._serializer.deserialize(body)
        except Exception as ex:
            raise DecodingFailure(f"Invalid frame payload: {ex}") from ex

    def close(self) -> None:
        self.state = StreamState.CLOSED


class FrameWriter:
    """
    Serializes payloads and writes them as length-prefixed frames to an
    asyncio StreamWriter.

    The writer is bound lazily on the first write and becomes unusable
    once closed. Closing the FrameWriter does not close the underlying
    StreamWriter; the transport is owned by the ConnectionHandler.
    """
    def __init__(self, writer: asyncio.StreamWriter, serializer: Serializer) -> None:
        self._writer = writer
        self._serializer = serializer
        self.state = StreamState.UNBOUND

    def encode(self, payload: Any) -> bytes:
        try:
            body = self._serializer.serialize(payload)
        except Exception as ex:
            raise EncodingFailure(f"Cannot serialize {type(payload).__name__}: {ex}") from ex
        return HEADER.pack(len(body)) + body

    async def write(self, payload: Any) -> None:
        if self.state is StreamState.CLOSED:
            raise ConnectionResetError("Frame writer is closed")
        self.state = StreamState.BOUND

        frame = self.encode(payload)
        self._writer.write(frame)
        await self._writer.drain()

    def close(self) -> None:
        self.state = StreamState.CLOSED
