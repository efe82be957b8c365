import msgpack
from typing import Any

from sockhub.core.ports.serializer import Serializer


class MsgPackSerializer(Serializer):
    """
    MsgPack-based implementation of the Serializer interface.

    - compact binary encoding
    - str and bytes kept distinct (use_bin_type)
    - handles any nesting of dict/list/str/bytes/int/float/bool/None
    """
    def serialize(self, message: Any) -> bytes:
        return msgpack.packb(message, use_bin_type=True)

    def deserialize(self, data: bytes) -> Any:
        return msgpack.unpackb(data, raw=False)
