from typing import Protocol, Any


class Serializer(Protocol):
    """
    Defines the interface for encoding/decoding payloads exchanged
    over a connection.

    Both ends of a connection must use compatible serializers. The
    transport treats payloads as opaque values and only relies on:
    - serialize() producing the bytes of exactly one frame body
    - deserialize() raising on bytes it cannot decode
    """

    def serialize(self, message: Any) -> bytes:
        """Encode a Python object into bytes suitable for network transport."""

    def deserialize(self, data: bytes) -> Any:
        """Decode bytes received from the network into a Python object."""
