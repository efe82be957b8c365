class SockhubError(Exception):
    """Base class of every error raised by sockhub."""


class InvalidArgument(SockhubError, ValueError):
    """
    A constructor or call argument is missing or invalid.

    Raised synchronously to the caller, before any I/O is attempted.
    """


class IOFailure(SockhubError, OSError):
    """
    Unexpected transport failure.

    Expected disconnects never surface as IOFailure: they are turned into a
    close of the affected handler. IOFailure is reserved for failures that
    must be observed, such as an error while releasing a connection or an
    accept failure that was not caused by closing the listening socket.
    """


class DecodingFailure(SockhubError, RuntimeError):
    """A received frame could not be turned back into a payload."""


class EncodingFailure(SockhubError, RuntimeError):
    """A payload could not be serialized into a frame."""
