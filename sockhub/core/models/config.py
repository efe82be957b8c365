from dataclasses import dataclass, field


@dataclass
class HandlerConfig:
    """
    Per-connection settings of a ConnectionHandler.
    """
    name: str = "Client"
    """
    Display name given to the handler at construction. It is only used
    for identification in listeners and logs and can be changed later.
    """

    max_message_size: int = 1 * 1024 * 1024  # 1MB
    """
    Maximum size of a single frame body. A frame announcing a larger
    body is treated as corrupted input.
    """


@dataclass
class ServerConfig:
    """
    Static configuration for a ServerHandler.

    The listening socket itself is created from host/port/backlog by
    ServerHandler.listen(); a ServerHandler built on an existing socket
    only uses the connection related fields.
    """
    host: str = "127.0.0.1"
    """
    IP address or hostname on which the server listens.
    """

    port: int = 0
    """
    TCP port to bind. If set to 0, the OS selects an available port.
    """

    backlog: int = 128
    """
    Maximum number of pending TCP connections waiting for accept().
    """

    max_clients: int = 16
    """
    Number of connections accepted by one accept batch when the server
    is started from the bootstrap layer.
    """

    connection_name: str = "Server"
    """
    Display name given to every accepted ConnectionHandler.
    """

    handler: HandlerConfig = field(default_factory=HandlerConfig)
    """
    Settings applied to every accepted ConnectionHandler.
    """
