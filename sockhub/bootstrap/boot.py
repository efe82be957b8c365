import asyncio
import logging
import sys
import threading

from sockhub.bootstrap.config.loader import get_cli_args
from sockhub.bootstrap.config.settings import SockhubConfig
from sockhub.bootstrap.deps import get_config, get_serializer
from sockhub.core.connections.handler import ConnectionHandler
from sockhub.core.connections.server import ServerHandler
from sockhub.core.helpers.utils import describe_address, setup_signal_handler, setup_logging

logger = logging.getLogger("sockhub.boot")


async def _wait_until(*conditions) -> None:
    # Signal handlers cannot wake the selector, so poll
    while not any(condition() for condition in conditions):
        await asyncio.sleep(0.1)


async def serve(config: SockhubConfig, stop_event: asyncio.Event) -> None:
    server = ServerHandler.listen(config.to_server_config(), get_serializer())
    server.add_connection_listener(
        lambda handler: logger.info(f"{handler} - Client connected ({server.connection_count} registered)")
    )
    server.start_accepting(config.server.max_clients)
    logger.info(f"Relay server listening on {describe_address(server.address)}")

    try:
        await _wait_until(stop_event.is_set)
    finally:
        logger.info("Shutting down relay server.")
        server.shutdown()
        await server.wait_closed(timeout=config.server.timeout_graceful_shutdown)


def _pump_stdin(loop: asyncio.AbstractEventLoop, handler: ConnectionHandler, eof: asyncio.Event) -> None:
    try:
        for line in sys.stdin:
            loop.call_soon_threadsafe(handler.send, line.rstrip("\n"))
        loop.call_soon_threadsafe(eof.set)
    except RuntimeError:
        # The event loop is already closed, nothing left to feed
        return


async def connect(config: SockhubConfig, stop_event: asyncio.Event) -> None:
    client = config.client
    handler = await ConnectionHandler.connect(
        client.host,
        client.port,
        get_serializer(),
        config.to_handler_config(client.name)
    )
    handler.add_message_listener(lambda _, payload: print(payload, flush=True))
    handler.add_disconnect_listener(lambda h: logger.info(f"{h} - Disconnected"))
    handler.start_receiving()
    logger.info(f"Connected to {client.host}:{client.port}")

    eof = asyncio.Event()
    threading.Thread(
        target=_pump_stdin,
        args=(asyncio.get_running_loop(), handler, eof),
        name="stdin",
        daemon=True
    ).start()

    try:
        await _wait_until(stop_event.is_set, eof.is_set, lambda: handler.closed)
    finally:
        handler.close()
        await handler.wait_closed(timeout=config.server.timeout_graceful_shutdown)


def main():
    cli = get_cli_args()
    setup_logging(cli.log_level)
    config = get_config()
    runner = serve if cli.mode == "serve" else connect

    try:
        with setup_signal_handler() as stop_event:
            asyncio.run(runner(config, stop_event))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
