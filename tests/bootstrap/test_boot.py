import asyncio
import io

import pytest

from sockhub.bootstrap import boot
from sockhub.core.connections.server import ServerHandler
from sockhub.core.models.config import ServerConfig
from sockhub.infra.msgpack_serializer import MsgPackSerializer
from tests.fake.fake_listeners import MessageRecorder
from tests.helpers import FakeSockhubConfig, eventually


@pytest.mark.it
@pytest.mark.asyncio
async def test_serve_stops_on_event(sockhub_config):
    stop_event = asyncio.Event()
    stop_event.set()

    await asyncio.wait_for(boot.serve(sockhub_config, stop_event), timeout=3)


@pytest.mark.it
@pytest.mark.asyncio
async def test_connect_sends_stdin_lines(monkeypatch):
    monkeypatch.delenv("TEST_SOCKHUBCONFIG", raising=False)
    server = ServerHandler.listen(ServerConfig(port=0), MsgPackSerializer())
    received = MessageRecorder()
    server.message_listener = received
    server.start_accepting(1)

    host, port = server.address
    config = FakeSockhubConfig(client={"host": host, "port": port, "name": "alice"})
    monkeypatch.setattr("sys.stdin", io.StringIO("hello\nworld\n"))

    await asyncio.wait_for(boot.connect(config, asyncio.Event()), timeout=3)

    await eventually(lambda: received.payloads == ["hello", "world"])

    server.shutdown()
    await server.wait_closed(timeout=1)
