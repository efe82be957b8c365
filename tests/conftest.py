import os

import pytest
import yaml

from tests.fake.fake_transport import FakeSerializer, FakeStreamWriter
from tests.helpers import FakeSockhubConfig

from sockhub.infra.msgpack_serializer import MsgPackSerializer


@pytest.fixture
def serializer():
    return FakeSerializer()


@pytest.fixture
def msgpack_serializer():
    return MsgPackSerializer()


@pytest.fixture
def writer():
    return FakeStreamWriter()


@pytest.fixture
def config_file(tmp_path):
    file = tmp_path / "sockhub.yaml"

    data = {
        "server": {
            "host": "127.0.0.1",
            "port": 0,
            "backlog": 10,
            "max_clients": 3,
            "connection_name": "Relay",
            "timeout_graceful_shutdown": 1,
        },
        "client": {
            "host": "127.0.0.1",
            "port": 7171,
            "name": "alice",
        },
        "handler": {
            "max_message_size": 4096,
        }
    }

    file.write_text(yaml.dump(data))
    return file


@pytest.fixture
def sockhub_config(config_file):
    backup = os.environ.copy()

    try:
        os.environ["TEST_SOCKHUBCONFIG"] = str(config_file)
        yield FakeSockhubConfig()
    finally:
        os.environ.clear()
        os.environ.update(backup)
