import json
from functools import lru_cache

from pydantic import ValidationError

from sockhub.bootstrap.config.settings import SockhubConfig
from sockhub.core.ports.serializer import Serializer
from sockhub.infra.msgpack_serializer import MsgPackSerializer


@lru_cache
def get_serializer() -> Serializer:
    return MsgPackSerializer()


@lru_cache
def get_config() -> SockhubConfig:
    try:
        return SockhubConfig()
    except FileNotFoundError as ex:
        raise SystemExit(f"Provide a correct configuration file path: {ex}")
    except ValidationError as ex:
        msg = ["Configuration validation failed:"]
        errs = json.loads(ex.json())
        for err in errs:
            msg.append(f"  {'.'.join(map(str, err['loc']))}: {err['msg']}")
        raise SystemExit("\n".join(msg))
