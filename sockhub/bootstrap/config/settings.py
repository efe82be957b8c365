from typing import Annotated

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource, YamlConfigSettingsSource

from sockhub.bootstrap.config.loader import get_configfile
from sockhub.core.models.config import HandlerConfig, ServerConfig


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


class HandlerSettings(BaseModel):
    max_message_size: Annotated[
        int,
        Field(
            description=(
                "Maximum size, in bytes, of a single frame body.\n"
                "A peer announcing a larger frame is disconnected."
            ),
            default=1 * 1024 * 1024,
            gt=0
        )
    ]


class ServerSettings(BaseModel):
    host: Annotated[
        str,
        Field(
            description="Bind address of the relay server.",
            default="127.0.0.1"
        )
    ]

    port: Annotated[
        int,
        Field(
            description="TCP port of the relay server. 0 lets the OS pick one.",
            default=7070,
            ge=0,
            le=65535
        )
    ]

    backlog: Annotated[
        int,
        Field(
            description="Maximum number of pending TCP connections.",
            default=128,
            gt=0
        )
    ]

    max_clients: Annotated[
        int,
        Field(
            description=(
                "Number of clients accepted before the server stops accepting.\n"
                "Already connected clients keep being served."
            ),
            default=16,
            ge=1
        )
    ]

    connection_name: Annotated[
        str,
        Field(
            description="Display name given to every accepted connection.",
            default="Server"
        )
    ]

    timeout_graceful_shutdown: Annotated[
        float,
        Field(
            description="Maximum time allowed for connections to close on shutdown.",
            default=5.0
        )
    ]

    @field_validator("connection_name")
    @classmethod
    def validate_connection_name(cls, v: str) -> str:
        return _not_blank(v)


class ClientSettings(BaseModel):
    host: Annotated[
        str,
        Field(
            description="Address of the server to connect to.",
            default="127.0.0.1"
        )
    ]

    port: Annotated[
        int,
        Field(
            description="TCP port of the server to connect to.",
            default=7070,
            ge=1,
            le=65535
        )
    ]

    name: Annotated[
        str,
        Field(
            description="Display name of the client connection.",
            default="Client"
        )
    ]

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _not_blank(v)


class SockhubConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SOCKHUB_",
        env_nested_delimiter="__",
        extra="ignore"
    )

    server: Annotated[
        ServerSettings,
        Field(
            description=(
                "Relay server configuration.\n"
                "Controls where the server listens and how many clients it accepts."
            ),
            default_factory=ServerSettings
        )
    ]

    client: Annotated[
        ClientSettings,
        Field(
            description="Client endpoint configuration.",
            default_factory=ClientSettings
        )
    ]

    handler: Annotated[
        HandlerSettings,
        Field(
            description="Settings shared by every connection, on both endpoints.",
            default_factory=HandlerSettings
        )
    ]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        configfile = get_configfile()
        if configfile is None:
            return init_settings, env_settings
        return init_settings, env_settings, YamlConfigSettingsSource(settings_cls, yaml_file=configfile)

    def to_handler_config(self, name: str = "Client") -> HandlerConfig:
        return HandlerConfig(
            name=name,
            max_message_size=self.handler.max_message_size
        )

    def to_server_config(self) -> ServerConfig:
        server = self.server
        return ServerConfig(
            host=server.host,
            port=server.port,
            backlog=server.backlog,
            max_clients=server.max_clients,
            connection_name=server.connection_name,
            handler=self.to_handler_config(server.connection_name)
        )
