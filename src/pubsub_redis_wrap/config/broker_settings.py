"""Broker connection configuration from environment variables.

This module provides the BrokerSettings class which loads the Redis
connection configuration used by PubSubFacade. Both the subscriber and the
publisher connection are built from the same settings.

Keyword options given to PubSubFacade directly take precedence over the
values built here, so any option understood by redis.asyncio.Redis can be
passed through without a matching field.
"""

from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BrokerSettings(BaseSettings):
    """Static broker configuration loaded from environment variables.

    All settings can be overridden via environment variables with the
    PUBSUB_ prefix. For example, redis_url can be set via PUBSUB_REDIS_URL.

    Attributes:
        redis_url: Redis connection URL (host, port, TLS via rediss://)
        redis_db: Redis database number
        redis_password: Password for AUTH (None = taken from the URL if any)
        decode_responses: Decode replies and messages to str
        encoding: Encoding used when decoding responses
        socket_timeout: Read/write timeout in seconds (None = client default)
        socket_connect_timeout: Connect timeout in seconds
        health_check_interval: Seconds between idle connection health checks
        client_name: Name reported by CLIENT SETNAME
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    model_config = SettingsConfigDict(
        env_prefix="PUBSUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    redis_url: str = Field(default="redis://localhost:6379")
    redis_db: int = Field(default=0)
    redis_password: Optional[str] = Field(default=None)

    decode_responses: bool = Field(default=True)
    encoding: str = Field(default="utf-8")

    socket_timeout: Optional[float] = Field(default=None)
    socket_connect_timeout: Optional[float] = Field(default=None)
    health_check_interval: int = Field(default=0)
    client_name: Optional[str] = Field(default=None)

    log_level: str = Field(default="INFO")

    def connection_kwargs(self) -> Dict[str, Any]:
        """Build keyword options for Redis.from_url.

        Optional values that are unset are left out so the client's own
        defaults (or the URL) apply.

        Returns:
            Dictionary of connection options
        """
        kwargs: Dict[str, Any] = {
            "db": self.redis_db,
            "decode_responses": self.decode_responses,
            "encoding": self.encoding,
            "health_check_interval": self.health_check_interval,
        }

        optional = {
            "password": self.redis_password,
            "socket_timeout": self.socket_timeout,
            "socket_connect_timeout": self.socket_connect_timeout,
            "client_name": self.client_name,
        }
        kwargs.update({key: value for key, value in optional.items() if value is not None})

        return kwargs


_broker_settings: Optional[BrokerSettings] = None


def get_settings() -> BrokerSettings:
    """Get singleton instance of broker settings.

    Settings are loaded once and cached for the process lifetime.

    Returns:
        BrokerSettings instance
    """
    global _broker_settings

    if _broker_settings is None:
        _broker_settings = BrokerSettings()

    return _broker_settings
