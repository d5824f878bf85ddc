"""Default logging setup for applications embedding the facade.

The library itself only creates module loggers; call configure_logging()
from the application entry point to get the standard format.
"""

import logging
from typing import Optional

from pubsub_redis_wrap.config import BrokerSettings, get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Optional[BrokerSettings] = None) -> None:
    """Configure root logging with the level from settings.

    Args:
        settings: Broker settings providing log_level (environment if omitted)
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
