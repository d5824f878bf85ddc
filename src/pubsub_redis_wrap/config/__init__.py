"""Configuration management for the pub/sub facade.

Provides broker connection settings loaded from environment variables.
"""

from .broker_settings import BrokerSettings, get_settings

__all__ = [
    "BrokerSettings",
    "get_settings",
]
