"""Broker configuration."""

from plugin_broker.config.loader import ConfigError, load_config
from plugin_broker.config.schema import BrokerConfig

__all__ = ["BrokerConfig", "ConfigError", "load_config"]
