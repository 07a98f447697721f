"""Configuration module for the bridge client."""

from hybrid_bridge.config.models import (
    ApiServerConfig,
    ClientConfig,
    Config,
    DerivationConfig,
    LoggingConfig,
    StratumServerConfig,
)
from hybrid_bridge.config.loader import ConfigError, load_config, parse_config, validate_config

__all__ = [
    "ApiServerConfig",
    "ClientConfig",
    "Config",
    "DerivationConfig",
    "LoggingConfig",
    "StratumServerConfig",
    "ConfigError",
    "load_config",
    "parse_config",
    "validate_config",
]
