"""Configuration loading and validation utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Union

import yaml
from pydantic import ValidationError

from hybrid_bridge.config.models import Config


class ConfigError(Exception):
    """Configuration error."""

    pass


def parse_config(raw_config: Any) -> Config:
    """
    Validate an already-decoded configuration mapping.

    Args:
        raw_config: Decoded YAML document.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the document is empty, not a mapping, or invalid.
    """
    if raw_config is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(raw_config, dict):
        raise ConfigError(
            f"Configuration file must contain a YAML mapping (dict), "
            f"got {type(raw_config).__name__}"
        )

    try:
        return Config.model_validate(raw_config)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        raise ConfigError("Configuration validation failed:\n" + "\n".join(errors)) from e


def load_config(path: Union[str, Path]) -> Config:
    """
    Load and validate configuration from a YAML file.

    Args:
        path: Path to the configuration file.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file cannot be read or the configuration is invalid.
    """
    path = Path(path)

    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file: {e}") from e

    return parse_config(raw_config)


def validate_config(path: Union[str, Path]) -> tuple[bool, str]:
    """
    Validate a configuration file.

    Args:
        path: Path to the configuration file.

    Returns:
        Tuple of (is_valid, message).
    """
    try:
        config = load_config(path)
    except ConfigError as e:
        return False, str(e)

    return (
        True,
        f"Configuration valid: {len(config.servers)} servers, {len(config.active_servers)} active",
    )
