"""Configuration loading and validation."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import TypeAdapter, ValidationError

from plugin_broker.config.schema import BrokerConfig
from plugin_broker.model import PluginMeta
from plugin_broker.registry import load_meta_yaml

AUTH_ENABLED_ENV = "CHE_AUTH_ENABLED"
MACHINE_TOKEN_ENV = "CHE_MACHINE_TOKEN"


class ConfigError(Exception):
    """Configuration loading or validation error."""


def _env_bool(name: str) -> bool | None:
    raw = os.environ.get(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return None


def load_config(path: Path | None = None, overrides: dict[str, Any] | None = None) -> BrokerConfig:
    """Load broker configuration from YAML, environment and overrides.

    Precedence, lowest first: the YAML file, ``CHE_AUTH_ENABLED``, explicit
    overrides (CLI flags). When auth ends up enabled and no token is given
    the token is read from ``CHE_MACHINE_TOKEN``.

    Args:
        path: YAML config file. A missing file is treated as empty.
        overrides: Values that win over the file; None values are ignored.

    Returns:
        Validated configuration

    Raises:
        ConfigError: If the file is not valid YAML or validation fails
    """
    data: dict[str, Any] = {}
    if path is not None and path.exists():
        try:
            with open(path) as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if loaded is not None:
            if not isinstance(loaded, dict):
                raise ConfigError(f"Config file {path} must contain a mapping")
            data.update(loaded)

    env_auth = _env_bool(AUTH_ENABLED_ENV)
    if env_auth is not None and "auth_enabled" not in data:
        data["auth_enabled"] = env_auth

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    if data.get("auth_enabled") and not data.get("token"):
        data["token"] = os.environ.get(MACHINE_TOKEN_ENV)

    try:
        return BrokerConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e


def load_metas(path: Path) -> list[PluginMeta]:
    """Read a preformed meta list (YAML or JSON array).

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    try:
        with open(path) as f:
            raw = load_meta_yaml(f)
    except OSError as e:
        raise ConfigError(f"Failed to read plugin metas from {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid plugin metas in {path}: {e}") from e

    try:
        return TypeAdapter(list[PluginMeta]).validate_python(raw or [])
    except ValidationError as e:
        raise ConfigError(f"Invalid plugin metas in {path}: {e}") from e
