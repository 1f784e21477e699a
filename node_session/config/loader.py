"""Layered YAML configuration loader.

Sources, later ones overriding earlier ones key by key:

1. compiled-in defaults (the pydantic models)
2. the site-wide file, ``/etc/node-session/config.yaml``
3. the user file, ``~/.config/node-session/config.yaml``
"""

import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError

from node_session.config.schema import Config
from node_session.console import Reporter, reporter
from node_session.errors import ConfigError

SITE_CONFIG = "/etc/node-session/config.yaml"
USER_CONFIG = "~/.config/node-session/config.yaml"


def site_config_path() -> Path:
    return Path(os.environ.get("NODE_SESSION_SITE_CONFIG", SITE_CONFIG))


def user_config_path() -> Path:
    return Path(os.environ.get("NODE_SESSION_CONFIG", USER_CONFIG)).expanduser()


def read_layer(path: Path) -> dict[str, Any]:
    """Read one YAML file into a dict.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigError: If the file is not valid YAML or not a mapping
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"{path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    return data


def merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: Optional[Union[str, Path]] = None,
    site_path: Optional[Union[str, Path]] = None,
    console: Reporter = reporter,
) -> Config:
    """Load the layered configuration.

    Args:
        path: User config file. If None, checks NODE_SESSION_CONFIG env var,
              then falls back to ~/.config/node-session/config.yaml.
              An explicitly given path must exist.
        site_path: Site-wide config file. If None, checks
              NODE_SESSION_SITE_CONFIG, then /etc/node-session/config.yaml.
        console: Where to report a missing site-wide file

    Returns:
        Parsed Config object

    Raises:
        ConfigError: If a file is unreadable, invalid YAML, doesn't match the
            schema, or an explicitly given user file is missing
    """
    site = Path(site_path) if site_path is not None else site_config_path()
    user = Path(path).expanduser() if path is not None else user_config_path()

    data: dict[str, Any] = {}

    try:
        data = merge(data, read_layer(site))
    except FileNotFoundError:
        console.warn(f"Site configuration {site} not found, using built-in defaults")

    try:
        data = merge(data, read_layer(user))
    except FileNotFoundError:
        if path is not None:
            raise ConfigError(f"Config file not found: {user}")

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
