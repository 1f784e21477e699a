"""Configuration system for node-session."""

from node_session.config.schema import (
    Config,
    Defaults,
    SSHConfig,
)
from node_session.config.loader import load_config

__all__ = [
    "Config",
    "Defaults",
    "SSHConfig",
    "load_config",
]
