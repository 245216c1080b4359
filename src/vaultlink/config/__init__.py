"""Configuration models and parser for vaultlink.yaml."""

from vaultlink.config.models import (
    AgentConfig,
    BridgeConfig,
    PermissionsConfig,
    TimeoutsConfig,
)
from vaultlink.config.parser import DEFAULT_CONFIG_NAME, ConfigError, load_config

__all__ = [
    "DEFAULT_CONFIG_NAME",
    "AgentConfig",
    "BridgeConfig",
    "ConfigError",
    "PermissionsConfig",
    "TimeoutsConfig",
    "load_config",
]
