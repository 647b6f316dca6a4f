"""Configuration module for dynclient."""

from dynclient.config.loader import load_config, get_config_path, save_config
from dynclient.config.schema import EndpointConfig, Settings
from dynclient.config.access import get_config, clear_config_cache

__all__ = [
    "EndpointConfig",
    "Settings",
    "load_config",
    "save_config",
    "get_config_path",
    "get_config",
    "clear_config_cache",
]
