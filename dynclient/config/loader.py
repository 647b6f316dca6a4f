"""Configuration loading utilities."""

import json
from pathlib import Path

from loguru import logger

from dynclient.config.schema import Settings
from dynclient.utils.helpers import convert_keys, convert_to_camel

# Keys whose children are user-chosen names, not schema fields.
_PRESERVED_KEYS = frozenset({"endpoints"})


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".dynclient" / "config.json"


def load_config(config_path: Path | None = None) -> Settings:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded settings object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("config file must contain a JSON object")
            return Settings.model_validate(convert_keys(data, preserve=_PRESERVED_KEYS))
        except (json.JSONDecodeError, ValueError) as e:
            raise ValueError(
                f"Failed to load config from {path}: {e}. "
                "Fix the file or remove it to regenerate defaults."
            ) from e

    return Settings()


def save_config(settings: Settings, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        settings: Settings to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(settings.model_dump(), preserve=_PRESERVED_KEYS)

    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    logger.debug(f"Saved dynclient config to {path}")

    from dynclient.config.access import clear_config_cache

    clear_config_cache(config_path=path)
