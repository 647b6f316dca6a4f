"""Process-wide settings shared by bindings, clients and the proxy factory.

Settings come from two places: the JSON config file and ``DYNCLIENT_*``
environment variables. A cached entry is stamped with both and reloaded as
soon as either changes, so long-lived processes pick up edits without an
explicit ``force_reload``.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from dynclient.config.loader import get_config_path, load_config
from dynclient.config.schema import ENV_PREFIX, Settings


@dataclass(slots=True, frozen=True)
class SourceStamp:
    """What the settings for one config path were loaded from."""

    mtime_ns: int | None
    size: int | None
    environment: tuple[tuple[str, str], ...]

    @classmethod
    def of(cls, path: Path) -> SourceStamp:
        try:
            stat = path.stat()
            mtime_ns, size = stat.st_mtime_ns, stat.st_size
        except OSError:
            mtime_ns = size = None
        environment = tuple(sorted((k, v) for k, v in os.environ.items() if k.upper().startswith(ENV_PREFIX)))
        return cls(mtime_ns, size, environment)


class SettingsCache:
    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[Path, tuple[SourceStamp, Settings]] = {}

    @staticmethod
    def _resolve(config_path: Path | None) -> Path:
        return Path(config_path or get_config_path()).expanduser().resolve()

    def get(self, config_path: Path | None = None, *, force_reload: bool = False) -> Settings:
        path = self._resolve(config_path)
        stamp = SourceStamp.of(path)
        with self._lock:
            entry = self._entries.get(path)
            if entry is not None and not force_reload and entry[0] == stamp:
                return entry[1]
            settings = load_config(path)
            self._entries[path] = (stamp, settings)
        if entry is not None:
            logger.debug(f"Reloaded dynclient settings for {path}")
        return settings

    def invalidate(self, config_path: Path | None = None) -> None:
        """Drop one entry, or every entry when no path is given."""
        with self._lock:
            if config_path is None:
                self._entries.clear()
            else:
                self._entries.pop(self._resolve(config_path), None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


settings_cache = SettingsCache()


def get_config(*, config_path: Path | None = None, force_reload: bool = False) -> Settings:
    return settings_cache.get(config_path, force_reload=force_reload)


def clear_config_cache(*, config_path: Path | None = None) -> None:
    settings_cache.invalidate(config_path)
