"""Load optional storage configuration from `.cortex/config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Union

import yaml

from .constants import (
    CONFIG_FILE,
    DEFAULT_CACHE_MAX_SIZE,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_FOLDER_CACHE_TTL_SECONDS,
    STORAGE_DIR_NAME,
)
from .io_utils import read_text


@dataclass
class StorageConfig:
    """Tunables for where data lives and how long reads stay cached."""

    storage_dir_name: str = STORAGE_DIR_NAME
    use_global_directory: bool = False
    cache_ttl_seconds: float = float(DEFAULT_CACHE_TTL_SECONDS)
    cache_max_size: int = DEFAULT_CACHE_MAX_SIZE
    folder_cache_ttl_seconds: float = DEFAULT_FOLDER_CACHE_TTL_SECONDS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StorageConfig":
        """Build a config, ignoring unknown keys and falling back on bad values."""
        config = cls()
        known = {f.name: f for f in fields(cls)}
        for key, raw in data.items():
            if key not in known:
                continue
            default = getattr(config, key)
            setattr(config, key, _coerce(raw, default))
        return config


def _coerce(raw: Any, default: Any) -> Any:
    if isinstance(default, bool):
        return raw if isinstance(raw, bool) else default
    if isinstance(default, (int, float)):
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw < 0:
            return default
        return type(default)(raw)
    if isinstance(default, str):
        return raw if isinstance(raw, str) and raw.strip() else default
    return default


def load_storage_config(working_directory: Union[str, Path]) -> tuple[StorageConfig, str | None]:
    """Load the optional storage config file.

    Args:
        working_directory: Directory that holds the ``.cortex/`` storage root.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns
        the defaults and `None`; if it cannot be read or parsed, returns the
        defaults and a description of the problem.
    """
    path = Path(working_directory) / STORAGE_DIR_NAME / CONFIG_FILE
    raw = read_text(path)
    if not raw.found:
        return StorageConfig(), None
    if raw.error:
        return StorageConfig(), raw.error
    try:
        data = yaml.safe_load(raw.value or "")
    except yaml.YAMLError as exc:
        return StorageConfig(), f"{path.name}: YAMLError: {exc}"
    if data is None:
        return StorageConfig(), None
    if not isinstance(data, dict):
        return StorageConfig(), f"{path.name}: expected mapping, got {type(data).__name__}"
    return StorageConfig.from_dict(data), None


def global_storage_directory() -> Path:
    """``~/.cortex``, used when the server runs in global-directory mode."""
    return Path.home() / STORAGE_DIR_NAME


def resolve_working_directory(provided: Union[str, Path], config: StorageConfig) -> Path:
    """Return the directory whose ``.cortex/`` folder holds the data."""
    if config.use_global_directory:
        return global_storage_directory().parent
    return Path(provided)
