"""Project configuration for the symbol index."""

from settings.config import (
    CONFIG_FILENAME,
    ConfigError,
    SymIndexConfig,
    load_config,
    resolve_index_dir,
)

__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "SymIndexConfig",
    "load_config",
    "resolve_index_dir",
]
