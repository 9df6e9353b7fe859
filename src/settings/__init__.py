"""Configuration loading for logref."""

from settings.config import (
    CONFIG_FILENAME,
    ConfigError,
    LogRefConfig,
    MacroSpec,
    RustConfig,
    load_config,
)

__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "LogRefConfig",
    "MacroSpec",
    "RustConfig",
    "load_config",
]
