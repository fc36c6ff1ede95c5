from balance.config.settings import (
    ConfigError,
    EngineConfig,
    LoggingConfig,
    SchedulerConfig,
    Settings,
    StorageConfig,
    get_settings,
    load_settings,
    reset_settings,
)

__all__ = [
    "ConfigError",
    "EngineConfig",
    "LoggingConfig",
    "SchedulerConfig",
    "Settings",
    "StorageConfig",
    "get_settings",
    "load_settings",
    "reset_settings",
]
