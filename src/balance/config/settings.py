"""
config/settings.py — Balance Runtime Settings

Merges balance.yaml (defaults/structure) with environment variables and .env.
Pydantic-powered — all fields are validated and typed.

  - EngineConfig lists the task-type plugin directories to scan at startup
  - StorageConfig points at the save directory and the auto-save cadence
  - validate_all() performs full startup validation and raises ConfigError
    with a clear, human-readable message listing every problem found
  - load_settings() respects the BALANCE_CONFIG env var as a fallback
    when no explicit config_path argument is given
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from balance.tasks.loader import BUILTIN_TYPES_DIR


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

DEFAULT_CONFIG_PATH = Path("config/balance.yaml")


def _default_type_dirs() -> list[str]:
    return [str(BUILTIN_TYPES_DIR), "./task-types.d"]


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class EngineConfig(BaseModel):
    task_types_dirs: List[str] = Field(default_factory=_default_type_dirs)
    strict_loading: bool = False

    @field_validator("task_types_dirs", mode="before")
    @classmethod
    def _coerce_dirs(cls, v: Any) -> Any:
        # A single directory may be given as a plain string.
        if isinstance(v, str):
            return [v]
        return v


class StorageConfig(BaseModel):
    save_dir: str = "./save.d"
    # <= 0 disables periodic saving; saves then happen on `save` and exit only.
    auto_save_interval_seconds: int = 300


class SchedulerConfig(BaseModel):
    max_workers: int = 4

    @field_validator("max_workers")
    @classmethod
    def _positive_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("scheduler.max_workers must be >= 1")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 10
    backup_count: int = 5
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    Balance runtime settings.

    Priority (highest to lowest):
      1. Explicit init values (the YAML sections passed by load_settings)
      2. Environment variables (e.g. STORAGE__SAVE_DIR)
      3. .env file
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    engine: EngineConfig = Field(default_factory=EngineConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("engine", mode="before")
    @classmethod
    def _coerce_engine(cls, v: Any) -> Any:
        return EngineConfig(**v) if isinstance(v, dict) else v

    @field_validator("storage", mode="before")
    @classmethod
    def _coerce_storage(cls, v: Any) -> Any:
        return StorageConfig(**v) if isinstance(v, dict) else v

    @field_validator("scheduler", mode="before")
    @classmethod
    def _coerce_scheduler(cls, v: Any) -> Any:
        return SchedulerConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def task_types_dirs(self) -> list[Path]:
        return [Path(d).expanduser() for d in self.engine.task_types_dirs]

    @property
    def save_dir(self) -> Path:
        return Path(self.storage.save_dir).expanduser()

    @property
    def auto_save_enabled(self) -> bool:
        return self.storage.auto_save_interval_seconds > 0

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir)

    @property
    def log_max_bytes(self) -> int:
        return self.logging.max_file_size_mb * 1024 * 1024

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Called once in main.py bootstrap() before the kernel is built. Field
        validators catch type/value errors at parse time; this catches
        problems that only show up against the filesystem.
        """
        errors: list[str] = []

        # ── Task type directories ────────────────────────────────────────────
        if not self.engine.task_types_dirs:
            errors.append(
                "engine.task_types_dirs is empty. No task types could be "
                "loaded. List at least one directory."
            )
        for d in self.task_types_dirs:
            if d.exists() and not d.is_dir():
                errors.append(
                    f"engine.task_types_dirs entry '{d}' exists but is not a "
                    f"directory."
                )

        # ── Save directory ───────────────────────────────────────────────────
        if not self.storage.save_dir.strip():
            errors.append("storage.save_dir must not be empty.")
        elif self.save_dir.exists() and not self.save_dir.is_dir():
            errors.append(
                f"storage.save_dir '{self.save_dir}' exists but is not a "
                f"directory."
            )

        # ── Logging ──────────────────────────────────────────────────────────
        if self.logging.max_file_size_mb < 1:
            errors.append("logging.max_file_size_mb must be >= 1.")
        if self.logging.backup_count < 0:
            errors.append("logging.backup_count must be >= 0.")

        # ── Report all errors together ───────────────────────────────────────
        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nBalance startup failed: {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/balance.yaml or your "
                f"environment and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_KNOWN_SECTIONS = {"engine", "storage", "scheduler", "logging"}

_singleton: Optional[Settings] = None
_singleton_lock = threading.Lock()


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. BALANCE_CONFIG environment variable
      3. Default: config/balance.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("BALANCE_CONFIG")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def _build_settings(config_path: str | Path | None) -> Settings:
    yaml_data = _load_yaml(_resolve_config_path(config_path))
    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}
    return Settings(**init_kwargs)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load settings by merging balance.yaml with environment variables and
    replace the global singleton.

    Config path resolution order:
      1. config_path argument  (--config CLI flag)
      2. BALANCE_CONFIG env var
      3. config/balance.yaml   (default)
    """
    global _singleton
    instance = _build_settings(config_path)
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """
    Return the global Settings singleton, loading it from the default config
    path on first use. Thread-safe.
    """
    global _singleton
    if _singleton is not None:
        return _singleton  # fast path, no lock once set
    with _singleton_lock:
        if _singleton is None:
            _singleton = _build_settings(None)
        return _singleton  # type: ignore[return-value]


def reset_settings() -> None:
    """Forget the singleton (tests)."""
    global _singleton
    with _singleton_lock:
        _singleton = None
