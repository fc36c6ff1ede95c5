"""
Root conftest — make `balance` importable from src/ without installing, and
isolate the environment variables the settings layer reads so that a
developer's shell or .env file never leaks into tests.
"""
import os
import sys
from pathlib import Path

import pytest

_SRC = Path(__file__).parent / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

_SETTINGS_ENV_PREFIXES = ("ENGINE", "STORAGE", "SCHEDULER", "LOGGING")


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch):
    """Remove BALANCE_CONFIG and nested settings env vars for every test, and
    disable .env file loading by patching Settings.model_config."""
    monkeypatch.delenv("BALANCE_CONFIG", raising=False)
    for var in list(os.environ):
        if var.upper().startswith(_SETTINGS_ENV_PREFIXES):
            monkeypatch.delenv(var, raising=False)

    import balance.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
    settings_module.reset_settings()
    yield
    settings_module.reset_settings()


@pytest.fixture(autouse=True)
def _no_process_scheduler():
    """Stop the process-wide tick scheduler if a test created one."""
    yield
    from balance.scheduler.scheduler import shutdown_scheduler
    shutdown_scheduler(wait=False)
