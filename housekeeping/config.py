"""Client settings.

Values come from HOUSEKEEPING_* environment variables (a .env file in the
working directory is loaded first) and fall back to the defaults below.
Leaving a remote URL unset disables that storage tier.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping
from zoneinfo import ZoneInfo

from dotenv import load_dotenv
from pydantic import BaseModel

ENV_PREFIX = "HOUSEKEEPING_"

_SETTINGS_DEFAULTS: dict[str, Any] = {
    "api_url": None,
    "file_store_url": None,
    "file_store_token": "",
    "file_store_branch": "",
    "cache_dir": Path("data/cache"),
    "cache_quota_bytes": 5 * 1024 * 1024,
    "request_timeout": 6.0,
    "archive_retention_days": 30,
    "overdue_hours": 24.0,
    "failure_threshold": 3,
    "timezone": "UTC",
    "admin_secret": None,
    "storage_info_interval": 10.0,
    "health_check_interval": 30.0,
    "reset_check_interval": 60.0,
    "refresh_interval": 30.0,
}


class Settings(BaseModel):
    api_url: str | None = _SETTINGS_DEFAULTS["api_url"]
    file_store_url: str | None = _SETTINGS_DEFAULTS["file_store_url"]
    file_store_token: str = _SETTINGS_DEFAULTS["file_store_token"]
    file_store_branch: str = _SETTINGS_DEFAULTS["file_store_branch"]
    cache_dir: Path = _SETTINGS_DEFAULTS["cache_dir"]
    cache_quota_bytes: int = _SETTINGS_DEFAULTS["cache_quota_bytes"]
    request_timeout: float = _SETTINGS_DEFAULTS["request_timeout"]
    archive_retention_days: int = _SETTINGS_DEFAULTS["archive_retention_days"]
    overdue_hours: float = _SETTINGS_DEFAULTS["overdue_hours"]
    failure_threshold: int = _SETTINGS_DEFAULTS["failure_threshold"]
    timezone: str = _SETTINGS_DEFAULTS["timezone"]
    admin_secret: str | None = _SETTINGS_DEFAULTS["admin_secret"]
    storage_info_interval: float = _SETTINGS_DEFAULTS["storage_info_interval"]
    health_check_interval: float = _SETTINGS_DEFAULTS["health_check_interval"]
    reset_check_interval: float = _SETTINGS_DEFAULTS["reset_check_interval"]
    refresh_interval: float = _SETTINGS_DEFAULTS["refresh_interval"]

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def load_settings(
    env: Mapping[str, str] | None = None, dotenv_path: Path | None = None
) -> Settings:
    """Read settings from the environment, returning defaults for unset keys.

    Pass `env` to bypass os.environ (tests do this).
    """
    if env is None:
        load_dotenv(dotenv_path or Path.cwd() / ".env")
        env = os.environ
    fields: dict[str, Any] = {}
    for name in _SETTINGS_DEFAULTS:
        raw = env.get(ENV_PREFIX + name.upper())
        if raw is None or raw == "":
            continue
        fields[name] = raw
    return Settings.model_validate(fields)
