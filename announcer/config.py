"""
Runtime settings for the announcer, read from environment variables.

Call ``load_env()`` first to pick up a local .env file.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigError


def _float(env: Mapping[str, str], key: str, default: float, positive: bool = False) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")
    if positive and value <= 0:
        raise ConfigError(f"{key} must be greater than zero, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {raw!r}")
    return value


@dataclass
class Settings:
    api_base_url: str
    api_token: str = ""
    request_timeout: float = 15.0
    sync_interval: float = 300.0
    initial_sync_delay: float = 5.0
    grace_period: float = 30.0
    group_pause: float = 0.5
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from ``env`` (default: ``os.environ``).

        Raises:
            ConfigError: If ANNOUNCER_API_URL is missing or a number is malformed
                or out of range
        """
        env = os.environ if env is None else env

        base_url = (env.get("ANNOUNCER_API_URL") or "").strip()
        if not base_url:
            raise ConfigError("ANNOUNCER_API_URL not set. Set env var or add it to .env.")

        log_dir = (env.get("ANNOUNCER_LOG_DIR") or "").strip()
        return cls(
            api_base_url=base_url.rstrip("/"),
            api_token=(env.get("ANNOUNCER_API_TOKEN") or "").strip(),
            request_timeout=_float(env, "ANNOUNCER_API_TIMEOUT", 15.0, positive=True),
            sync_interval=_float(env, "ANNOUNCER_SYNC_INTERVAL", 300.0, positive=True),
            initial_sync_delay=_float(env, "ANNOUNCER_INITIAL_SYNC_DELAY", 5.0),
            grace_period=_float(env, "ANNOUNCER_GRACE_PERIOD", 30.0),
            group_pause=_float(env, "ANNOUNCER_GROUP_PAUSE", 0.5),
            log_level=(env.get("ANNOUNCER_LOG_LEVEL") or "INFO").strip().upper(),
            log_dir=Path(log_dir) if log_dir else None,
        )
