"""
Environment Configuration Management Module

This module provides centralized configuration for devicemesh through the
Environment class. Values are resolved from, in order of precedence:

- Environment variables
- Settings file (settings.yaml)
- Default values

.env files in the working directory are loaded into the process environment
first and never override variables that are already set.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

from devicemesh.config.settings import get_value, load_settings
from devicemesh.errors import ConfigurationError

DEFAULT_ENV = {
    "ENV": "development",
    "DEVICEMESH_LOG_LEVEL": "INFO",
    "DEVICEMESH_MAX_RETRIES": 3,
    "DEVICEMESH_RETRY_DELAY": 1.0,
    "DEVICEMESH_TIMEOUT": 30.0,
    "DEVICEMESH_MAX_WORKERS": 8,
    "DEVICEMESH_PID_CACHE_TTL": 3.0,
    "DEVICEMESH_VERSION_CACHE_TTL": 3600.0,
}

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def load_dotenv_files(base_dir: Optional[Path] = None):
    """Load environment variables from .env files based on current environment."""
    from dotenv import load_dotenv

    base_dir = base_dir or Path.cwd()
    env_name = os.environ.get("ENV", "development")

    # Later files add variables, earlier ones win on conflicts since override=False
    env_files = [
        base_dir / f".env.{env_name}.local",
        base_dir / f".env.{env_name}",
        base_dir / ".env",
    ]

    for env_file in env_files:
        if env_file.exists():
            load_dotenv(env_file, override=False)


class Environment(object):
    """
    A class that manages environment variables and provides default values and type conversions.

    Settings are loaded lazily on first access and cached on the class. Call
    ``Environment.reset()`` to force a reload (tests do this between cases).
    """

    settings: Optional[Dict[str, Any]] = None

    @classmethod
    def load_settings(cls):
        load_dotenv_files()
        cls.settings = load_settings()

    @classmethod
    def reset(cls):
        """Drop cached settings so the next access reloads them."""
        cls.settings = None

    @classmethod
    def get_settings(cls) -> Dict[str, Any]:
        if cls.settings is None:
            cls.load_settings()
        assert cls.settings is not None
        return cls.settings

    @classmethod
    def get(cls, key: str, default: Any = None):
        return get_value(key, cls.get_settings(), DEFAULT_ENV, default)

    @classmethod
    def get_environment(cls) -> Dict[str, Any]:
        env: Dict[str, Any] = DEFAULT_ENV.copy()
        for k, v in cls.get_settings().items():
            if v is not None:
                env[k] = v
        env.update({k: v for k, v in os.environ.items() if k.startswith("DEVICEMESH_")})
        return env

    @classmethod
    def get_env(cls):
        """
        The environment is either "development", "production" or "test".
        """
        return cls.get("ENV")

    @classmethod
    def is_test(cls):
        """
        Is the environment test?
        """
        return os.environ.get("PYTEST_CURRENT_TEST") is not None

    @classmethod
    def _get_int_setting(cls, key: str) -> int:
        raw = cls.get(key)
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from None

    @classmethod
    def _get_float_setting(cls, key: str) -> float:
        raw = cls.get(key)
        try:
            return float(raw)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{key} must be a number, got {raw!r}") from None

    @classmethod
    def get_log_level(cls) -> str:
        """
        The logging level for devicemesh loggers.
        """
        level = str(cls.get("DEVICEMESH_LOG_LEVEL")).upper()
        if level not in LOG_LEVELS:
            raise ConfigurationError(f"DEVICEMESH_LOG_LEVEL must be one of {sorted(LOG_LEVELS)}, got {level!r}")
        return level

    @classmethod
    def get_max_retries(cls) -> int:
        """
        Number of additional attempts after the first failure of a device command.
        """
        return cls._get_int_setting("DEVICEMESH_MAX_RETRIES")

    @classmethod
    def get_retry_delay(cls) -> float:
        """
        Delay in seconds before the first retry; doubled after each further failure.
        """
        return cls._get_float_setting("DEVICEMESH_RETRY_DELAY")

    @classmethod
    def get_timeout(cls) -> float:
        """
        Default deadline in seconds for timeout-guarded operations.
        """
        return cls._get_float_setting("DEVICEMESH_TIMEOUT")

    @classmethod
    def get_max_workers(cls) -> int:
        """
        Size of the thread pool used to fan out across devices.
        """
        return cls._get_int_setting("DEVICEMESH_MAX_WORKERS")

    @classmethod
    def get_pid_cache_ttl(cls) -> float:
        return cls._get_float_setting("DEVICEMESH_PID_CACHE_TTL")

    @classmethod
    def get_version_cache_ttl(cls) -> float:
        return cls._get_float_setting("DEVICEMESH_VERSION_CACHE_TTL")
