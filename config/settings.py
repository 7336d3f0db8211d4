"""
Configuration settings with environment variable loading.

Secrets are provided via environment variables and are never logged
or exposed in any output.
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

WEIGHT_UNITS = ("percent", "fraction")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


@dataclass(frozen=True)
class EngineConfig:
    """Lifecycle engine configuration."""
    weight_unit: str = "percent"

    def __post_init__(self):
        if self.weight_unit not in WEIGHT_UNITS:
            raise ConfigurationError(
                f"WEIGHT_UNIT must be one of {', '.join(WEIGHT_UNITS)}, got '{self.weight_unit}'"
            )


@dataclass(frozen=True)
class StorageConfig:
    """Persistent storage configuration."""
    database_path: Path = field(default_factory=lambda: Path("data/coursework.db"))

    def __post_init__(self):
        object.__setattr__(self, 'database_path', Path(self.database_path))


@dataclass(frozen=True)
class ApiConfig:
    """Remote LMS API configuration."""
    base_url: str
    access_token: str

    def __post_init__(self):
        if not self.base_url:
            raise ConfigurationError("LMS_API_BASE_URL is required")
        if not self.access_token:
            raise ConfigurationError("LMS_API_TOKEN is required when LMS_API_BASE_URL is set")
        if not self.base_url.startswith("https://"):
            raise ConfigurationError("LMS_API_BASE_URL must use HTTPS")

    def __repr__(self) -> str:
        """Never expose token in repr."""
        return f"ApiConfig(base_url='{self.base_url}', access_token='***REDACTED***')"


@dataclass(frozen=True)
class Settings:
    """
    Application settings container.

    `api` is None unless a remote LMS is configured.
    """
    engine: EngineConfig
    storage: StorageConfig
    api: Optional[ApiConfig] = None
    log_level: str = "INFO"

    def __repr__(self) -> str:
        return (
            f"Settings(\n"
            f"  engine={self.engine},\n"
            f"  storage={self.storage},\n"
            f"  api={self.api},\n"
            f"  log_level='{self.log_level}'\n"
            f")"
        )


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """
    Load settings from environment variables.

    Optionally loads from a .env file first; variables already set in
    the environment take precedence over the file.

    Args:
        env_file: Optional path to .env file

    Returns:
        Configured Settings instance

    Raises:
        ConfigurationError: If configuration is missing or invalid
    """
    if env_file and env_file.exists():
        _load_env_file(env_file)
    elif Path(".env").exists():
        _load_env_file(Path(".env"))

    try:
        engine = EngineConfig(
            weight_unit=os.getenv("WEIGHT_UNIT", "percent").strip().lower(),
        )

        storage = StorageConfig(
            database_path=Path(os.getenv("STORAGE_DATABASE_PATH", "data/coursework.db")),
        )

        api = None
        base_url = os.getenv("LMS_API_BASE_URL", "").rstrip("/")
        if base_url:
            api = ApiConfig(
                base_url=base_url,
                access_token=os.getenv("LMS_API_TOKEN", ""),
            )

        log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

        settings = Settings(
            engine=engine,
            storage=storage,
            api=api,
            log_level=log_level,
        )

        logger.info("Configuration loaded successfully")
        logger.debug(f"Settings: {settings}")

        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f"Failed to load configuration: {e}") from e


def _load_env_file(path: Path) -> None:
    """
    Load environment variables from a file.

    Handles KEY=value, quoted values, comments and blank lines.
    """
    logger.debug(f"Loading environment from {path}")

    with open(path) as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()

            if not line or line.startswith("#"):
                continue

            if "=" not in line:
                logger.warning(f"Invalid line {line_num} in {path}: no '=' found")
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                value = value[1:-1]

            # env vars take precedence
            if key not in os.environ:
                os.environ[key] = value
