"""Environment-driven configuration and logging setup for assetkit."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

LOG_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read an environment variable, treating empty strings as unset."""
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = _env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_bool(name: str, default: bool = False) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.lower() in _TRUE_VALUES


@dataclass
class Settings:
    """Runtime settings for the storage client, logging and lifecycle policy."""
    db_url: Optional[str] = None
    db_host: Optional[str] = None
    db_port: int = 5432
    db_name: Optional[str] = None
    db_user: Optional[str] = None
    db_password: Optional[str] = None
    db_minconn: int = 1
    db_maxconn: int = 10
    log_level: str = "info"
    strict_transitions: bool = False

    def database_url(self) -> str:
        """Return the PostgreSQL connection string.

        Priority: 1) explicit db_url, 2) individual connection parameters.

        Raises:
            ValueError: If neither a URL nor a complete set of parameters is configured
        """
        if self.db_url:
            return self.db_url

        if not all([self.db_host, self.db_name, self.db_user, self.db_password]):
            raise ValueError(
                "Missing required connection parameters. Set ASSETKIT_DB_URL or "
                "ASSETKIT_DB_HOST, ASSETKIT_DB_NAME, ASSETKIT_DB_USER, "
                "ASSETKIT_DB_PASSWORD environment variables."
            )

        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


def load_settings(env_file: Optional[Union[str, Path]] = None) -> Settings:
    """Load settings from the environment, after applying a .env file.

    Args:
        env_file: Optional explicit .env path. When omitted, a .env in the
                  current working directory is loaded if present.

    Returns:
        Settings instance
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        default_env = Path.cwd() / ".env"
        if default_env.exists():
            load_dotenv(default_env)

    log_level = (_env("ASSETKIT_LOG_LEVEL", "info") or "info").lower()
    if log_level not in LOG_LEVELS:
        raise ValueError(
            f"ASSETKIT_LOG_LEVEL must be one of {sorted(set(LOG_LEVELS))}, got {log_level!r}"
        )

    return Settings(
        db_url=_env("ASSETKIT_DB_URL") or _env("DATABASE_URL"),
        db_host=_env("ASSETKIT_DB_HOST"),
        db_port=_env_int("ASSETKIT_DB_PORT", 5432),
        db_name=_env("ASSETKIT_DB_NAME"),
        db_user=_env("ASSETKIT_DB_USER"),
        db_password=_env("ASSETKIT_DB_PASSWORD"),
        db_minconn=_env_int("ASSETKIT_DB_MINCONN", 1),
        db_maxconn=_env_int("ASSETKIT_DB_MAXCONN", 10),
        log_level=log_level,
        strict_transitions=_env_bool("ASSETKIT_STRICT_TRANSITIONS", False),
    )


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Attach a stream handler to the package logger at the configured level."""
    settings = settings or load_settings()
    package_logger = logging.getLogger("assetkit")
    package_logger.setLevel(LOG_LEVELS[settings.log_level])

    if not any(getattr(h, "_assetkit_handler", False) for h in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        handler._assetkit_handler = True
        package_logger.addHandler(handler)

    return package_logger
