"""Configuration management for fragment-check"""

import os
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator, model_validator

from fragment_check.errors import ConfigurationError
from fragment_check.extractor import DEFAULT_END_DELIMITER, DEFAULT_START_DELIMITER

ENV_PREFIX = "FRAGMENT_CHECK_"

DEFAULT_STRATEGY = "prepare"
DEFAULT_LANGUAGE = "haskell"
DEFAULT_OVERRIDES_FILE = ".fragment-check.json"


class Settings(BaseModel):
    """Runtime settings, read from the environment (and an optional .env file)."""

    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "postgres"
    db_password: str = ""
    db_name: str = "postgres"

    strategy: str = DEFAULT_STRATEGY
    start_delimiter: str = DEFAULT_START_DELIMITER
    end_delimiter: str = DEFAULT_END_DELIMITER
    language: str = DEFAULT_LANGUAGE

    workspace: Path = Path(".")
    overrides_file: Path = Path(DEFAULT_OVERRIDES_FILE)
    log_file: Optional[Path] = None
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def _check_delimiters(self) -> "Settings":
        if not self.start_delimiter or not self.end_delimiter:
            raise ValueError("delimiters must not be empty")
        if self.start_delimiter == self.end_delimiter:
            raise ValueError("start and end delimiters must differ")
        return self

    @property
    def overrides_path(self) -> Path:
        """Override file, resolved against the workspace when relative."""
        if self.overrides_file.is_absolute():
            return self.overrides_file
        return self.workspace / self.overrides_file

    def get_database_url(self) -> str:
        """
        SQLAlchemy URL for the asyncpg driver.

        An explicit FRAGMENT_CHECK_DATABASE_URL wins; postgres:// and
        postgresql:// schemes are converted to postgresql+asyncpg://.
        """
        if self.database_url:
            url = self.database_url
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql+asyncpg://", 1)
            elif url.startswith("postgresql://"):
                url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
            return url

        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


_ENV_FIELDS = {
    "DATABASE_URL": "database_url",
    "DB_HOST": "db_host",
    "DB_PORT": "db_port",
    "DB_USER": "db_user",
    "DB_PASSWORD": "db_password",
    "DB_NAME": "db_name",
    "STRATEGY": "strategy",
    "START_DELIMITER": "start_delimiter",
    "END_DELIMITER": "end_delimiter",
    "LANGUAGE": "language",
    "WORKSPACE": "workspace",
    "OVERRIDES_FILE": "overrides_file",
    "LOG_FILE": "log_file",
    "LOG_LEVEL": "log_level",
}


def load_settings(
    env_file: Optional[Union[str, Path]] = None, **overrides
) -> Settings:
    """
    Load settings from FRAGMENT_CHECK_* environment variables.

    Args:
        env_file: .env file to load first (default: ./.env when present)
        **overrides: Explicit values (e.g. from the command line); None is ignored

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: If a value is invalid
    """
    load_dotenv(env_file if env_file is not None else Path.cwd() / ".env")

    values = {}
    for suffix, field_name in _ENV_FIELDS.items():
        raw = os.getenv(ENV_PREFIX + suffix)
        if raw is not None and raw != "":
            values[field_name] = raw
    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return Settings(**values)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
