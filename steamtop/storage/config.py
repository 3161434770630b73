import logging
import os
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.engine import URL

from steamtop.exceptions import ConfigError

logger = logging.getLogger(__name__)

SQLITE_TYPES = {"sqlite", "sqlite3"}
POSTGRES_TYPES = {"postgres", "postgresql"}


class DbHost(BaseModel):
    type: str = Field(..., description="Engine type: sqlite3 or postgres")
    host: str = Field(..., description="File path for sqlite, server host for postgres")
    dbname: str = Field("steam", description="Database name (ignored by sqlite)")
    user: Optional[str] = None
    password: Optional[str] = None
    port: Optional[int] = None

    @property
    def is_sqlite(self) -> bool:
        return self.type.lower() in SQLITE_TYPES

    def url(self) -> URL:
        """Build the SQLAlchemy URL for this descriptor."""
        kind = self.type.lower()
        if kind in SQLITE_TYPES:
            return URL.create("sqlite", database=self.host)
        if kind in POSTGRES_TYPES:
            return URL.create(
                "postgresql+psycopg2",
                username=self.user,
                password=self.password,
                host=self.host,
                port=self.port,
                database=self.dbname,
            )
        raise ConfigError(f"Unsupported database type: {self.type}")


class DbConfig(BaseModel):
    database: DbHost


def load_db_config(path: Union[str, Path, None]) -> DbConfig:
    """
    Read a YAML (or JSON) file describing the database connection.

    Expected shape::

        database:
          type: postgres
          host: localhost
          dbname: steam
    """
    if not path:
        raise ConfigError("Config file not specified")

    logger.debug(f"Reading database configuration file: {path}")
    try:
        with open(path, "r") as config_file:
            raw = yaml.safe_load(config_file) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Unable to read config file {path}: {e}") from e

    try:
        config = DbConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e

    # fail fast on unknown engine types
    config.database.url()
    return config


def local_db_config(path: Union[str, Path]) -> DbConfig:
    """Describe a local SQLite file, creating its directory (0700) if missing."""
    path = Path(path).expanduser()
    directory = path.parent
    if not directory.exists():
        logger.info(f"Creating database directory {directory}")
        try:
            os.makedirs(directory, mode=0o700, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Unable to create database directory {directory}: {e}") from e
    return DbConfig(database=DbHost(type="sqlite3", host=str(path), dbname="steam"))
