"""Configuration management for rdb-ontology."""

import os
import logging
from typing import Optional, Sequence
from dataclasses import dataclass, field
from dotenv import load_dotenv
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from .constants import (
    ABOX_NAMESPACE_SUFFIX,
    DEFAULT_OUTPUT_SYNTAX,
    DEFAULT_SCHEMA_PATTERN,
    DEFAULT_TABLE_PATTERN,
    DEFAULT_TABLE_TYPES,
    MAX_VERBOSITY,
    TBOX_NAMESPACE_SUFFIX,
)
from .encoding import Encoding, PaEncoding
from .model import SqlNaming
from .utils import validate_uri

logger = logging.getLogger(__name__)


def _parse_url(url: str) -> URL:
    try:
        return make_url(url)
    except ArgumentError as e:
        raise ValueError(f"Invalid database URL: {e}") from e


@dataclass
class BuildParameters:
    """Everything a catalog build needs to know.

    Only ``url`` is required. Namespaces left unset are derived from the
    URL, the password excluded.
    """
    url: str
    username: Optional[str] = None
    password: Optional[str] = None
    driver: Optional[str] = None
    catalog: Optional[str] = None
    schema_pattern: str = DEFAULT_SCHEMA_PATTERN
    table_pattern: str = DEFAULT_TABLE_PATTERN
    table_types: Sequence[str] = DEFAULT_TABLE_TYPES
    tbox_base_uri: Optional[str] = None
    abox_base_uri: Optional[str] = None
    imported_tbox_uri: Optional[str] = None
    encoding: Encoding = field(default_factory=PaEncoding)
    naming: Optional[SqlNaming] = None
    verbosity: int = 0

    def __post_init__(self):
        """Validate the parameters and resolve the namespaces."""
        if not self.url:
            raise ValueError("A database URL is required")
        if self.verbosity < 0:
            raise ValueError(f"Verbosity must not be negative, got {self.verbosity}")
        if self.verbosity > MAX_VERBOSITY:
            logger.debug(f"Verbosity {self.verbosity} is above {MAX_VERBOSITY}, all diagnostics enabled")
        self.table_types = tuple(self.table_types)

        public_url = self.public_url()
        if self.tbox_base_uri is None:
            self.tbox_base_uri = public_url + TBOX_NAMESPACE_SUFFIX
        if self.abox_base_uri is None:
            self.abox_base_uri = public_url + ABOX_NAMESPACE_SUFFIX
        if self.imported_tbox_uri is None:
            self.imported_tbox_uri = self.tbox_base_uri.rstrip("#/")

        for name in ("tbox_base_uri", "abox_base_uri", "imported_tbox_uri"):
            if not validate_uri(getattr(self, name)):
                raise ValueError(f"{name} is not an absolute URI: {getattr(self, name)}")

    def public_url(self) -> str:
        """Return the connection URL without its password."""
        # URL.set() ignores None arguments, so the field is replaced directly
        url = _parse_url(self.url)._replace(password=None)
        return url.render_as_string(hide_password=False)

    def sqlalchemy_url(self) -> URL:
        """Return the URL to connect with, credentials and driver applied."""
        url = _parse_url(self.url)
        if self.username is not None:
            url = url.set(username=self.username)
        if self.password is not None:
            url = url.set(password=self.password)
        if self.driver:
            url = url.set(drivername=f"{url.get_backend_name()}+{self.driver}")
        return url


@dataclass
class LoggingConfig:
    """Logging configuration settings."""
    log_level: str = "WARNING"
    structured: bool = False


@dataclass
class DatabaseConfig:
    """Connection and introspection defaults read from the environment."""
    url: Optional[str] = None
    driver: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    schema_pattern: str = DEFAULT_SCHEMA_PATTERN
    table_pattern: str = DEFAULT_TABLE_PATTERN
    tbox_base_uri: Optional[str] = None
    abox_base_uri: Optional[str] = None
    imported_tbox_uri: Optional[str] = None
    output_syntax: str = DEFAULT_OUTPUT_SYNTAX
    verbosity: int = 0


class ConfigManager:
    """Manages application configuration."""

    def __init__(self, env_path: Optional[str] = None):
        """Initialize configuration manager."""
        # Load .env from project root (one level up from the package)
        if env_path is None:
            env_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env')
        load_dotenv(env_path)
        self._logging_config: Optional[LoggingConfig] = None
        self._db_config: Optional[DatabaseConfig] = None

    def get_logging_config(self) -> LoggingConfig:
        if self._logging_config is None:
            self._logging_config = LoggingConfig(
                log_level=os.getenv("LOG_LEVEL", "WARNING").upper(),
                structured=os.getenv("LOG_STRUCTURED", "false").lower() == "true",
            )
        return self._logging_config

    def get_database_config(self) -> DatabaseConfig:
        """Get database configuration."""
        if self._db_config is None:
            verbosity = os.getenv("VERBOSITY", "0")
            try:
                verbosity_level = int(verbosity)
            except ValueError:
                logger.warning(f"Invalid VERBOSITY value '{verbosity}'. Defaulting to 0.")
                verbosity_level = 0
            self._db_config = DatabaseConfig(
                url=os.getenv("DATABASE_URL"),
                driver=os.getenv("DATABASE_DRIVER"),
                username=os.getenv("DATABASE_USERNAME"),
                password=os.getenv("DATABASE_PASSWORD"),
                schema_pattern=os.getenv("SCHEMA_PATTERN", DEFAULT_SCHEMA_PATTERN),
                table_pattern=os.getenv("TABLE_PATTERN", DEFAULT_TABLE_PATTERN),
                tbox_base_uri=os.getenv("TBOX_BASE_URI"),
                abox_base_uri=os.getenv("ABOX_BASE_URI"),
                imported_tbox_uri=os.getenv("IMPORTED_TBOX_URI"),
                output_syntax=os.getenv("OUTPUT_SYNTAX", DEFAULT_OUTPUT_SYNTAX),
                verbosity=verbosity_level,
            )
            logger.debug("Database configuration loaded")
        return self._db_config


# Global configuration manager instance
config_manager = ConfigManager()
