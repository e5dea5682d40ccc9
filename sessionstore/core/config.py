"""
Session store configuration using Pydantic Settings.

Configuration values can be set via environment variables (prefixed with
``SESSION_STORE_``) or a .env file. A SQL Server style connection string can
be supplied instead of a SQLAlchemy URL; it is parsed into a
``ConnectionConfig`` and rendered as an ``mssql+aioodbc`` URL.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

from sessionstore.core.exceptions import ConfigurationError
from sessionstore.core.retry import RetryPolicy

ONE_DAY_MS = 86_400_000

# Connection string keys and the ConnectionConfig field they map to
_CONNECTION_STRING_KEYS = {
    "server": "server",
    "data source": "server",
    "address": "server",
    "addr": "server",
    "host": "server",
    "port": "port",
    "database": "database",
    "initial catalog": "database",
    "user id": "user",
    "uid": "user",
    "user": "user",
    "password": "password",
    "pwd": "password",
    "encrypt": "encrypt",
    "trustservercertificate": "trust_server_certificate",
    "trust server certificate": "trust_server_certificate",
    "driver": "driver",
}

_TRUE_VALUES = {"true", "yes", "1", "mandatory", "strict"}
_FALSE_VALUES = {"false", "no", "0", "optional"}


class ConnectionConfig(BaseModel):
    """Structured connection fields for a SQL Server database."""

    server: str
    port: Optional[int] = None
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    encrypt: bool = True
    trust_server_certificate: bool = False
    driver: str = "ODBC Driver 18 for SQL Server"

    def to_url(self, drivername: str = "mssql+aioodbc") -> URL:
        """Render the connection as a SQLAlchemy URL.

        Credentials travel as URL components, so they are escaped by
        SQLAlchemy rather than by string concatenation.
        """
        query: Dict[str, str] = {
            "driver": self.driver,
            "Encrypt": "yes" if self.encrypt else "no",
        }
        if self.trust_server_certificate:
            query["TrustServerCertificate"] = "yes"
        return URL.create(
            drivername,
            username=self.user,
            password=self.password,
            host=self.server,
            port=self.port,
            database=self.database,
            query=query,
        )


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean for '{key}' in connection string: {value!r}")


def parse_connection_string(connection_string: str) -> ConnectionConfig:
    """
    Parse an ADO.NET style connection string.

    Example: ``Server=tcp:db.example.com,1433;Database=app;User Id=web;
    Password=secret;Encrypt=true``

    Args:
        connection_string: Semicolon separated ``key=value`` pairs

    Returns:
        ConnectionConfig with the recognized fields

    Raises:
        ConfigurationError: If a segment is malformed or no server is given
    """
    fields: Dict[str, object] = {}

    for segment in connection_string.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        if "=" not in segment:
            raise ConfigurationError(f"Malformed connection string segment: {segment.split(' ')[0]!r}")

        raw_key, _, raw_value = segment.partition("=")
        key = " ".join(raw_key.strip().lower().split())
        value = raw_value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        elif len(value) >= 2 and value.startswith("{") and value.endswith("}"):
            value = value[1:-1]

        field_name = _CONNECTION_STRING_KEYS.get(key)
        if field_name is None:
            # Unknown keys (timeouts, app name, ...) are not used by the store
            continue

        if field_name == "server":
            if value.lower().startswith("tcp:"):
                value = value[4:]
            if "," in value:
                value, _, port = value.partition(",")
                fields["port"] = port.strip()
            fields["server"] = value.strip()
        elif field_name in ("encrypt", "trust_server_certificate"):
            fields[field_name] = _parse_bool(key, value)
        else:
            fields[field_name] = value

    if not fields.get("server"):
        raise ConfigurationError("Connection string does not name a server")

    try:
        return ConnectionConfig(**fields)
    except ValueError as e:
        raise ConfigurationError(f"Invalid connection string: {e}") from e


class StoreSettings(BaseSettings):
    """Session store settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="SESSION_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database connection
    database_url: Optional[str] = None
    connection_string: Optional[str] = None
    echo_sql: bool = False

    # Table and column identifiers (trusted configuration only)
    table_name: str = "Sessions"
    table_schema: Optional[str] = None
    sid_column_name: str = "Sid"
    sess_column_name: str = "Sess"
    expires_column_name: str = "Expires"

    # Connection pool
    min_connections: int = Field(default=1, ge=0)
    max_connections: int = Field(default=10, ge=1)
    idle_timeout: float = Field(default=30.0, gt=0)
    acquire_timeout: float = Field(default=30.0, gt=0)

    # Retry policy
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_initial_backoff: float = Field(default=0.1, ge=0)
    retry_max_backoff: float = Field(default=2.0, ge=0)
    retry_multiplier: float = Field(default=2.0, ge=1)

    # Session behaviour
    default_max_age_ms: int = Field(default=ONE_DAY_MS, gt=0)
    auto_create_table: bool = False
    sweep_on_start: bool = True

    # Logging
    log_level: str = "INFO"
    structured_logging: bool = False

    @model_validator(mode="after")
    def check_pool_bounds(self) -> "StoreSettings":
        if self.max_connections < self.min_connections:
            raise ValueError(
                f"max_connections ({self.max_connections}) must be >= "
                f"min_connections ({self.min_connections})"
            )
        if self.retry_max_backoff < self.retry_initial_backoff:
            raise ValueError("retry_max_backoff must be >= retry_initial_backoff")
        for name in ("table_name", "sid_column_name", "sess_column_name", "expires_column_name"):
            if not getattr(self, name).strip():
                raise ValueError(f"{name} must not be empty")
        return self

    @property
    def resolved_database_url(self) -> str | URL:
        """The SQLAlchemy URL the engine is created from.

        An explicit ``database_url`` wins over ``connection_string``.
        """
        if self.database_url:
            return self.database_url
        if self.connection_string:
            return parse_connection_string(self.connection_string).to_url()
        return "sqlite+aiosqlite:///./data/sessions.db"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            initial_backoff=self.retry_initial_backoff,
            max_backoff=self.retry_max_backoff,
            multiplier=self.retry_multiplier,
        )
