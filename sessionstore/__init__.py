"""SQL-backed server-side session store for web session middleware."""

from sessionstore.core.config import ConnectionConfig, StoreSettings, parse_connection_string
from sessionstore.core.exceptions import (
    ConfigurationError,
    PoolAcquireError,
    SessionDurationError,
    SessionSerializationError,
    SessionStoreError,
    TransientStoreError,
    UnsupportedDialectError,
)
from sessionstore.core.interfaces import SessionStoreBase
from sessionstore.core.retry import RetryPolicy, with_retry
from sessionstore.core.session_store import SqlSessionStore

__version__ = "1.0.0"

__all__ = [
    "ConfigurationError",
    "ConnectionConfig",
    "PoolAcquireError",
    "RetryPolicy",
    "SessionDurationError",
    "SessionSerializationError",
    "SessionStoreBase",
    "SessionStoreError",
    "SqlSessionStore",
    "StoreSettings",
    "TransientStoreError",
    "UnsupportedDialectError",
    "parse_connection_string",
    "with_retry",
]
