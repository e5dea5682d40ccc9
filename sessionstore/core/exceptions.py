"""Error taxonomy for the session store.

Driver-level statement errors (``sqlalchemy.exc.DBAPIError`` and friends)
are not wrapped: they reach the caller exactly as the driver raised them.
"""


class SessionStoreError(Exception):
    """Base class for errors raised by the session store itself"""
    pass


class ConfigurationError(SessionStoreError):
    """Raised when store settings or a connection string are invalid"""
    pass


class TransientStoreError(SessionStoreError):
    """Raised for failures that are safe to retry as a whole operation"""
    pass


class PoolAcquireError(TransientStoreError):
    """Raised when a pooled connection could not be checked out"""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error


class SessionSerializationError(SessionStoreError):
    """Raised when a session payload cannot be encoded or decoded"""

    def __init__(self, sid: str, message: str):
        super().__init__(f"Session {sid!r}: {message}")
        self.sid = sid


class UnsupportedDialectError(ConfigurationError):
    """Raised when the database dialect has no known upsert statement"""
    pass


class SessionDurationError(SessionStoreError):
    """Raised when a session's lifetime does not give a representable expiry"""

    def __init__(self, sid: str, duration_ms: float):
        super().__init__(f"Session {sid!r}: maxAge {duration_ms!r} ms is out of range")
        self.sid = sid
        self.duration_ms = duration_ms
