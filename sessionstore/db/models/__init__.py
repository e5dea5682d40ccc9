"""Database models"""

from sessionstore.db.models.session_store import build_sessions_table

__all__ = [
    "build_sessions_table",
]
