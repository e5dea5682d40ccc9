from typing import Optional

from sqlalchemy import Column, DateTime, MetaData, String, Table, Text

from sessionstore.core.config import StoreSettings

SID_LENGTH = 255


def build_sessions_table(
    metadata: MetaData,
    settings: StoreSettings,
    schema: Optional[str] = None,
) -> Table:
    """Server-side session table: one row per session id.

    Names come from settings so the store can adopt an existing table.
    """
    return Table(
        settings.table_name,
        metadata,
        Column(settings.sid_column_name, String(SID_LENGTH), primary_key=True),
        Column(settings.sess_column_name, Text, nullable=False),
        Column(settings.expires_column_name, DateTime, nullable=False, index=True),
        schema=schema if schema is not None else settings.table_schema,
    )
