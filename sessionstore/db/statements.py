"""
Parameterized SQL statements for the sessions table.

Identifiers (table and column names) come from trusted settings and are
quoted with the dialect's identifier preparer before being placed in the
statement text. Every value that originates from a caller (session id,
serialized payload, expiry instants) is a bound parameter.
"""

import logging
from typing import Callable, Dict

from sqlalchemy import DateTime, String, Table, TextClause, UnicodeText, bindparam, column, text
from sqlalchemy.engine import Dialect
from sqlalchemy.sql.selectable import TextualSelect

from sessionstore.core.exceptions import UnsupportedDialectError
from sessionstore.db.models.session_store import SID_LENGTH

logger = logging.getLogger(__name__)


def _merge_upsert(t: str, sid: str, sess: str, expires: str) -> str:
    # HOLDLOCK keeps the match-or-insert decision atomic for concurrent writers
    return (
        f"MERGE INTO {t} WITH (HOLDLOCK) AS target"
        f" USING (SELECT :sid AS sid) AS source"
        f" ON target.{sid} = source.sid"
        f" WHEN MATCHED THEN UPDATE SET target.{sess} = :sess, target.{expires} = :expires"
        f" WHEN NOT MATCHED THEN INSERT ({sid}, {sess}, {expires}) VALUES (:sid, :sess, :expires);"
    )


def _on_conflict_upsert(t: str, sid: str, sess: str, expires: str) -> str:
    return (
        f"INSERT INTO {t} ({sid}, {sess}, {expires}) VALUES (:sid, :sess, :expires)"
        f" ON CONFLICT ({sid}) DO UPDATE SET {sess} = excluded.{sess}, {expires} = excluded.{expires}"
    )


def _duplicate_key_upsert(t: str, sid: str, sess: str, expires: str) -> str:
    return (
        f"INSERT INTO {t} ({sid}, {sess}, {expires}) VALUES (:sid, :sess, :expires)"
        f" ON DUPLICATE KEY UPDATE {sess} = VALUES({sess}), {expires} = VALUES({expires})"
    )


UPSERT_BUILDERS: Dict[str, Callable[[str, str, str, str], str]] = {
    "mssql": _merge_upsert,
    "postgresql": _on_conflict_upsert,
    "sqlite": _on_conflict_upsert,
    "mysql": _duplicate_key_upsert,
    "mariadb": _duplicate_key_upsert,
}


class SessionStatements:
    """The statements a session store issues, built once per store."""

    def __init__(self, table: Table, dialect: Dialect):
        builder = UPSERT_BUILDERS.get(dialect.name)
        if builder is None:
            raise UnsupportedDialectError(
                f"No upsert statement for dialect '{dialect.name}'; "
                f"supported: {', '.join(sorted(UPSERT_BUILDERS))}"
            )

        preparer = dialect.identifier_preparer
        sid_name, sess_name, expires_name = (c.name for c in table.columns)
        t = preparer.format_table(table)
        sid = preparer.quote(sid_name)
        sess = preparer.quote(sess_name)
        expires = preparer.quote(expires_name)

        self.dialect_name = dialect.name
        self.table_identifier = t

        self.select_live: TextualSelect = text(
            f"SELECT {expires} AS expires, {sess} AS sess FROM {t}"
            f" WHERE {sid} = :sid AND {expires} >= :now"
        ).bindparams(
            _sid_param(), bindparam("now", type_=DateTime())
        ).columns(
            column("expires", DateTime()), column("sess", UnicodeText())
        )

        self.upsert: TextClause = text(builder(t, sid, sess, expires)).bindparams(
            _sid_param(),
            bindparam("sess", type_=UnicodeText()),
            bindparam("expires", type_=DateTime()),
        )

        self.touch: TextClause = text(
            f"UPDATE {t} SET {expires} = :expires WHERE {sid} = :sid"
        ).bindparams(_sid_param(), bindparam("expires", type_=DateTime()))

        self.delete_one: TextClause = text(
            f"DELETE FROM {t} WHERE {sid} = :sid"
        ).bindparams(_sid_param())

        self.delete_all: TextClause = text(f"DELETE FROM {t}")

        self.delete_expired: TextClause = text(
            f"DELETE FROM {t} WHERE {expires} < :now"
        ).bindparams(bindparam("now", type_=DateTime()))

        self.count: TextClause = text(f"SELECT COUNT(*) AS total FROM {t}")

        logger.debug(f"Prepared session statements for {t} ({dialect.name})")


def _sid_param():
    return bindparam("sid", type_=String(SID_LENGTH))
