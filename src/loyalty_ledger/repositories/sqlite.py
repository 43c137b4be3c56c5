"""SQLite implementation of the document store."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from loyalty_ledger.repositories import codec
from loyalty_ledger.repositories.base import Clock, TransactionalDocumentStore
from loyalty_ledger.repositories.interfaces import (
    DocumentRef,
    DocumentSnapshot,
    FilterOp,
    Query,
    SortDirection,
)

_SQL_OPERATORS = {
    FilterOp.EQ: "=",
    FilterOp.LT: "<",
    FilterOp.LTE: "<=",
    FilterOp.GT: ">",
    FilterOp.GTE: ">=",
}


class SQLiteDatabase:
    """SQLite database connection manager."""

    def __init__(
        self,
        path: str | Path = ":memory:",
        check_same_thread: bool = True,
        timeout: float = 5.0,
    ) -> None:
        self._path = str(path)
        self._check_same_thread = check_same_thread
        self._timeout = timeout
        self._connection: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._path

    def get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection.

        The connection runs in autocommit mode; transactions are opened
        explicitly with BEGIN IMMEDIATE by the document store.
        """
        if self._connection is None:
            self._connection = sqlite3.connect(
                self._path,
                check_same_thread=self._check_same_thread,
                timeout=self._timeout,
                isolation_level=None,
            )
            self._connection.row_factory = sqlite3.Row
            if self._path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
        return self._connection

    def initialize(self) -> None:
        """Create the documents table."""
        conn = self.get_connection()
        conn.executescript(
            """
            -- One row per document; data holds the JSON body
            CREATE TABLE IF NOT EXISTS documents (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                path TEXT NOT NULL UNIQUE,
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                data TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);
            """
        )

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None


def _json_path(field_path: str) -> str:
    parts = field_path.split(".")
    if any(not part or '"' in part for part in parts):
        raise ValueError(f"Invalid field path: {field_path!r}")
    return "$" + "".join(f'."{part}"' for part in parts)


def _sql_value(value: Any) -> Any:
    encoded = codec.encode_value(value)
    if isinstance(encoded, bool):
        # json_extract yields 1/0 for JSON booleans
        return int(encoded)
    if isinstance(encoded, dict | list):
        raise ValueError(f"Cannot filter on non-scalar value: {value!r}")
    return encoded


class SQLiteDocumentStore(TransactionalDocumentStore):
    """Documents in one SQLite table, queried through JSON1 functions."""

    driver_errors = (sqlite3.Error,)

    def __init__(
        self,
        database: SQLiteDatabase,
        *,
        max_attempts: int = 5,
        retry_delay: float = 0.025,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(
            max_attempts=max_attempts, retry_delay=retry_delay, clock=clock
        )
        self._db = database

    def close(self) -> None:
        self._db.close()

    def _connection(self) -> sqlite3.Connection:
        return self._db.get_connection()

    def _begin(self, conn: sqlite3.Connection) -> None:
        # Takes the write lock up front so reads inside the transaction are stable
        conn.execute("BEGIN IMMEDIATE")

    def _commit(self, conn: sqlite3.Connection) -> None:
        conn.execute("COMMIT")

    def _rollback(self, conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def _is_conflict(self, exc: Exception) -> bool:
        message = str(exc).lower()
        return isinstance(exc, sqlite3.OperationalError) and (
            "locked" in message or "busy" in message
        )

    def _fetch(self, conn: sqlite3.Connection, ref: DocumentRef) -> DocumentSnapshot:
        row = conn.execute(
            "SELECT seq, data FROM documents WHERE path = ?", (str(ref),)
        ).fetchone()
        if row is None:
            return DocumentSnapshot(ref)
        return DocumentSnapshot(ref, codec.loads(row["data"]), row["seq"])

    def _upsert(
        self, conn: sqlite3.Connection, ref: DocumentRef, data: dict[str, Any]
    ) -> None:
        conn.execute(
            """
            INSERT INTO documents (path, collection, doc_id, data)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET data = excluded.data
            """,
            (str(ref), ref.collection, ref.id, codec.dumps(data)),
        )

    def _remove(self, conn: sqlite3.Connection, ref: DocumentRef) -> None:
        conn.execute("DELETE FROM documents WHERE path = ?", (str(ref),))

    def _select(self, conn: sqlite3.Connection, query: Query) -> list[DocumentSnapshot]:
        sql = "SELECT seq, path, data FROM documents WHERE collection = ?"
        params: list[Any] = [query.collection]

        for condition in query.filters:
            sql += f" AND json_extract(data, ?) {_SQL_OPERATORS[condition.op]} ?"
            params.extend([_json_path(condition.field), _sql_value(condition.value)])

        cursor = query.start_after
        if query.order_by:
            order_path = _json_path(query.order_by)
            descending = query.direction == SortDirection.DESCENDING
            if cursor is not None:
                # Ties on the order field fall back to insertion sequence
                cmp = "<" if descending else ">"
                cursor_value = _sql_value(cursor.get(query.order_by))
                sql += (
                    f" AND (json_extract(data, ?) {cmp} ?"
                    f" OR (json_extract(data, ?) = ? AND seq {cmp} ?))"
                )
                params.extend(
                    [order_path, cursor_value, order_path, cursor_value, cursor.sequence]
                )
            keyword = "DESC" if descending else "ASC"
            sql += f" ORDER BY json_extract(data, ?) {keyword}, seq {keyword}"
            params.append(order_path)
        else:
            if cursor is not None:
                sql += " AND seq > ?"
                params.append(cursor.sequence)
            sql += " ORDER BY seq ASC"

        if query.limit is not None:
            sql += " LIMIT ?"
            params.append(query.limit)

        rows = conn.execute(sql, params).fetchall()
        return [
            DocumentSnapshot(
                DocumentRef.parse(row["path"]), codec.loads(row["data"]), row["seq"]
            )
            for row in rows
        ]
