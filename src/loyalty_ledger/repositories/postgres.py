"""PostgreSQL implementation of the document store."""

from __future__ import annotations

from typing import Any

import psycopg2
import psycopg2.errors
import psycopg2.extras

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

# Field values are compared as text in byte order, which matches the stored
# ISO-8601 timestamp ordering
_FIELD_TEXT = '(data #>> %s) COLLATE "C"'


class PostgresDatabase:
    """PostgreSQL database connection manager."""

    def __init__(self, connection_string: str) -> None:
        self._connection_string = connection_string
        self._connection: psycopg2.extensions.connection | None = None

    def get_connection(self) -> psycopg2.extensions.connection:
        """Get or create the database connection.

        The connection runs in autocommit mode; the document store issues
        its own BEGIN/COMMIT.
        """
        if self._connection is None or self._connection.closed:
            self._connection = psycopg2.connect(
                self._connection_string,
                cursor_factory=psycopg2.extras.RealDictCursor,
            )
            self._connection.autocommit = True
        return self._connection

    def initialize(self) -> None:
        """Create the documents table."""
        conn = self.get_connection()
        with conn.cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    seq BIGSERIAL PRIMARY KEY,
                    path TEXT NOT NULL UNIQUE,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data JSONB NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);
                """
            )

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None and not self._connection.closed:
            self._connection.close()
        self._connection = None


def _text_path(field_path: str) -> list[str]:
    parts = field_path.split(".")
    if any(not part for part in parts):
        raise ValueError(f"Invalid field path: {field_path!r}")
    return parts


def _text_value(value: Any) -> str | None:
    encoded = codec.encode_value(value)
    if encoded is None:
        return None
    if isinstance(encoded, bool):
        return "true" if encoded else "false"
    if isinstance(encoded, dict | list):
        raise ValueError(f"Cannot filter on non-scalar value: {value!r}")
    return str(encoded)


class PostgresDocumentStore(TransactionalDocumentStore):
    """Documents in one JSONB table, with SERIALIZABLE transactions."""

    driver_errors = (psycopg2.Error,)

    def __init__(
        self,
        database: PostgresDatabase,
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

    def _connection(self) -> psycopg2.extensions.connection:
        return self._db.get_connection()

    def _begin(self, conn: psycopg2.extensions.connection) -> None:
        with conn.cursor() as cur:
            cur.execute("BEGIN ISOLATION LEVEL SERIALIZABLE")

    def _commit(self, conn: psycopg2.extensions.connection) -> None:
        with conn.cursor() as cur:
            cur.execute("COMMIT")

    def _rollback(self, conn: psycopg2.extensions.connection) -> None:
        with conn.cursor() as cur:
            cur.execute("ROLLBACK")

    def _is_conflict(self, exc: Exception) -> bool:
        return isinstance(
            exc,
            psycopg2.errors.SerializationFailure | psycopg2.errors.DeadlockDetected,
        )

    def _fetch(
        self, conn: psycopg2.extensions.connection, ref: DocumentRef
    ) -> DocumentSnapshot:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT seq, data FROM documents WHERE path = %s", (str(ref),)
            )
            row = cur.fetchone()
        if row is None:
            return DocumentSnapshot(ref)
        return DocumentSnapshot(ref, row["data"], row["seq"])

    def _upsert(
        self,
        conn: psycopg2.extensions.connection,
        ref: DocumentRef,
        data: dict[str, Any],
    ) -> None:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO documents (path, collection, doc_id, data)
                VALUES (%s, %s, %s, %s::jsonb)
                ON CONFLICT (path) DO UPDATE SET data = EXCLUDED.data
                """,
                (str(ref), ref.collection, ref.id, codec.dumps(data)),
            )

    def _remove(self, conn: psycopg2.extensions.connection, ref: DocumentRef) -> None:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM documents WHERE path = %s", (str(ref),))

    def _select(
        self, conn: psycopg2.extensions.connection, query: Query
    ) -> list[DocumentSnapshot]:
        sql = "SELECT seq, path, data FROM documents WHERE collection = %s"
        params: list[Any] = [query.collection]

        for condition in query.filters:
            sql += f" AND {_FIELD_TEXT} {_SQL_OPERATORS[condition.op]} %s"
            params.extend([_text_path(condition.field), _text_value(condition.value)])

        cursor = query.start_after
        if query.order_by:
            order_path = _text_path(query.order_by)
            descending = query.direction == SortDirection.DESCENDING
            if cursor is not None:
                cmp = "<" if descending else ">"
                cursor_value = _text_value(cursor.get(query.order_by))
                sql += (
                    f" AND ({_FIELD_TEXT} {cmp} %s"
                    f" OR ({_FIELD_TEXT} = %s AND seq {cmp} %s))"
                )
                params.extend(
                    [order_path, cursor_value, order_path, cursor_value, cursor.sequence]
                )
            keyword = "DESC" if descending else "ASC"
            sql += f" ORDER BY {_FIELD_TEXT} {keyword}, seq {keyword}"
            params.append(order_path)
        else:
            if cursor is not None:
                sql += " AND seq > %s"
                params.append(cursor.sequence)
            sql += " ORDER BY seq ASC"

        if query.limit is not None:
            sql += " LIMIT %s"
            params.append(query.limit)

        with conn.cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [
            DocumentSnapshot(DocumentRef.parse(row["path"]), row["data"], row["seq"])
            for row in rows
        ]
