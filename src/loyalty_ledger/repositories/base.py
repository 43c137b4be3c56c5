"""Staged, retried transactions shared by the SQL-backed document stores."""

from __future__ import annotations

import contextlib
import copy
import threading
import time
import uuid
from abc import abstractmethod
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, TypeVar

from loyalty_ledger.exceptions import (
    DatabaseError,
    DocumentNotFoundError,
    TransactionStateError,
)
from loyalty_ledger.logging_config import get_logger
from loyalty_ledger.repositories import codec
from loyalty_ledger.repositories.interfaces import (
    AtomicTransaction,
    DocumentRef,
    DocumentSnapshot,
    DocumentStore,
    Query,
)

logger = get_logger(__name__)

T = TypeVar("T")
Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class _Increment:
    amount: int


@dataclass(frozen=True)
class _ArrayUnion:
    values: tuple[Any, ...]


@dataclass(frozen=True)
class _ArrayRemove:
    values: tuple[Any, ...]


@dataclass(frozen=True)
class _SetWrite:
    ref: DocumentRef
    data: dict[str, Any]


@dataclass(frozen=True)
class _UpdateWrite:
    ref: DocumentRef
    fields: dict[str, Any]


@dataclass(frozen=True)
class _DeleteWrite:
    ref: DocumentRef


def apply_field_updates(
    data: Mapping[str, Any], fields: Mapping[str, Any]
) -> dict[str, Any]:
    """Return a copy of data with dotted-path field updates applied.

    Intermediate maps are created as needed, so ``account_balances.a1``
    works on a client that has no balances yet.
    """
    result = copy.deepcopy(dict(data))
    for field_path, value in fields.items():
        *parents, leaf = field_path.split(".")
        target = result
        for part in parents:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        target[leaf] = _resolve(target.get(leaf), value)
    return result


def _resolve(current: Any, value: Any) -> Any:
    if isinstance(value, _Increment):
        if isinstance(current, bool) or not isinstance(current, int | float):
            current = 0
        return current + value.amount
    if isinstance(value, _ArrayUnion):
        items = list(current) if isinstance(current, list) else []
        items.extend(item for item in value.values if item not in items)
        return items
    if isinstance(value, _ArrayRemove):
        items = list(current) if isinstance(current, list) else []
        return [item for item in items if item not in value.values]
    return codec.encode_value(value)


class StagedTransaction(AtomicTransaction):
    """Collects writes in memory and applies them on commit."""

    def __init__(
        self, store: TransactionalDocumentStore, conn: Any, server_time: datetime
    ) -> None:
        self._store = store
        self._conn = conn
        self._server_time = server_time
        self._writes: list[_SetWrite | _UpdateWrite | _DeleteWrite] = []

    @property
    def server_time(self) -> datetime:
        return self._server_time

    @property
    def write_count(self) -> int:
        return len(self._writes)

    def get(self, ref: DocumentRef) -> DocumentSnapshot:
        if self._writes:
            raise TransactionStateError(
                "All reads must happen before the first write of a transaction",
                context={"path": str(ref)},
            )
        return self._store._fetch(self._conn, ref)

    def set(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        self._writes.append(_SetWrite(ref, codec.encode_value(data)))

    def update(self, ref: DocumentRef, fields: Mapping[str, Any]) -> None:
        if fields:
            self._writes.append(_UpdateWrite(ref, dict(fields)))

    def delete(self, ref: DocumentRef) -> None:
        self._writes.append(_DeleteWrite(ref))

    def increment(self, ref: DocumentRef, field_path: str, amount: int) -> None:
        self.update(ref, {field_path: _Increment(amount)})

    def array_add(
        self, ref: DocumentRef, field_path: str, values: Iterable[Any]
    ) -> None:
        encoded = tuple(codec.encode_value(value) for value in values)
        self.update(ref, {field_path: _ArrayUnion(encoded)})

    def array_remove(
        self, ref: DocumentRef, field_path: str, values: Iterable[Any]
    ) -> None:
        encoded = tuple(codec.encode_value(value) for value in values)
        self.update(ref, {field_path: _ArrayRemove(encoded)})

    def apply(self) -> None:
        """Write every staged change through the open connection, in order."""
        for write in self._writes:
            if isinstance(write, _SetWrite):
                self._store._upsert(self._conn, write.ref, write.data)
            elif isinstance(write, _UpdateWrite):
                current = self._store._fetch(self._conn, write.ref)
                if current.data is None:
                    raise DocumentNotFoundError(str(write.ref))
                self._store._upsert(
                    self._conn,
                    write.ref,
                    apply_field_updates(current.data, write.fields),
                )
            else:
                self._store._remove(self._conn, write.ref)


class TransactionalDocumentStore(DocumentStore):
    """Document store over a single SQL connection.

    Subclasses supply the connection and the SQL for each primitive. Writes,
    including single-document ones, always go through run_transaction.
    """

    driver_errors: tuple[type[Exception], ...] = ()

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        retry_delay: float = 0.025,
        clock: Clock | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._clock = clock or _utc_now
        self._lock = threading.RLock()

    def new_id(self) -> str:
        return str(uuid.uuid4())

    def server_time(self) -> datetime:
        return codec.to_datetime(self._clock())

    def get(self, ref: DocumentRef) -> DocumentSnapshot:
        with self._lock, self._wrap_driver_errors("get"):
            return self._fetch(self._connection(), ref)

    def set(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        self.run_transaction(lambda txn: txn.set(ref, data))

    def update(self, ref: DocumentRef, fields: Mapping[str, Any]) -> None:
        self.run_transaction(lambda txn: txn.update(ref, fields))

    def delete(self, ref: DocumentRef) -> None:
        self.run_transaction(lambda txn: txn.delete(ref))

    def query(self, query: Query) -> list[DocumentSnapshot]:
        with self._lock, self._wrap_driver_errors("query"):
            return self._select(self._connection(), query)

    def run_transaction(self, fn: Callable[[AtomicTransaction], T]) -> T:
        attempt = 1
        while True:
            try:
                return self._attempt(fn)
            except self.driver_errors as exc:
                if not self._is_conflict(exc) or attempt >= self._max_attempts:
                    raise DatabaseError(
                        "Atomic transaction failed",
                        context={"attempts": attempt},
                    ) from exc
                logger.warning(
                    "transaction_retry",
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error=str(exc),
                )
                time.sleep(self._retry_delay * attempt)
                attempt += 1

    def _attempt(self, fn: Callable[[AtomicTransaction], T]) -> T:
        with self._lock:
            conn = self._connection()
            self._begin(conn)
            txn = StagedTransaction(self, conn, self.server_time())
            try:
                result = fn(txn)
                txn.apply()
                self._commit(conn)
            except BaseException:
                with contextlib.suppress(*self.driver_errors):
                    self._rollback(conn)
                raise
        logger.debug("transaction_committed", writes=txn.write_count)
        return result

    @contextlib.contextmanager
    def _wrap_driver_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except self.driver_errors as exc:
            raise DatabaseError(
                f"Document store {operation} failed",
                context={"operation": operation},
            ) from exc

    @abstractmethod
    def _connection(self) -> Any:
        pass

    @abstractmethod
    def _begin(self, conn: Any) -> None:
        pass

    @abstractmethod
    def _commit(self, conn: Any) -> None:
        pass

    @abstractmethod
    def _rollback(self, conn: Any) -> None:
        pass

    @abstractmethod
    def _is_conflict(self, exc: Exception) -> bool:
        pass

    @abstractmethod
    def _fetch(self, conn: Any, ref: DocumentRef) -> DocumentSnapshot:
        pass

    @abstractmethod
    def _upsert(self, conn: Any, ref: DocumentRef, data: dict[str, Any]) -> None:
        pass

    @abstractmethod
    def _remove(self, conn: Any, ref: DocumentRef) -> None:
        pass

    @abstractmethod
    def _select(self, conn: Any, query: Query) -> list[DocumentSnapshot]:
        pass
