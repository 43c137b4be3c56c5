"""Document store capability consumed by the ledger services.

Documents live at slash-separated paths that alternate collection and
document ids, e.g. ``clients/c1/loyalty_accounts/a1``. A store offers
single-document reads and writes, filtered and ordered queries, and atomic
multi-document read-modify-write transactions with conflict retry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class DocumentRef:
    path: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.path or len(self.path) % 2:
            raise ValueError(f"Not a document path: {'/'.join(self.path)}")
        if any(not part or "/" in part for part in self.path):
            raise ValueError(f"Invalid path segment in: {self.path!r}")

    @classmethod
    def of(cls, *parts: str) -> DocumentRef:
        return cls(tuple(parts))

    @classmethod
    def parse(cls, path: str) -> DocumentRef:
        return cls(tuple(path.split("/")))

    @property
    def id(self) -> str:
        return self.path[-1]

    @property
    def collection(self) -> str:
        return "/".join(self.path[:-1])

    @property
    def parent(self) -> DocumentRef | None:
        """Owning document, or None for top-level collections."""
        if len(self.path) == 2:
            return None
        return DocumentRef(self.path[:-2])

    def child(self, collection: str, doc_id: str) -> DocumentRef:
        return DocumentRef((*self.path, collection, doc_id))

    def __str__(self) -> str:
        return "/".join(self.path)


@dataclass(frozen=True)
class DocumentSnapshot:
    """Decoded document contents at read time. data is None if missing."""

    ref: DocumentRef
    data: dict[str, Any] | None = None
    sequence: int = 0

    @property
    def id(self) -> str:
        return self.ref.id

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, field_path: str, default: Any = None) -> Any:
        """Read a dotted field path, e.g. ``account_balances.a1``."""
        value: Any = self.data
        for part in field_path.split("."):
            if not isinstance(value, Mapping) or part not in value:
                return default
            value = value[part]
        return value


class FilterOp(str, Enum):
    EQ = "=="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="


class SortDirection(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True)
class Query:
    """Immutable query over one collection. Builder methods return copies."""

    collection: str
    filters: tuple[FieldFilter, ...] = ()
    order_by: str | None = None
    direction: SortDirection = SortDirection.ASCENDING
    limit: int | None = None
    start_after: DocumentSnapshot | None = field(default=None, compare=False)

    def where(self, field_path: str, op: FilterOp | str, value: Any) -> Query:
        return replace(
            self, filters=(*self.filters, FieldFilter(field_path, FilterOp(op), value))
        )

    def order(
        self, field_path: str, direction: SortDirection = SortDirection.ASCENDING
    ) -> Query:
        return replace(self, order_by=field_path, direction=direction)

    def limited(self, limit: int) -> Query:
        return replace(self, limit=limit)

    def after(self, snapshot: DocumentSnapshot) -> Query:
        return replace(self, start_after=snapshot)


class AtomicTransaction(ABC):
    """Read-modify-write unit handed to DocumentStore.run_transaction.

    All reads must happen before the first staged write. Staged writes are
    applied together on commit, or not at all.
    """

    @property
    @abstractmethod
    def server_time(self) -> datetime:
        """Timestamp shared by every write of this transaction."""

    @abstractmethod
    def get(self, ref: DocumentRef) -> DocumentSnapshot:
        pass

    @abstractmethod
    def set(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        pass

    @abstractmethod
    def update(self, ref: DocumentRef, fields: Mapping[str, Any]) -> None:
        pass

    @abstractmethod
    def delete(self, ref: DocumentRef) -> None:
        pass

    @abstractmethod
    def increment(self, ref: DocumentRef, field_path: str, amount: int) -> None:
        pass

    @abstractmethod
    def array_add(
        self, ref: DocumentRef, field_path: str, values: Iterable[Any]
    ) -> None:
        pass

    @abstractmethod
    def array_remove(
        self, ref: DocumentRef, field_path: str, values: Iterable[Any]
    ) -> None:
        pass


class DocumentStore(ABC):
    @abstractmethod
    def new_id(self) -> str:
        pass

    @abstractmethod
    def server_time(self) -> datetime:
        pass

    @abstractmethod
    def get(self, ref: DocumentRef) -> DocumentSnapshot:
        pass

    @abstractmethod
    def set(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        pass

    @abstractmethod
    def update(self, ref: DocumentRef, fields: Mapping[str, Any]) -> None:
        pass

    @abstractmethod
    def delete(self, ref: DocumentRef) -> None:
        pass

    @abstractmethod
    def query(self, query: Query) -> list[DocumentSnapshot]:
        pass

    @abstractmethod
    def run_transaction(self, fn: Callable[[AtomicTransaction], T]) -> T:
        """Run fn atomically, retrying it on write conflicts."""

    @abstractmethod
    def close(self) -> None:
        pass
