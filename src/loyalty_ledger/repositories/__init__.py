from loyalty_ledger.repositories.interfaces import (
    AtomicTransaction,
    DocumentRef,
    DocumentSnapshot,
    DocumentStore,
    FilterOp,
    Query,
    SortDirection,
)
from loyalty_ledger.repositories.sqlite import SQLiteDatabase, SQLiteDocumentStore

__all__ = [
    "AtomicTransaction",
    "DocumentRef",
    "DocumentSnapshot",
    "DocumentStore",
    "FilterOp",
    "Query",
    "SQLiteDatabase",
    "SQLiteDocumentStore",
    "SortDirection",
]
