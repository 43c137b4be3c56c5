from collections.abc import Callable, Iterator

import pytest

from loyalty_ledger.domain.audit import AuditActor
from loyalty_ledger.domain.clients import Client, ClientName
from loyalty_ledger.repositories.documents import client_ref, client_to_document
from loyalty_ledger.repositories.sqlite import SQLiteDatabase, SQLiteDocumentStore
from loyalty_ledger.services.audit import AuditService
from loyalty_ledger.services.delegation import DelegatedTransactionService
from loyalty_ledger.services.family_circle import FamilyCircleServiceImpl
from loyalty_ledger.services.ledger import LedgerServiceImpl


@pytest.fixture
def db() -> Iterator[SQLiteDatabase]:
    """Create an in-memory SQLite database for testing."""
    database = SQLiteDatabase(":memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def store(db: SQLiteDatabase) -> SQLiteDocumentStore:
    return SQLiteDocumentStore(db, retry_delay=0)


@pytest.fixture
def audit_service(store: SQLiteDocumentStore) -> AuditService:
    return AuditService(store)


@pytest.fixture
def ledger(store: SQLiteDocumentStore, audit_service: AuditService) -> LedgerServiceImpl:
    return LedgerServiceImpl(store, audit_service)


@pytest.fixture
def family_circle(
    store: SQLiteDocumentStore, audit_service: AuditService
) -> FamilyCircleServiceImpl:
    return FamilyCircleServiceImpl(store, audit_service)


@pytest.fixture
def delegation(
    ledger: LedgerServiceImpl, family_circle: FamilyCircleServiceImpl
) -> DelegatedTransactionService:
    return DelegatedTransactionService(ledger, family_circle)


@pytest.fixture
def actor() -> AuditActor:
    return AuditActor(uid="admin-1", email="admin@example.com")


@pytest.fixture
def make_client(store: SQLiteDocumentStore) -> Callable[..., Client]:
    """Persist a client document the way the client admin surface would."""

    def _make(client_id: str, first_name: str = "Ana") -> Client:
        client = Client(
            id=client_id,
            name=ClientName(first_name=first_name, first_last_name="Perez"),
            email=f"{client_id}@example.com",
        )
        store.set(client_ref(client_id), client_to_document(client))
        return client

    return _make
