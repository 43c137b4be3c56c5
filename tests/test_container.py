"""Tests for the dependency injection container."""

from loyalty_ledger.config import Settings
from loyalty_ledger.container import Container
from loyalty_ledger.domain.audit import AuditActor
from loyalty_ledger.domain.clients import Client, ClientName
from loyalty_ledger.repositories.documents import client_ref, client_to_document
from loyalty_ledger.repositories.sqlite import SQLiteDocumentStore


def _memory_settings() -> Settings:
    return Settings(_env_file=None, sqlite_path=":memory:", transaction_retry_delay_ms=0)


class TestContainer:
    def test_builds_sqlite_store_from_settings(self):
        with Container(settings=_memory_settings()) as container:
            assert isinstance(container.store, SQLiteDocumentStore)

    def test_services_share_one_store_and_audit_service(self):
        with Container(settings=_memory_settings()) as container:
            assert container.ledger_service is container.ledger_service
            assert container.ledger_service._audit is container.audit_service
            assert container.family_circle_service._audit is container.audit_service
            assert container.family_circle_service._store is container.store

    def test_uses_injected_store(self, store: SQLiteDocumentStore):
        container = Container(settings=_memory_settings(), store=store)

        assert container.store is store

    def test_end_to_end_delegated_credit(self):
        actor = AuditActor(uid="admin-1")
        with Container(settings=_memory_settings()) as container:
            for client_id in ("h1", "m1"):
                container.store.set(
                    client_ref(client_id),
                    client_to_document(
                        Client(id=client_id, name=ClientName("Ana", "Perez"))
                    ),
                )
            account = container.ledger_service.create_account("h1", "Family", actor)
            container.family_circle_service.add_family_circle_member(
                "h1", "m1", "spouse", actor
            )
            container.family_circle_service.update_family_circle_config(
                "h1", account.id, actor, allow_member_credits=True
            )

            updated = container.delegated_transaction_service.credit_points(
                "h1", account.id, 12, "", actor, on_behalf_of="m1"
            )

            assert updated.points == 12

    def test_close_is_safe_when_store_never_opened(self):
        container = Container(settings=_memory_settings())

        container.close()
