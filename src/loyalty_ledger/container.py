"""Dependency injection container for Loyalty Ledger.

Wires the document store and the services together from Settings. Services
are built on first access and cached for the life of the container.

Usage:
    from loyalty_ledger.container import Container

    with Container() as container:
        ledger = container.ledger_service
"""

from functools import cached_property
from typing import TYPE_CHECKING

from loyalty_ledger.config import DatabaseType, Settings, get_settings
from loyalty_ledger.logging_config import get_logger

if TYPE_CHECKING:
    from loyalty_ledger.repositories.interfaces import DocumentStore
    from loyalty_ledger.services.audit import AuditService
    from loyalty_ledger.services.delegation import DelegatedTransactionService
    from loyalty_ledger.services.family_circle import FamilyCircleServiceImpl
    from loyalty_ledger.services.ledger import LedgerServiceImpl

logger = get_logger(__name__)


class Container:
    """Dependency injection container.

    Tests pass a ready store, or settings pointing at an in-memory database:

        test_settings = Settings(sqlite_path=":memory:")
        container = Container(settings=test_settings)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: "DocumentStore | None" = None,
    ) -> None:
        self._settings = settings or get_settings()
        if store is not None:
            self.__dict__["store"] = store
        logger.debug(
            "container_created",
            database_type=self._settings.database_type.value,
            environment=self._settings.environment.value,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @cached_property
    def store(self) -> "DocumentStore":
        """Document store for the configured backend, initialized on first access."""
        if self._settings.database_type == DatabaseType.POSTGRES:
            return self._create_postgres_store()
        return self._create_sqlite_store()

    def _create_sqlite_store(self) -> "DocumentStore":
        from loyalty_ledger.repositories.sqlite import (
            SQLiteDatabase,
            SQLiteDocumentStore,
        )

        db_path = str(self._settings.sqlite_path)
        logger.info("initializing_sqlite_database", path=db_path)

        db = SQLiteDatabase(
            db_path,
            check_same_thread=False,
            timeout=self._settings.sqlite_timeout_seconds,
        )
        db.initialize()
        return SQLiteDocumentStore(
            db,
            max_attempts=self._settings.transaction_max_attempts,
            retry_delay=self._settings.transaction_retry_delay,
        )

    def _create_postgres_store(self) -> "DocumentStore":
        from loyalty_ledger.repositories.postgres import (
            PostgresDatabase,
            PostgresDocumentStore,
        )

        url = self._settings.database_url
        if not url:
            raise ValueError("database_url must be set when database_type is postgres")

        logger.info(
            "initializing_postgres_database",
            # Only the host part; the URL may carry credentials
            host=url.split("@")[-1].split("/")[0] if "@" in url else "localhost",
        )

        db = PostgresDatabase(url)
        db.initialize()
        return PostgresDocumentStore(
            db,
            max_attempts=self._settings.transaction_max_attempts,
            retry_delay=self._settings.transaction_retry_delay,
        )

    @cached_property
    def audit_service(self) -> "AuditService":
        from loyalty_ledger.services.audit import AuditService

        return AuditService(self.store)

    @cached_property
    def ledger_service(self) -> "LedgerServiceImpl":
        from loyalty_ledger.services.ledger import LedgerServiceImpl

        return LedgerServiceImpl(self.store, self.audit_service)

    @cached_property
    def family_circle_service(self) -> "FamilyCircleServiceImpl":
        from loyalty_ledger.services.family_circle import FamilyCircleServiceImpl

        return FamilyCircleServiceImpl(self.store, self.audit_service)

    @cached_property
    def delegated_transaction_service(self) -> "DelegatedTransactionService":
        """Ledger entry point for transactions a circle member makes for a holder."""
        from loyalty_ledger.services.delegation import DelegatedTransactionService

        return DelegatedTransactionService(
            self.ledger_service, self.family_circle_service
        )

    def close(self) -> None:
        """Close the store if it was ever opened."""
        store = self.__dict__.pop("store", None)
        if store is not None:
            logger.info("closing_document_store")
            store.close()

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
