"""Append-only audit trail for ledger and family circle mutations."""

from __future__ import annotations

from loyalty_ledger.domain.audit import (
    DEFAULT_AUDIT_PAGE_SIZE,
    AuditAction,
    AuditLog,
    AuditLogQuery,
    AuditResourceType,
    CreateAuditLogRequest,
)
from loyalty_ledger.domain.pagination import Page
from loyalty_ledger.exceptions import AuditLogNotFoundError
from loyalty_ledger.logging_config import get_logger
from loyalty_ledger.repositories.documents import (
    AUDIT_LOGS,
    audit_log_from_snapshot,
    audit_log_ref,
    audit_log_to_document,
)
from loyalty_ledger.repositories.interfaces import (
    AtomicTransaction,
    DocumentStore,
    FilterOp,
    Query,
    SortDirection,
)

logger = get_logger(__name__)


class AuditService:
    """Writes and queries immutable audit records.

    Records are written either on their own (record_audit_event) or staged
    into a caller's atomic transaction (stage_audit_event) so that the record
    commits together with the mutation it describes. Neither path retries;
    a standalone write failure propagates to the caller.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def record_audit_event(self, request: CreateAuditLogRequest) -> AuditLog:
        """Write one audit record now and return it as stored."""
        audit_id = self._store.new_id()
        ref = audit_log_ref(audit_id)
        self._store.set(ref, audit_log_to_document(request, self._store.server_time()))
        logger.info(
            "audit_log_recorded",
            audit_id=audit_id,
            action=request.action.value,
            resource_type=request.resource_type.value,
            resource_id=request.resource_id,
            changed_fields=request.changes.changed_fields if request.changes else [],
        )
        return audit_log_from_snapshot(self._store.get(ref))

    def stage_audit_event(
        self, txn: AtomicTransaction, request: CreateAuditLogRequest
    ) -> str:
        """Stage one audit record into txn. The caller owns the commit."""
        audit_id = self._store.new_id()
        txn.set(audit_log_ref(audit_id), audit_log_to_document(request, txn.server_time))
        logger.debug(
            "audit_log_staged",
            audit_id=audit_id,
            action=request.action.value,
            resource_id=request.resource_id,
        )
        return audit_id

    def get_audit_log(self, audit_id: str) -> AuditLog:
        snapshot = self._store.get(audit_log_ref(audit_id))
        if not snapshot.exists:
            raise AuditLogNotFoundError(audit_id)
        return audit_log_from_snapshot(snapshot)

    def list_audit_logs(self, query: AuditLogQuery | None = None) -> Page[AuditLog]:
        """List audit logs newest first, filtered and cursor-paginated.

        Raises:
            AuditLogNotFoundError: If next_cursor names a record that does not exist
        """
        query = query or AuditLogQuery()
        store_query = Query(AUDIT_LOGS).order("timestamp", SortDirection.DESCENDING)

        equality_filters = {
            "action": query.action,
            "resource_type": query.resource_type,
            "client_id": query.client_id,
            "account_id": query.account_id,
            "group_id": query.group_id,
        }
        for field_name, value in equality_filters.items():
            if value is not None:
                store_query = store_query.where(field_name, FilterOp.EQ, value)
        if query.start_date is not None:
            store_query = store_query.where("timestamp", FilterOp.GTE, query.start_date)
        if query.end_date is not None:
            store_query = store_query.where("timestamp", FilterOp.LTE, query.end_date)

        if query.next_cursor:
            cursor = self._store.get(audit_log_ref(query.next_cursor))
            if not cursor.exists:
                raise AuditLogNotFoundError(query.next_cursor)
            store_query = store_query.after(cursor)

        # One extra row tells us whether another page exists
        snapshots = self._store.query(store_query.limited(query.limit + 1))
        has_more = len(snapshots) > query.limit
        logs = [audit_log_from_snapshot(s) for s in snapshots[: query.limit]]
        return Page(items=logs, next_cursor=logs[-1].id if has_more else None)

    def get_client_audit_logs(
        self,
        client_id: str,
        limit: int = DEFAULT_AUDIT_PAGE_SIZE,
        next_cursor: str | None = None,
        action: AuditAction | None = None,
    ) -> Page[AuditLog]:
        return self.list_audit_logs(
            AuditLogQuery(
                client_id=client_id, action=action, limit=limit, next_cursor=next_cursor
            )
        )

    def get_account_audit_logs(
        self,
        account_id: str,
        limit: int = DEFAULT_AUDIT_PAGE_SIZE,
        next_cursor: str | None = None,
        action: AuditAction | None = None,
    ) -> Page[AuditLog]:
        return self.list_audit_logs(
            AuditLogQuery(
                account_id=account_id,
                action=action,
                limit=limit,
                next_cursor=next_cursor,
            )
        )

    def get_group_audit_logs(
        self,
        group_id: str,
        limit: int = DEFAULT_AUDIT_PAGE_SIZE,
        next_cursor: str | None = None,
        action: AuditAction | None = None,
    ) -> Page[AuditLog]:
        return self.list_audit_logs(
            AuditLogQuery(
                resource_type=AuditResourceType.GROUP,
                group_id=group_id,
                action=action,
                limit=limit,
                next_cursor=next_cursor,
            )
        )
