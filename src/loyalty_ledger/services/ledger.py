"""LedgerService implementation for loyalty point balances.

The account document's ``points`` field is the source of truth. The owning
client's ``account_balances`` map mirrors it and is only ever written in the
same atomic transaction as the account.
"""

from __future__ import annotations

from datetime import datetime

from loyalty_ledger.domain.accounts import (
    AccountBalance,
    LoyaltyAccount,
    PointTransaction,
    TransactionOriginator,
    TransactionType,
)
from loyalty_ledger.domain.audit import (
    AuditAction,
    AuditActor,
    AuditChanges,
    AuditMetadata,
    AuditResourceType,
    CreateAuditLogRequest,
)
from loyalty_ledger.domain.pagination import Page
from loyalty_ledger.exceptions import (
    AccountNotFoundError,
    ClientNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidLimitError,
    ValidationError,
)
from loyalty_ledger.logging_config import get_logger
from loyalty_ledger.repositories.documents import (
    account_from_snapshot,
    account_ref,
    account_to_document,
    accounts_collection,
    client_from_snapshot,
    client_ref,
    point_transaction_ref,
    point_transactions_collection,
    transaction_from_snapshot,
    transaction_to_document,
)
from loyalty_ledger.repositories.interfaces import (
    AtomicTransaction,
    DocumentStore,
    FilterOp,
    Query,
    SortDirection,
)
from loyalty_ledger.services.audit import AuditService
from loyalty_ledger.services.interfaces import LedgerService
from loyalty_ledger.services.validation import parse_enum

logger = get_logger(__name__)

DEFAULT_TRANSACTION_PAGE_SIZE = 50
MAX_TRANSACTION_PAGE_SIZE = 100


def validate_amount(amount: object) -> int:
    """Reject anything but a positive int before it reaches balance arithmetic.

    Raises:
        InvalidAmountError: For zero, negatives, floats, bools and non-numbers
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)
    return amount


class LedgerServiceImpl(LedgerService):
    """Implementation of LedgerService over a DocumentStore."""

    def __init__(self, store: DocumentStore, audit_service: AuditService) -> None:
        self._store = store
        self._audit = audit_service

    def create_account(
        self, client_id: str, account_name: str, actor: AuditActor
    ) -> LoyaltyAccount:
        """Open a zero-balance account for a client.

        The account and the client's mirror entry are created together. The
        ACCOUNT_CREATED audit record is written after commit.

        Raises:
            ClientNotFoundError: If the client does not exist
            ValidationError: If the account name is blank
        """
        name = account_name.strip() if isinstance(account_name, str) else ""
        if not name:
            raise ValidationError(
                "Account name is required", context={"client_id": client_id}
            )

        account_id = self._store.new_id()
        owner = client_ref(client_id)

        def create(txn: AtomicTransaction) -> None:
            if not txn.get(owner).exists:
                raise ClientNotFoundError(client_id)
            now = txn.server_time
            account = LoyaltyAccount(
                id=account_id,
                client_id=client_id,
                account_name=name,
                points=0,
                created_at=now,
                updated_at=now,
            )
            txn.set(account_ref(client_id, account_id), account_to_document(account))
            txn.update(owner, {f"account_balances.{account_id}": 0, "updated_at": now})

        self._store.run_transaction(create)
        account = self.get_account(client_id, account_id)
        logger.info(
            "account_created",
            client_id=client_id,
            account_id=account_id,
            actor_uid=actor.uid,
        )

        self._audit.record_audit_event(
            CreateAuditLogRequest(
                action=AuditAction.ACCOUNT_CREATED,
                resource_type=AuditResourceType.ACCOUNT,
                resource_id=account_id,
                client_id=client_id,
                account_id=account_id,
                actor=actor,
                changes=AuditChanges(
                    before=None, after={"account_name": name, "points": 0}
                ),
            )
        )
        return account

    def list_accounts(self, client_id: str) -> list[LoyaltyAccount]:
        """List a client's accounts, newest first."""
        if not self._store.get(client_ref(client_id)).exists:
            raise ClientNotFoundError(client_id)
        snapshots = self._store.query(
            Query(accounts_collection(client_id)).order(
                "created_at", SortDirection.DESCENDING
            )
        )
        return [account_from_snapshot(snapshot) for snapshot in snapshots]

    def get_account(self, client_id: str, account_id: str) -> LoyaltyAccount:
        snapshot = self._store.get(account_ref(client_id, account_id))
        if not snapshot.exists:
            raise AccountNotFoundError(account_id)
        return account_from_snapshot(snapshot)

    def credit_points(
        self,
        client_id: str,
        account_id: str,
        amount: int,
        description: str,
        actor: AuditActor,
        originator: TransactionOriginator | None = None,
    ) -> LoyaltyAccount:
        """Add points to an account.

        Raises:
            InvalidAmountError: If amount is not a positive integer
            AccountNotFoundError: If the account does not exist
        """
        return self._post_points(
            TransactionType.CREDIT,
            client_id,
            account_id,
            amount,
            description,
            actor,
            originator,
        )

    def debit_points(
        self,
        client_id: str,
        account_id: str,
        amount: int,
        description: str,
        actor: AuditActor,
        originator: TransactionOriginator | None = None,
    ) -> LoyaltyAccount:
        """Remove points from an account.

        Raises:
            InvalidAmountError: If amount is not a positive integer
            AccountNotFoundError: If the account does not exist
            InsufficientBalanceError: If the balance would drop below zero;
                nothing is written in that case
        """
        return self._post_points(
            TransactionType.DEBIT,
            client_id,
            account_id,
            amount,
            description,
            actor,
            originator,
        )

    def _post_points(
        self,
        transaction_type: TransactionType,
        client_id: str,
        account_id: str,
        amount: int,
        description: str,
        actor: AuditActor,
        originator: TransactionOriginator | None,
    ) -> LoyaltyAccount:
        validate_amount(amount)
        description = description or ""
        is_credit = transaction_type == TransactionType.CREDIT
        transaction_id = self._store.new_id()
        account_doc = account_ref(client_id, account_id)
        owner = client_ref(client_id)

        def post(txn: AtomicTransaction) -> tuple[int, int]:
            account = txn.get(account_doc)
            if not account.exists:
                raise AccountNotFoundError(account_id)
            if not txn.get(owner).exists:
                raise ClientNotFoundError(client_id)

            before = int(account.get("points", 0))
            after = before + amount if is_credit else before - amount
            # Checked before any write is staged, so a rejected debit leaves no trace
            if after < 0:
                raise InsufficientBalanceError(
                    account_id, required=amount, available=before
                )

            now = txn.server_time
            txn.update(account_doc, {"points": after, "updated_at": now})
            txn.update(owner, {f"account_balances.{account_id}": after, "updated_at": now})
            txn.set(
                point_transaction_ref(client_id, account_id, transaction_id),
                transaction_to_document(
                    PointTransaction(
                        id=transaction_id,
                        transaction_type=transaction_type,
                        amount=amount,
                        description=description,
                        originated_by=originator,
                        timestamp=now,
                    )
                ),
            )
            self._audit.stage_audit_event(
                txn,
                CreateAuditLogRequest(
                    action=(
                        AuditAction.POINTS_CREDITED
                        if is_credit
                        else AuditAction.POINTS_DEBITED
                    ),
                    resource_type=AuditResourceType.TRANSACTION,
                    resource_id=transaction_id,
                    client_id=client_id,
                    account_id=account_id,
                    transaction_id=transaction_id,
                    actor=actor,
                    changes=AuditChanges(before={"points": before}, after={"points": after}),
                    metadata=AuditMetadata(description=description),
                ),
            )
            return before, after

        try:
            before, after = self._store.run_transaction(post)
        except InsufficientBalanceError:
            logger.warning(
                "debit_rejected_insufficient_balance",
                client_id=client_id,
                account_id=account_id,
                amount=amount,
            )
            raise

        logger.info(
            "points_credited" if is_credit else "points_debited",
            client_id=client_id,
            account_id=account_id,
            transaction_id=transaction_id,
            amount=amount,
            balance_before=before,
            balance_after=after,
            originated_by=originator.client_id if originator else None,
        )
        return self.get_account(client_id, account_id)

    def get_all_balances(self, client_id: str) -> dict[str, int]:
        """Return the client's mirrored balances without reading any account."""
        snapshot = self._store.get(client_ref(client_id))
        if not snapshot.exists:
            raise ClientNotFoundError(client_id)
        return client_from_snapshot(snapshot).account_balances

    def get_account_balance(self, client_id: str, account_id: str) -> AccountBalance:
        """Authoritative balance, read from the account itself."""
        account = self.get_account(client_id, account_id)
        return AccountBalance(account_id=account.id, points=account.points)

    def list_transactions(
        self,
        client_id: str,
        account_id: str,
        limit: int = DEFAULT_TRANSACTION_PAGE_SIZE,
        next_cursor: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        transaction_type: TransactionType | None = None,
    ) -> Page[PointTransaction]:
        """List an account's transactions newest first.

        Date bounds are inclusive. A cursor that no longer resolves to a
        transaction is ignored and the first page is returned.

        Raises:
            InvalidLimitError: If limit is outside 1..100
            AccountNotFoundError: If the account does not exist
            ValidationError: If transaction_type is not credit or debit
        """
        if (
            isinstance(limit, bool)
            or not isinstance(limit, int)
            or not 1 <= limit <= MAX_TRANSACTION_PAGE_SIZE
        ):
            raise InvalidLimitError(limit, MAX_TRANSACTION_PAGE_SIZE)
        self.get_account(client_id, account_id)

        query = Query(point_transactions_collection(client_id, account_id)).order(
            "timestamp", SortDirection.DESCENDING
        )
        if start_date is not None:
            query = query.where("timestamp", FilterOp.GTE, start_date)
        if end_date is not None:
            query = query.where("timestamp", FilterOp.LTE, end_date)
        if transaction_type is not None:
            query = query.where(
                "transaction_type",
                FilterOp.EQ,
                parse_enum(TransactionType, transaction_type, "transaction_type"),
            )

        if next_cursor:
            cursor = self._store.get(
                point_transaction_ref(client_id, account_id, next_cursor)
            )
            if cursor.exists:
                query = query.after(cursor)

        snapshots = self._store.query(query.limited(limit + 1))
        has_more = len(snapshots) > limit
        transactions = [transaction_from_snapshot(s) for s in snapshots[:limit]]
        return Page(
            items=transactions,
            next_cursor=transactions[-1].id if has_more else None,
        )
