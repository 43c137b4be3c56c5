"""Credits and debits that a circle member makes on a holder's account."""

from __future__ import annotations

from loyalty_ledger.domain.accounts import (
    LoyaltyAccount,
    TransactionOriginator,
    TransactionType,
)
from loyalty_ledger.domain.audit import AuditActor
from loyalty_ledger.logging_config import LogContext, get_logger
from loyalty_ledger.services.interfaces import FamilyCircleService, LedgerService

logger = get_logger(__name__)


class DelegatedTransactionService:
    """Runs the permission gate before handing a transaction to the ledger.

    Without on_behalf_of the holder is acting directly and the ledger is
    called with no originator.
    """

    def __init__(
        self, ledger: LedgerService, family_circle: FamilyCircleService
    ) -> None:
        self._ledger = ledger
        self._family_circle = family_circle

    def credit_points(
        self,
        client_id: str,
        account_id: str,
        amount: int,
        description: str,
        actor: AuditActor,
        on_behalf_of: str | None = None,
    ) -> LoyaltyAccount:
        with LogContext(client_id=client_id, account_id=account_id):
            originator = self._originator(
                client_id, account_id, on_behalf_of, TransactionType.CREDIT
            )
            return self._ledger.credit_points(
                client_id, account_id, amount, description, actor, originator
            )

    def debit_points(
        self,
        client_id: str,
        account_id: str,
        amount: int,
        description: str,
        actor: AuditActor,
        on_behalf_of: str | None = None,
    ) -> LoyaltyAccount:
        with LogContext(client_id=client_id, account_id=account_id):
            originator = self._originator(
                client_id, account_id, on_behalf_of, TransactionType.DEBIT
            )
            return self._ledger.debit_points(
                client_id, account_id, amount, description, actor, originator
            )

    def _originator(
        self,
        holder_id: str,
        account_id: str,
        member_id: str | None,
        transaction_type: TransactionType,
    ) -> TransactionOriginator | None:
        if not member_id:
            return None
        relationship = self._family_circle.validate_member_transaction_permission(
            holder_id, member_id, account_id, transaction_type
        )
        logger.debug(
            "delegated_transaction_authorized",
            member_id=member_id,
            transaction_type=transaction_type.value,
            relationship_type=relationship.value if relationship else None,
        )
        return TransactionOriginator(
            client_id=member_id,
            is_circle_member=True,
            relationship_type=relationship,
        )
