"""Family circle membership and delegated transaction permissions.

A holder owns any number of members. Every client carries a pointer to its
own place in the graph: none, holder, or member of exactly one holder.
Membership edges live under the holder's client document.
"""

from __future__ import annotations

from typing import Any

from loyalty_ledger.domain.accounts import (
    FamilyCircleConfig,
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
from loyalty_ledger.domain.family_circle import (
    FamilyCircleInfo,
    FamilyCircleMember,
    FamilyCirclePointer,
    FamilyCircleRoster,
    HolderCircleInfo,
    MemberCircleInfo,
    NoFamilyCircle,
    RelationshipType,
)
from loyalty_ledger.exceptions import (
    AccountNotFoundError,
    CannotAddSelfError,
    CircleCreditsNotAllowedError,
    CircleDebitsNotAllowedError,
    CircleMemberNotFoundError,
    ClientNotFoundError,
    HolderAlreadyInCircleError,
    MemberAlreadyInCircleError,
    NotCircleHolderError,
    NotInCircleError,
)
from loyalty_ledger.logging_config import get_logger
from loyalty_ledger.repositories.documents import (
    account_from_snapshot,
    account_ref,
    circle_member_ref,
    circle_members_collection,
    client_ref,
    config_from_value,
    config_to_document,
    member_from_snapshot,
    member_to_document,
    pointer_from_value,
    pointer_to_document,
)
from loyalty_ledger.repositories.interfaces import (
    AtomicTransaction,
    DocumentSnapshot,
    DocumentStore,
    Query,
)
from loyalty_ledger.services.audit import AuditService
from loyalty_ledger.services.interfaces import FamilyCircleService
from loyalty_ledger.services.validation import optional_flag, parse_enum

logger = get_logger(__name__)


def _circle_pointer(snapshot: DocumentSnapshot) -> FamilyCirclePointer | None:
    return pointer_from_value(snapshot.get("family_circle"))


class FamilyCircleServiceImpl(FamilyCircleService):
    """Implementation of FamilyCircleService over a DocumentStore."""

    def __init__(self, store: DocumentStore, audit_service: AuditService) -> None:
        self._store = store
        self._audit = audit_service

    def _get_client(self, client_id: str) -> DocumentSnapshot:
        snapshot = self._store.get(client_ref(client_id))
        if not snapshot.exists:
            raise ClientNotFoundError(client_id)
        return snapshot

    def _list_members(self, holder_id: str) -> list[FamilyCircleMember]:
        snapshots = self._store.query(
            Query(circle_members_collection(holder_id)).order("added_at")
        )
        return [member_from_snapshot(snapshot) for snapshot in snapshots]

    def get_family_circle_info(self, client_id: str) -> FamilyCircleInfo:
        pointer = _circle_pointer(self._get_client(client_id))
        if pointer is None:
            return NoFamilyCircle()
        if pointer.is_holder:
            return HolderCircleInfo(members=self._list_members(client_id))
        return MemberCircleInfo(
            holder_id=pointer.holder_id,
            relationship_type=pointer.relationship_type,
            joined_at=pointer.joined_at,
        )

    def get_family_circle_members(
        self, holder_id: str, requester_id: str
    ) -> FamilyCircleRoster:
        """Return the roster of a circle.

        Raises:
            ClientNotFoundError: If the holder does not exist
            NotCircleHolderError: If the client does not hold a circle
        """
        pointer = _circle_pointer(self._get_client(holder_id))
        if pointer is None or not pointer.is_holder:
            logger.warning(
                "family_circle_roster_denied",
                holder_id=holder_id,
                requester_id=requester_id,
            )
            raise NotCircleHolderError(holder_id)
        return FamilyCircleRoster(
            holder_id=holder_id, members=self._list_members(holder_id)
        )

    def add_family_circle_member(
        self,
        holder_id: str,
        member_id: str,
        relationship_type: RelationshipType,
        actor: AuditActor,
    ) -> FamilyCircleMember:
        """Add a client to the holder's circle.

        Checks run in a fixed order: holder exists, member exists, holder is
        not the member, holder is not someone else's member, member is in no
        circle. The edge, the member's pointer and, on first use, the holder's
        pointer are written in one transaction.

        Raises:
            ClientNotFoundError: If either client does not exist
            CannotAddSelfError: If holder and member are the same client
            HolderAlreadyInCircleError: If the holder is a member elsewhere
            MemberAlreadyInCircleError: If the member already has a circle
        """
        relationship_type = parse_enum(
            RelationshipType, relationship_type, "relationship_type"
        )
        holder_doc = client_ref(holder_id)
        member_doc = client_ref(member_id)
        edge_doc = circle_member_ref(holder_id, member_id)

        def add(txn: AtomicTransaction) -> None:
            holder = txn.get(holder_doc)
            if not holder.exists:
                raise ClientNotFoundError(holder_id)
            member = txn.get(member_doc)
            if not member.exists:
                raise ClientNotFoundError(member_id)
            if holder_id == member_id:
                raise CannotAddSelfError(holder_id)

            holder_pointer = _circle_pointer(holder)
            if holder_pointer is not None and holder_pointer.is_member:
                raise HolderAlreadyInCircleError(holder_id)
            if _circle_pointer(member) is not None:
                raise MemberAlreadyInCircleError(member_id)

            now = txn.server_time
            txn.set(
                edge_doc,
                member_to_document(
                    FamilyCircleMember(
                        holder_id=holder_id,
                        member_id=member_id,
                        relationship_type=relationship_type,
                        added_by=actor.uid,
                        added_at=now,
                    )
                ),
            )
            txn.update(
                member_doc,
                {
                    "family_circle": pointer_to_document(
                        FamilyCirclePointer.member(holder_id, relationship_type, now)
                    ),
                    "updated_at": now,
                },
            )
            if holder_pointer is None:
                txn.update(
                    holder_doc,
                    {
                        "family_circle": pointer_to_document(FamilyCirclePointer.holder()),
                        "updated_at": now,
                    },
                )

        self._store.run_transaction(add)
        added = member_from_snapshot(self._store.get(edge_doc))
        logger.info(
            "family_circle_member_added",
            holder_id=holder_id,
            member_id=member_id,
            relationship_type=relationship_type.value,
        )

        self._audit.record_audit_event(
            CreateAuditLogRequest(
                action=AuditAction.FAMILY_CIRCLE_MEMBER_ADDED,
                resource_type=AuditResourceType.CLIENT,
                resource_id=holder_id,
                client_id=holder_id,
                actor=actor,
                changes=AuditChanges(
                    before=None,
                    after={
                        "member_id": member_id,
                        "relationship_type": relationship_type.value,
                    },
                ),
                metadata=AuditMetadata(
                    description=f"Added family circle member: {member_id}"
                ),
            )
        )
        return added

    def remove_family_circle_member(
        self, holder_id: str, member_id: str, actor: AuditActor
    ) -> None:
        """Remove a member from the holder's circle.

        The holder keeps its holder pointer even when the last member leaves.

        Raises:
            ClientNotFoundError: If either client does not exist
            CircleMemberNotFoundError: If the member is not in this circle
        """
        holder_doc = client_ref(holder_id)
        member_doc = client_ref(member_id)
        edge_doc = circle_member_ref(holder_id, member_id)

        def remove(txn: AtomicTransaction) -> FamilyCircleMember:
            if not txn.get(holder_doc).exists:
                raise ClientNotFoundError(holder_id)
            if not txn.get(member_doc).exists:
                raise ClientNotFoundError(member_id)
            edge = txn.get(edge_doc)
            if not edge.exists:
                raise CircleMemberNotFoundError(holder_id, member_id)

            txn.delete(edge_doc)
            txn.update(member_doc, {"family_circle": None, "updated_at": txn.server_time})
            return member_from_snapshot(edge)

        removed = self._store.run_transaction(remove)
        logger.info(
            "family_circle_member_removed", holder_id=holder_id, member_id=member_id
        )

        self._audit.record_audit_event(
            CreateAuditLogRequest(
                action=AuditAction.FAMILY_CIRCLE_MEMBER_REMOVED,
                resource_type=AuditResourceType.CLIENT,
                resource_id=holder_id,
                client_id=holder_id,
                actor=actor,
                changes=AuditChanges(
                    before={
                        "member_id": member_id,
                        "relationship_type": removed.relationship_type.value,
                    },
                    after=None,
                ),
                metadata=AuditMetadata(
                    description=f"Removed family circle member: {member_id}"
                ),
            )
        )

    def get_family_circle_config(
        self, client_id: str, account_id: str
    ) -> FamilyCircleConfig:
        """Return the account's delegation config, or the deny-all default."""
        snapshot = self._store.get(account_ref(client_id, account_id))
        if not snapshot.exists:
            raise AccountNotFoundError(account_id)
        account = account_from_snapshot(snapshot)
        return account.family_circle_config or account.default_family_circle_config()

    def update_family_circle_config(
        self,
        client_id: str,
        account_id: str,
        actor: AuditActor,
        allow_member_credits: bool | None = None,
        allow_member_debits: bool | None = None,
    ) -> FamilyCircleConfig:
        """Change whether circle members may credit or debit an account.

        Only the flags passed are changed; the others keep their previous
        value, or False if the account had no config yet.

        Raises:
            ClientNotFoundError: If the client does not exist
            NotCircleHolderError: If the client does not hold a circle
            AccountNotFoundError: If the account does not exist
            ValidationError: If a flag is neither a bool nor None
        """
        allow_member_credits = optional_flag(
            allow_member_credits, "allow_member_credits"
        )
        allow_member_debits = optional_flag(allow_member_debits, "allow_member_debits")
        pointer = _circle_pointer(self._get_client(client_id))
        if pointer is None or not pointer.is_holder:
            raise NotCircleHolderError(client_id)

        account_doc = account_ref(client_id, account_id)

        def update(
            txn: AtomicTransaction,
        ) -> tuple[FamilyCircleConfig | None, FamilyCircleConfig]:
            snapshot = txn.get(account_doc)
            if not snapshot.exists:
                raise AccountNotFoundError(account_id)
            current = config_from_value(snapshot.get("family_circle_config"))
            updated = FamilyCircleConfig(
                allow_member_credits=(
                    allow_member_credits
                    if allow_member_credits is not None
                    else bool(current and current.allow_member_credits)
                ),
                allow_member_debits=(
                    allow_member_debits
                    if allow_member_debits is not None
                    else bool(current and current.allow_member_debits)
                ),
                updated_at=txn.server_time,
                updated_by=actor.uid,
            )
            txn.update(
                account_doc,
                {
                    "family_circle_config": config_to_document(updated),
                    "updated_at": txn.server_time,
                },
            )
            return current, updated

        before, after = self._store.run_transaction(update)
        logger.info(
            "family_circle_config_updated",
            client_id=client_id,
            account_id=account_id,
            allow_member_credits=after.allow_member_credits,
            allow_member_debits=after.allow_member_debits,
        )

        self._audit.record_audit_event(
            CreateAuditLogRequest(
                action=AuditAction.LOYALTY_ACCOUNT_FAMILY_CONFIG_UPDATED,
                resource_type=AuditResourceType.ACCOUNT,
                resource_id=account_id,
                client_id=client_id,
                account_id=account_id,
                actor=actor,
                changes=AuditChanges(
                    before=_config_snapshot(before), after=_config_snapshot(after)
                ),
            )
        )
        return after

    def validate_member_transaction_permission(
        self,
        holder_id: str,
        member_id: str,
        account_id: str,
        transaction_type: TransactionType,
    ) -> RelationshipType:
        """Gate a delegated credit or debit.

        A missing config denies. On success the member's relationship type is
        returned so it can be stamped on the transaction's originator.

        Raises:
            ClientNotFoundError: If the member does not exist
            NotInCircleError: If the member does not belong to this holder
            AccountNotFoundError: If the account does not exist
            CircleCreditsNotAllowedError: If member credits are disabled
            CircleDebitsNotAllowedError: If member debits are disabled
        """
        transaction_type = parse_enum(
            TransactionType, transaction_type, "transaction_type"
        )
        pointer = _circle_pointer(self._get_client(member_id))
        if pointer is None or not pointer.is_member_of(holder_id):
            logger.warning(
                "member_transaction_denied",
                reason="not_in_circle",
                holder_id=holder_id,
                member_id=member_id,
            )
            raise NotInCircleError(holder_id, member_id)

        snapshot = self._store.get(account_ref(holder_id, account_id))
        if not snapshot.exists:
            raise AccountNotFoundError(account_id)
        config = config_from_value(snapshot.get("family_circle_config"))

        if config is None or not config.allows(transaction_type):
            logger.warning(
                "member_transaction_denied",
                reason="config_disallows",
                holder_id=holder_id,
                member_id=member_id,
                account_id=account_id,
                transaction_type=transaction_type.value,
            )
            if transaction_type == TransactionType.CREDIT:
                raise CircleCreditsNotAllowedError(account_id)
            raise CircleDebitsNotAllowedError(account_id)

        return pointer.relationship_type


def _config_snapshot(config: FamilyCircleConfig | None) -> dict[str, Any] | None:
    if config is None:
        return None
    return {
        "allow_member_credits": config.allow_member_credits,
        "allow_member_debits": config.allow_member_debits,
        "updated_at": config.updated_at.isoformat(),
        "updated_by": config.updated_by,
    }
