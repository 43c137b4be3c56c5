"""Document paths and mapping between stored documents and domain models.

This is the read boundary: timestamps are normalized with to_datetime here
and nowhere else.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from loyalty_ledger.domain.accounts import (
    SYSTEM_ACTOR,
    FamilyCircleConfig,
    LoyaltyAccount,
    PointTransaction,
    TransactionOriginator,
    TransactionType,
)
from loyalty_ledger.domain.audit import (
    AuditAction,
    AuditActor,
    AuditChanges,
    AuditLog,
    AuditMetadata,
    AuditResourceType,
    CreateAuditLogRequest,
)
from loyalty_ledger.domain.clients import Client, ClientName
from loyalty_ledger.domain.family_circle import (
    CircleRole,
    FamilyCircleMember,
    FamilyCirclePointer,
    RelationshipType,
)
from loyalty_ledger.repositories.codec import optional_datetime, to_datetime
from loyalty_ledger.repositories.interfaces import DocumentRef, DocumentSnapshot

CLIENTS = "clients"
LOYALTY_ACCOUNTS = "loyalty_accounts"
POINT_TRANSACTIONS = "point_transactions"
FAMILY_CIRCLE_MEMBERS = "family_circle_members"
AUDIT_LOGS = "audit_logs"


# =============================================================================
# Paths
# =============================================================================


def client_ref(client_id: str) -> DocumentRef:
    return DocumentRef.of(CLIENTS, client_id)


def account_ref(client_id: str, account_id: str) -> DocumentRef:
    return client_ref(client_id).child(LOYALTY_ACCOUNTS, account_id)


def accounts_collection(client_id: str) -> str:
    return f"{CLIENTS}/{client_id}/{LOYALTY_ACCOUNTS}"


def point_transaction_ref(
    client_id: str, account_id: str, transaction_id: str
) -> DocumentRef:
    return account_ref(client_id, account_id).child(POINT_TRANSACTIONS, transaction_id)


def point_transactions_collection(client_id: str, account_id: str) -> str:
    return f"{account_ref(client_id, account_id)}/{POINT_TRANSACTIONS}"


def circle_member_ref(holder_id: str, member_id: str) -> DocumentRef:
    return client_ref(holder_id).child(FAMILY_CIRCLE_MEMBERS, member_id)


def circle_members_collection(holder_id: str) -> str:
    return f"{CLIENTS}/{holder_id}/{FAMILY_CIRCLE_MEMBERS}"


def audit_log_ref(audit_id: str) -> DocumentRef:
    return DocumentRef.of(AUDIT_LOGS, audit_id)


def _owner_id(snapshot: DocumentSnapshot) -> str:
    parent = snapshot.ref.parent
    if parent is None:
        raise ValueError(f"Document has no owner: {snapshot.ref}")
    return parent.id


def _require_data(snapshot: DocumentSnapshot) -> dict[str, Any]:
    if snapshot.data is None:
        raise ValueError(f"Document does not exist: {snapshot.ref}")
    return snapshot.data


# =============================================================================
# Clients and circle pointers
# =============================================================================


def pointer_to_document(pointer: FamilyCirclePointer | None) -> dict[str, Any] | None:
    if pointer is None:
        return None
    if pointer.is_holder:
        return {"role": CircleRole.HOLDER}
    return {
        "role": CircleRole.MEMBER,
        "holder_id": pointer.holder_id,
        "relationship_type": pointer.relationship_type,
        "joined_at": pointer.joined_at,
    }


def pointer_from_value(value: Any) -> FamilyCirclePointer | None:
    """A missing pointer or one without a role means "not in any circle"."""
    if not isinstance(value, dict) or not value.get("role"):
        return None
    relationship = value.get("relationship_type")
    return FamilyCirclePointer(
        role=CircleRole(value["role"]),
        holder_id=value.get("holder_id"),
        relationship_type=RelationshipType(relationship) if relationship else None,
        joined_at=optional_datetime(value.get("joined_at")),
    )


def client_to_document(client: Client) -> dict[str, Any]:
    return {
        "name": {
            "first_name": client.name.first_name,
            "second_name": client.name.second_name,
            "first_last_name": client.name.first_last_name,
            "second_last_name": client.name.second_last_name,
        },
        "email": client.email,
        "identity_document": client.identity_document,
        "phones": list(client.phones),
        "addresses": list(client.addresses),
        "account_balances": dict(client.account_balances),
        "family_circle": pointer_to_document(client.family_circle),
        "affinity_group_ids": list(client.affinity_group_ids),
        "created_at": client.created_at,
        "updated_at": client.updated_at,
    }


def client_from_snapshot(snapshot: DocumentSnapshot) -> Client:
    data = _require_data(snapshot)
    name = data.get("name") or {}
    return Client(
        id=snapshot.id,
        name=ClientName(
            first_name=name.get("first_name", ""),
            first_last_name=name.get("first_last_name", ""),
            second_name=name.get("second_name"),
            second_last_name=name.get("second_last_name"),
        ),
        email=data.get("email"),
        identity_document=data.get("identity_document"),
        phones=list(data.get("phones") or []),
        addresses=list(data.get("addresses") or []),
        account_balances={
            account_id: int(points)
            for account_id, points in (data.get("account_balances") or {}).items()
        },
        family_circle=pointer_from_value(data.get("family_circle")),
        affinity_group_ids=list(data.get("affinity_group_ids") or []),
        created_at=to_datetime(data["created_at"]),
        updated_at=to_datetime(data["updated_at"]),
    )


# =============================================================================
# Accounts and transactions
# =============================================================================


def config_to_document(config: FamilyCircleConfig | None) -> dict[str, Any] | None:
    if config is None:
        return None
    return {
        "allow_member_credits": config.allow_member_credits,
        "allow_member_debits": config.allow_member_debits,
        "updated_at": config.updated_at,
        "updated_by": config.updated_by,
    }


def config_from_value(value: Any) -> FamilyCircleConfig | None:
    if not isinstance(value, dict):
        return None
    return FamilyCircleConfig(
        allow_member_credits=bool(value.get("allow_member_credits", False)),
        allow_member_debits=bool(value.get("allow_member_debits", False)),
        updated_at=to_datetime(value["updated_at"]),
        updated_by=value.get("updated_by") or SYSTEM_ACTOR,
    )


def account_to_document(account: LoyaltyAccount) -> dict[str, Any]:
    return {
        "account_name": account.account_name,
        "points": account.points,
        "family_circle_config": config_to_document(account.family_circle_config),
        "created_at": account.created_at,
        "updated_at": account.updated_at,
    }


def account_from_snapshot(snapshot: DocumentSnapshot) -> LoyaltyAccount:
    data = _require_data(snapshot)
    return LoyaltyAccount(
        id=snapshot.id,
        client_id=_owner_id(snapshot),
        account_name=data["account_name"],
        points=int(data.get("points", 0)),
        family_circle_config=config_from_value(data.get("family_circle_config")),
        created_at=to_datetime(data["created_at"]),
        updated_at=to_datetime(data["updated_at"]),
    )


def originator_to_document(
    originator: TransactionOriginator | None,
) -> dict[str, Any] | None:
    if originator is None:
        return None
    return {
        "client_id": originator.client_id,
        "is_circle_member": originator.is_circle_member,
        "relationship_type": originator.relationship_type,
    }


def originator_from_value(value: Any) -> TransactionOriginator | None:
    if not isinstance(value, dict):
        return None
    relationship = value.get("relationship_type")
    return TransactionOriginator(
        client_id=value["client_id"],
        is_circle_member=bool(value.get("is_circle_member", False)),
        relationship_type=RelationshipType(relationship) if relationship else None,
    )


def transaction_to_document(transaction: PointTransaction) -> dict[str, Any]:
    return {
        "transaction_type": transaction.transaction_type,
        "amount": transaction.amount,
        "description": transaction.description,
        "originated_by": originator_to_document(transaction.originated_by),
        "timestamp": transaction.timestamp,
    }


def transaction_from_snapshot(snapshot: DocumentSnapshot) -> PointTransaction:
    data = _require_data(snapshot)
    return PointTransaction(
        id=snapshot.id,
        transaction_type=TransactionType(data["transaction_type"]),
        amount=int(data["amount"]),
        description=data.get("description") or "",
        originated_by=originator_from_value(data.get("originated_by")),
        timestamp=to_datetime(data["timestamp"]),
    )


# =============================================================================
# Family circle members
# =============================================================================


def member_to_document(member: FamilyCircleMember) -> dict[str, Any]:
    return {
        "relationship_type": member.relationship_type,
        "added_by": member.added_by,
        "added_at": member.added_at,
    }


def member_from_snapshot(snapshot: DocumentSnapshot) -> FamilyCircleMember:
    data = _require_data(snapshot)
    return FamilyCircleMember(
        holder_id=_owner_id(snapshot),
        member_id=snapshot.id,
        relationship_type=RelationshipType(data["relationship_type"]),
        added_by=data["added_by"],
        added_at=to_datetime(data["added_at"]),
    )


# =============================================================================
# Audit logs
# =============================================================================


def audit_log_to_document(
    request: CreateAuditLogRequest, timestamp: datetime
) -> dict[str, Any]:
    changes = None
    if request.changes is not None:
        changes = {"before": request.changes.before, "after": request.changes.after}
    return {
        "action": request.action,
        "resource_type": request.resource_type,
        "resource_id": request.resource_id,
        "client_id": request.client_id,
        "account_id": request.account_id,
        "group_id": request.group_id,
        "transaction_id": request.transaction_id,
        "actor": {"uid": request.actor.uid, "email": request.actor.email},
        "changes": changes,
        "metadata": {
            "ip_address": request.metadata.ip_address,
            "user_agent": request.metadata.user_agent,
            "description": request.metadata.description,
        },
        "timestamp": timestamp,
    }


def audit_log_from_snapshot(snapshot: DocumentSnapshot) -> AuditLog:
    data = _require_data(snapshot)
    actor = data.get("actor") or {}
    changes = data.get("changes")
    metadata = data.get("metadata") or {}
    return AuditLog(
        id=snapshot.id,
        action=AuditAction(data["action"]),
        resource_type=AuditResourceType(data["resource_type"]),
        resource_id=data["resource_id"],
        actor=AuditActor(uid=actor.get("uid", ""), email=actor.get("email")),
        client_id=data.get("client_id"),
        account_id=data.get("account_id"),
        group_id=data.get("group_id"),
        transaction_id=data.get("transaction_id"),
        changes=(
            AuditChanges(before=changes.get("before"), after=changes.get("after"))
            if isinstance(changes, dict)
            else None
        ),
        metadata=AuditMetadata(
            ip_address=metadata.get("ip_address"),
            user_agent=metadata.get("user_agent"),
            description=metadata.get("description"),
        ),
        timestamp=to_datetime(data["timestamp"]),
    )
