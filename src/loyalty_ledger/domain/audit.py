"""Audit trail domain models for tracking changes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

DEFAULT_AUDIT_PAGE_SIZE = 30
MAX_AUDIT_PAGE_SIZE = 100


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AuditAction(str, Enum):
    CLIENT_CREATED = "CLIENT_CREATED"
    CLIENT_UPDATED = "CLIENT_UPDATED"
    CLIENT_DELETED = "CLIENT_DELETED"
    ACCOUNT_CREATED = "ACCOUNT_CREATED"
    POINTS_CREDITED = "POINTS_CREDITED"
    POINTS_DEBITED = "POINTS_DEBITED"
    GROUP_CREATED = "GROUP_CREATED"
    GROUP_UPDATED = "GROUP_UPDATED"
    GROUP_DELETED = "GROUP_DELETED"
    CLIENT_ADDED_TO_GROUP = "CLIENT_ADDED_TO_GROUP"
    CLIENT_REMOVED_FROM_GROUP = "CLIENT_REMOVED_FROM_GROUP"
    FAMILY_CIRCLE_MEMBER_ADDED = "FAMILY_CIRCLE_MEMBER_ADDED"
    FAMILY_CIRCLE_MEMBER_REMOVED = "FAMILY_CIRCLE_MEMBER_REMOVED"
    LOYALTY_ACCOUNT_FAMILY_CONFIG_UPDATED = "LOYALTY_ACCOUNT_FAMILY_CONFIG_UPDATED"
    POINTS_CREDITED_BY_CIRCLE_MEMBER = "POINTS_CREDITED_BY_CIRCLE_MEMBER"
    POINTS_DEBITED_BY_CIRCLE_MEMBER = "POINTS_DEBITED_BY_CIRCLE_MEMBER"


class AuditResourceType(str, Enum):
    CLIENT = "client"
    ACCOUNT = "account"
    TRANSACTION = "transaction"
    GROUP = "group"


@dataclass(frozen=True)
class AuditActor:
    """Caller identity supplied by upstream authentication."""

    uid: str
    email: str | None = None


@dataclass
class AuditChanges:
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None

    @property
    def changed_fields(self) -> list[str]:
        if self.before is None or self.after is None:
            return []
        all_keys = set(self.before.keys()) | set(self.after.keys())
        return sorted(
            key for key in all_keys if self.before.get(key) != self.after.get(key)
        )


@dataclass
class AuditMetadata:
    ip_address: str | None = None
    user_agent: str | None = None
    description: str | None = None


@dataclass
class CreateAuditLogRequest:
    action: AuditAction
    resource_type: AuditResourceType
    resource_id: str
    actor: AuditActor
    client_id: str | None = None
    account_id: str | None = None
    group_id: str | None = None
    transaction_id: str | None = None
    changes: AuditChanges | None = None
    metadata: AuditMetadata = field(default_factory=AuditMetadata)


@dataclass
class AuditLog:
    id: str
    action: AuditAction
    resource_type: AuditResourceType
    resource_id: str
    actor: AuditActor
    client_id: str | None = None
    account_id: str | None = None
    group_id: str | None = None
    transaction_id: str | None = None
    changes: AuditChanges | None = None
    metadata: AuditMetadata = field(default_factory=AuditMetadata)
    timestamp: datetime = field(default_factory=_utc_now)


@dataclass
class AuditLogQuery:
    """Filters for listing audit logs. Results are always newest first.

    The limit is clamped to [1, MAX_AUDIT_PAGE_SIZE] rather than rejected.
    """

    action: AuditAction | None = None
    resource_type: AuditResourceType | None = None
    client_id: str | None = None
    account_id: str | None = None
    group_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int | None = DEFAULT_AUDIT_PAGE_SIZE
    next_cursor: str | None = None

    def __post_init__(self) -> None:
        if self.limit is None:
            self.limit = DEFAULT_AUDIT_PAGE_SIZE
        self.limit = max(1, min(MAX_AUDIT_PAGE_SIZE, int(self.limit)))
