from loyalty_ledger.domain.accounts import (
    AccountBalance,
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
    AuditLogQuery,
    AuditMetadata,
    AuditResourceType,
    CreateAuditLogRequest,
)
from loyalty_ledger.domain.clients import Client, ClientName
from loyalty_ledger.domain.family_circle import (
    CircleRole,
    FamilyCircleInfo,
    FamilyCircleMember,
    FamilyCirclePointer,
    FamilyCircleRoster,
    HolderCircleInfo,
    MemberCircleInfo,
    NoFamilyCircle,
    RelationshipType,
)
from loyalty_ledger.domain.pagination import Page

__all__ = [
    "AccountBalance",
    "AuditAction",
    "AuditActor",
    "AuditChanges",
    "AuditLog",
    "AuditLogQuery",
    "AuditMetadata",
    "AuditResourceType",
    "CircleRole",
    "Client",
    "ClientName",
    "CreateAuditLogRequest",
    "FamilyCircleConfig",
    "FamilyCircleInfo",
    "FamilyCircleMember",
    "FamilyCirclePointer",
    "FamilyCircleRoster",
    "HolderCircleInfo",
    "LoyaltyAccount",
    "MemberCircleInfo",
    "NoFamilyCircle",
    "Page",
    "PointTransaction",
    "RelationshipType",
    "TransactionOriginator",
    "TransactionType",
]
