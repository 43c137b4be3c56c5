from loyalty_ledger.domain.accounts import (
    AccountBalance,
    FamilyCircleConfig,
    LoyaltyAccount,
    PointTransaction,
    TransactionOriginator,
    TransactionType,
)
from loyalty_ledger.domain.audit import AuditAction, AuditActor, AuditLog
from loyalty_ledger.domain.clients import Client, ClientName
from loyalty_ledger.domain.family_circle import FamilyCircleMember, RelationshipType
from loyalty_ledger.domain.pagination import Page

__all__ = [
    "AccountBalance",
    "AuditAction",
    "AuditActor",
    "AuditLog",
    "Client",
    "ClientName",
    "FamilyCircleConfig",
    "FamilyCircleMember",
    "LoyaltyAccount",
    "Page",
    "PointTransaction",
    "RelationshipType",
    "TransactionOriginator",
    "TransactionType",
]

__version__ = "0.1.0"
