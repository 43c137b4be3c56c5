"""Loyalty account, point transaction and delegation config models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from loyalty_ledger.domain.family_circle import RelationshipType


def _utc_now() -> datetime:
    return datetime.now(UTC)


SYSTEM_ACTOR = "system"


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


@dataclass
class FamilyCircleConfig:
    """Per-account switches for delegated credits and debits."""

    allow_member_credits: bool = False
    allow_member_debits: bool = False
    updated_at: datetime = field(default_factory=_utc_now)
    updated_by: str = SYSTEM_ACTOR

    def allows(self, transaction_type: TransactionType) -> bool:
        if transaction_type == TransactionType.CREDIT:
            return self.allow_member_credits
        return self.allow_member_debits


@dataclass
class LoyaltyAccount:
    id: str
    client_id: str
    account_name: str
    points: int = 0
    family_circle_config: FamilyCircleConfig | None = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    def default_family_circle_config(self) -> FamilyCircleConfig:
        """Config used when the holder never set one: deny both directions."""
        return FamilyCircleConfig(
            allow_member_credits=False,
            allow_member_debits=False,
            updated_at=self.created_at,
            updated_by=SYSTEM_ACTOR,
        )


@dataclass(frozen=True)
class TransactionOriginator:
    """Who initiated a transaction when it was not the account holder."""

    client_id: str
    is_circle_member: bool = True
    relationship_type: RelationshipType | None = None


@dataclass
class PointTransaction:
    id: str
    transaction_type: TransactionType
    amount: int
    description: str = ""
    originated_by: TransactionOriginator | None = None
    timestamp: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True)
class AccountBalance:
    account_id: str
    points: int
