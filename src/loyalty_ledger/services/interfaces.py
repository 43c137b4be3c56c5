from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from loyalty_ledger.domain.accounts import (
    AccountBalance,
    FamilyCircleConfig,
    LoyaltyAccount,
    PointTransaction,
    TransactionOriginator,
    TransactionType,
)
from loyalty_ledger.domain.audit import AuditActor
from loyalty_ledger.domain.family_circle import (
    FamilyCircleInfo,
    FamilyCircleMember,
    FamilyCircleRoster,
    RelationshipType,
)
from loyalty_ledger.domain.pagination import Page


class LedgerService(ABC):
    @abstractmethod
    def create_account(
        self, client_id: str, account_name: str, actor: AuditActor
    ) -> LoyaltyAccount:
        pass

    @abstractmethod
    def list_accounts(self, client_id: str) -> list[LoyaltyAccount]:
        pass

    @abstractmethod
    def get_account(self, client_id: str, account_id: str) -> LoyaltyAccount:
        pass

    @abstractmethod
    def credit_points(
        self,
        client_id: str,
        account_id: str,
        amount: int,
        description: str,
        actor: AuditActor,
        originator: TransactionOriginator | None = None,
    ) -> LoyaltyAccount:
        pass

    @abstractmethod
    def debit_points(
        self,
        client_id: str,
        account_id: str,
        amount: int,
        description: str,
        actor: AuditActor,
        originator: TransactionOriginator | None = None,
    ) -> LoyaltyAccount:
        pass

    @abstractmethod
    def get_all_balances(self, client_id: str) -> dict[str, int]:
        pass

    @abstractmethod
    def get_account_balance(self, client_id: str, account_id: str) -> AccountBalance:
        pass

    @abstractmethod
    def list_transactions(
        self,
        client_id: str,
        account_id: str,
        limit: int = 50,
        next_cursor: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        transaction_type: TransactionType | None = None,
    ) -> Page[PointTransaction]:
        pass


class FamilyCircleService(ABC):
    @abstractmethod
    def get_family_circle_info(self, client_id: str) -> FamilyCircleInfo:
        pass

    @abstractmethod
    def get_family_circle_members(
        self, holder_id: str, requester_id: str
    ) -> FamilyCircleRoster:
        pass

    @abstractmethod
    def add_family_circle_member(
        self,
        holder_id: str,
        member_id: str,
        relationship_type: RelationshipType,
        actor: AuditActor,
    ) -> FamilyCircleMember:
        pass

    @abstractmethod
    def remove_family_circle_member(
        self, holder_id: str, member_id: str, actor: AuditActor
    ) -> None:
        pass

    @abstractmethod
    def get_family_circle_config(
        self, client_id: str, account_id: str
    ) -> FamilyCircleConfig:
        pass

    @abstractmethod
    def update_family_circle_config(
        self,
        client_id: str,
        account_id: str,
        actor: AuditActor,
        allow_member_credits: bool | None = None,
        allow_member_debits: bool | None = None,
    ) -> FamilyCircleConfig:
        pass

    @abstractmethod
    def validate_member_transaction_permission(
        self,
        holder_id: str,
        member_id: str,
        account_id: str,
        transaction_type: TransactionType,
    ) -> RelationshipType:
        pass
