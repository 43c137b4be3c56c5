"""Tests for family circle membership and delegation permissions."""

from collections.abc import Callable

import pytest

from loyalty_ledger.domain.accounts import LoyaltyAccount, TransactionType
from loyalty_ledger.domain.audit import AuditAction, AuditActor, AuditResourceType
from loyalty_ledger.domain.clients import Client
from loyalty_ledger.domain.family_circle import (
    CircleRole,
    HolderCircleInfo,
    MemberCircleInfo,
    NoFamilyCircle,
    RelationshipType,
)
from loyalty_ledger.exceptions import (
    AccountNotFoundError,
    AuthorizationError,
    CannotAddSelfError,
    CircleCreditsNotAllowedError,
    CircleDebitsNotAllowedError,
    CircleMemberNotFoundError,
    ClientNotFoundError,
    ConflictError,
    HolderAlreadyInCircleError,
    MemberAlreadyInCircleError,
    NotCircleHolderError,
    NotInCircleError,
    ValidationError,
)
from loyalty_ledger.repositories.documents import client_from_snapshot, client_ref
from loyalty_ledger.repositories.sqlite import SQLiteDocumentStore
from loyalty_ledger.services.audit import AuditService
from loyalty_ledger.services.family_circle import FamilyCircleServiceImpl
from loyalty_ledger.services.ledger import LedgerServiceImpl


@pytest.fixture
def holder(make_client: Callable[..., Client]) -> Client:
    return make_client("holder-1", "Hector")


@pytest.fixture
def member(make_client: Callable[..., Client]) -> Client:
    return make_client("member-1", "Maria")


@pytest.fixture
def outsider(make_client: Callable[..., Client]) -> Client:
    return make_client("outsider-1", "Olga")


@pytest.fixture
def holder_account(
    ledger: LedgerServiceImpl, holder: Client, actor: AuditActor
) -> LoyaltyAccount:
    return ledger.create_account(holder.id, "Family points", actor)


@pytest.fixture
def circle(
    family_circle: FamilyCircleServiceImpl,
    holder: Client,
    member: Client,
    actor: AuditActor,
) -> FamilyCircleServiceImpl:
    family_circle.add_family_circle_member(
        holder.id, member.id, RelationshipType.CHILD, actor
    )
    return family_circle


def _load_client(store: SQLiteDocumentStore, client_id: str) -> Client:
    return client_from_snapshot(store.get(client_ref(client_id)))


class TestFamilyCircleInfo:
    def test_client_without_circle(
        self, family_circle: FamilyCircleServiceImpl, outsider: Client
    ):
        info = family_circle.get_family_circle_info(outsider.id)

        assert isinstance(info, NoFamilyCircle)
        assert info.role is None
        assert info.message

    def test_holder_sees_roster(
        self, circle: FamilyCircleServiceImpl, holder: Client, member: Client
    ):
        info = circle.get_family_circle_info(holder.id)

        assert isinstance(info, HolderCircleInfo)
        assert info.role == CircleRole.HOLDER
        assert info.total_members == 1
        assert info.members[0].member_id == member.id
        assert info.members[0].relationship_type == RelationshipType.CHILD

    def test_member_sees_holder(
        self, circle: FamilyCircleServiceImpl, holder: Client, member: Client
    ):
        info = circle.get_family_circle_info(member.id)

        assert isinstance(info, MemberCircleInfo)
        assert info.role == CircleRole.MEMBER
        assert info.holder_id == holder.id
        assert info.relationship_type == RelationshipType.CHILD
        assert info.joined_at.tzinfo is not None

    def test_unknown_client(self, family_circle: FamilyCircleServiceImpl):
        with pytest.raises(ClientNotFoundError):
            family_circle.get_family_circle_info("ghost")


class TestFamilyCircleMembers:
    def test_roster_in_join_order(
        self,
        circle: FamilyCircleServiceImpl,
        holder: Client,
        member: Client,
        outsider: Client,
        actor: AuditActor,
    ):
        circle.add_family_circle_member(
            holder.id, outsider.id, RelationshipType.FRIEND, actor
        )

        roster = circle.get_family_circle_members(holder.id, holder.id)

        assert roster.holder_id == holder.id
        assert [m.member_id for m in roster.members] == [member.id, outsider.id]
        assert [m.relationship_type for m in roster.members] == [
            RelationshipType.CHILD,
            RelationshipType.FRIEND,
        ]

    def test_non_holder_is_denied(
        self, circle: FamilyCircleServiceImpl, member: Client
    ):
        with pytest.raises(NotCircleHolderError):
            circle.get_family_circle_members(member.id, member.id)

    def test_client_without_circle_is_denied(
        self, family_circle: FamilyCircleServiceImpl, outsider: Client
    ):
        with pytest.raises(AuthorizationError):
            family_circle.get_family_circle_members(outsider.id, outsider.id)


class TestAddFamilyCircleMember:
    def test_sets_both_pointers(
        self,
        circle: FamilyCircleServiceImpl,
        store: SQLiteDocumentStore,
        holder: Client,
        member: Client,
    ):
        holder_doc = _load_client(store, holder.id)
        member_doc = _load_client(store, member.id)

        assert holder_doc.family_circle.is_holder
        assert member_doc.family_circle.is_member_of(holder.id)
        assert member_doc.family_circle.relationship_type == RelationshipType.CHILD

    def test_returns_edge(
        self,
        family_circle: FamilyCircleServiceImpl,
        holder: Client,
        member: Client,
        actor: AuditActor,
    ):
        added = family_circle.add_family_circle_member(
            holder.id, member.id, RelationshipType.SPOUSE, actor
        )

        assert added.holder_id == holder.id
        assert added.member_id == member.id
        assert added.relationship_type == RelationshipType.SPOUSE
        assert added.added_by == actor.uid

    def test_accepts_relationship_string(
        self,
        family_circle: FamilyCircleServiceImpl,
        holder: Client,
        member: Client,
        actor: AuditActor,
    ):
        added = family_circle.add_family_circle_member(
            holder.id, member.id, "sibling", actor
        )

        assert added.relationship_type == RelationshipType.SIBLING

    def test_rejects_unknown_relationship(
        self,
        family_circle: FamilyCircleServiceImpl,
        holder: Client,
        member: Client,
        actor: AuditActor,
    ):
        with pytest.raises(ValidationError):
            family_circle.add_family_circle_member(holder.id, member.id, "cousin", actor)

    def test_records_audit(
        self,
        circle: FamilyCircleServiceImpl,
        audit_service: AuditService,
        holder: Client,
        member: Client,
        actor: AuditActor,
    ):
        log = audit_service.get_client_audit_logs(holder.id).items[0]

        assert log.action == AuditAction.FAMILY_CIRCLE_MEMBER_ADDED
        assert log.resource_type == AuditResourceType.CLIENT
        assert log.resource_id == holder.id
        assert log.actor == actor
        assert log.changes.after == {"member_id": member.id, "relationship_type": "child"}
        assert log.metadata.description == f"Added family circle member: {member.id}"

    def test_member_cannot_join_second_circle(
        self,
        circle: FamilyCircleServiceImpl,
        member: Client,
        outsider: Client,
        actor: AuditActor,
    ):
        with pytest.raises(MemberAlreadyInCircleError) as exc_info:
            circle.add_family_circle_member(
                outsider.id, member.id, RelationshipType.FRIEND, actor
            )

        assert isinstance(exc_info.value, ConflictError)
        assert exc_info.value.status_code == 409

    def test_failed_add_leaves_second_holder_untouched(
        self,
        circle: FamilyCircleServiceImpl,
        store: SQLiteDocumentStore,
        member: Client,
        outsider: Client,
        actor: AuditActor,
    ):
        with pytest.raises(MemberAlreadyInCircleError):
            circle.add_family_circle_member(
                outsider.id, member.id, RelationshipType.FRIEND, actor
            )

        assert _load_client(store, outsider.id).family_circle is None

    def test_holder_cannot_be_added_as_member(
        self,
        circle: FamilyCircleServiceImpl,
        holder: Client,
        outsider: Client,
        actor: AuditActor,
    ):
        with pytest.raises(MemberAlreadyInCircleError):
            circle.add_family_circle_member(
                outsider.id, holder.id, RelationshipType.OTHER, actor
            )

    def test_member_cannot_become_holder(
        self,
        circle: FamilyCircleServiceImpl,
        member: Client,
        outsider: Client,
        actor: AuditActor,
    ):
        with pytest.raises(HolderAlreadyInCircleError):
            circle.add_family_circle_member(
                member.id, outsider.id, RelationshipType.FRIEND, actor
            )

    def test_cannot_add_self(
        self, family_circle: FamilyCircleServiceImpl, holder: Client, actor: AuditActor
    ):
        with pytest.raises(CannotAddSelfError):
            family_circle.add_family_circle_member(
                holder.id, holder.id, RelationshipType.OTHER, actor
            )

    def test_unknown_member(
        self, family_circle: FamilyCircleServiceImpl, holder: Client, actor: AuditActor
    ):
        with pytest.raises(ClientNotFoundError):
            family_circle.add_family_circle_member(
                holder.id, "ghost", RelationshipType.OTHER, actor
            )

    def test_unknown_holder(
        self, family_circle: FamilyCircleServiceImpl, member: Client, actor: AuditActor
    ):
        with pytest.raises(ClientNotFoundError):
            family_circle.add_family_circle_member(
                "ghost", member.id, RelationshipType.OTHER, actor
            )


class TestRemoveFamilyCircleMember:
    def test_clears_member_pointer_and_keeps_holder(
        self,
        circle: FamilyCircleServiceImpl,
        store: SQLiteDocumentStore,
        holder: Client,
        member: Client,
        actor: AuditActor,
    ):
        circle.remove_family_circle_member(holder.id, member.id, actor)

        assert _load_client(store, member.id).family_circle is None
        assert _load_client(store, holder.id).family_circle.is_holder
        info = circle.get_family_circle_info(holder.id)
        assert isinstance(info, HolderCircleInfo)
        assert info.total_members == 0

    def test_remove_then_re_add_with_new_relationship(
        self,
        circle: FamilyCircleServiceImpl,
        holder: Client,
        member: Client,
        actor: AuditActor,
    ):
        circle.remove_family_circle_member(holder.id, member.id, actor)

        circle.add_family_circle_member(
            holder.id, member.id, RelationshipType.SPOUSE, actor
        )

        info = circle.get_family_circle_info(member.id)
        assert isinstance(info, MemberCircleInfo)
        assert info.holder_id == holder.id
        assert info.relationship_type == RelationshipType.SPOUSE

    def test_records_audit(
        self,
        circle: FamilyCircleServiceImpl,
        audit_service: AuditService,
        holder: Client,
        member: Client,
        actor: AuditActor,
    ):
        circle.remove_family_circle_member(holder.id, member.id, actor)

        log = audit_service.get_client_audit_logs(
            holder.id, action=AuditAction.FAMILY_CIRCLE_MEMBER_REMOVED
        ).items[0]
        assert log.changes.before == {"member_id": member.id, "relationship_type": "child"}
        assert log.changes.after is None

    def test_non_member_raises(
        self,
        circle: FamilyCircleServiceImpl,
        holder: Client,
        outsider: Client,
        actor: AuditActor,
    ):
        with pytest.raises(CircleMemberNotFoundError) as exc_info:
            circle.remove_family_circle_member(holder.id, outsider.id, actor)

        assert exc_info.value.error_code == "MEMBER_NOT_IN_CIRCLE"
        assert exc_info.value.context["holder_id"] == holder.id


class TestFamilyCircleConfig:
    def test_default_config_denies_everything(
        self,
        family_circle: FamilyCircleServiceImpl,
        holder: Client,
        holder_account: LoyaltyAccount,
    ):
        config = family_circle.get_family_circle_config(holder.id, holder_account.id)

        assert not config.allow_member_credits
        assert not config.allow_member_debits
        assert config.updated_by == "system"

    def test_update_only_changes_given_flags(
        self,
        circle: FamilyCircleServiceImpl,
        holder: Client,
        holder_account: LoyaltyAccount,
        actor: AuditActor,
    ):
        circle.update_family_circle_config(
            holder.id, holder_account.id, actor, allow_member_credits=True
        )
        updated = circle.update_family_circle_config(
            holder.id, holder_account.id, actor, allow_member_debits=True
        )

        assert updated.allow_member_credits
        assert updated.allow_member_debits
        assert updated.updated_by == actor.uid
        stored = circle.get_family_circle_config(holder.id, holder_account.id)
        assert stored == updated

    def test_update_records_audit(
        self,
        circle: FamilyCircleServiceImpl,
        audit_service: AuditService,
        holder: Client,
        holder_account: LoyaltyAccount,
        actor: AuditActor,
    ):
        circle.update_family_circle_config(
            holder.id, holder_account.id, actor, allow_member_credits=True
        )

        log = audit_service.get_account_audit_logs(
            holder_account.id, action=AuditAction.LOYALTY_ACCOUNT_FAMILY_CONFIG_UPDATED
        ).items[0]
        assert log.changes.before is None
        assert log.changes.after["allow_member_credits"] is True
        assert log.changes.after["allow_member_debits"] is False

    def test_non_holder_cannot_update(
        self,
        family_circle: FamilyCircleServiceImpl,
        holder: Client,
        holder_account: LoyaltyAccount,
        actor: AuditActor,
    ):
        with pytest.raises(NotCircleHolderError):
            family_circle.update_family_circle_config(
                holder.id, holder_account.id, actor, allow_member_credits=True
            )

    def test_unknown_account(
        self, circle: FamilyCircleServiceImpl, holder: Client, actor: AuditActor
    ):
        with pytest.raises(AccountNotFoundError):
            circle.update_family_circle_config(
                holder.id, "nope", actor, allow_member_credits=True
            )

    @pytest.mark.parametrize(
        "flags",
        [
            {"allow_member_credits": "false"},
            {"allow_member_debits": 1},
            {"allow_member_credits": True, "allow_member_debits": "yes"},
        ],
    )
    def test_non_boolean_flags_are_rejected(
        self,
        circle: FamilyCircleServiceImpl,
        audit_service: AuditService,
        holder: Client,
        member: Client,
        holder_account: LoyaltyAccount,
        actor: AuditActor,
        flags,
    ):
        with pytest.raises(ValidationError):
            circle.update_family_circle_config(
                holder.id, holder_account.id, actor, **flags
            )

        config = circle.get_family_circle_config(holder.id, holder_account.id)
        assert config.updated_by == "system"
        assert not config.allow_member_credits
        assert audit_service.get_account_audit_logs(
            holder_account.id, action=AuditAction.LOYALTY_ACCOUNT_FAMILY_CONFIG_UPDATED
        ).items == []
        with pytest.raises(CircleCreditsNotAllowedError):
            circle.validate_member_transaction_permission(
                holder.id, member.id, holder_account.id, TransactionType.CREDIT
            )


class TestValidateMemberTransactionPermission:
    def test_allowed_credit_returns_relationship(
        self,
        circle: FamilyCircleServiceImpl,
        holder: Client,
        member: Client,
        holder_account: LoyaltyAccount,
        actor: AuditActor,
    ):
        circle.update_family_circle_config(
            holder.id, holder_account.id, actor, allow_member_credits=True
        )

        relationship = circle.validate_member_transaction_permission(
            holder.id, member.id, holder_account.id, TransactionType.CREDIT
        )

        assert relationship == RelationshipType.CHILD

    def test_credit_denied_even_when_debits_allowed(
        self,
        circle: FamilyCircleServiceImpl,
        holder: Client,
        member: Client,
        holder_account: LoyaltyAccount,
        actor: AuditActor,
    ):
        circle.update_family_circle_config(
            holder.id,
            holder_account.id,
            actor,
            allow_member_credits=False,
            allow_member_debits=True,
        )

        with pytest.raises(CircleCreditsNotAllowedError) as exc_info:
            circle.validate_member_transaction_permission(
                holder.id, member.id, holder_account.id, TransactionType.CREDIT
            )

        assert exc_info.value.status_code == 403

    def test_missing_config_denies(
        self,
        circle: FamilyCircleServiceImpl,
        holder: Client,
        member: Client,
        holder_account: LoyaltyAccount,
    ):
        with pytest.raises(CircleDebitsNotAllowedError):
            circle.validate_member_transaction_permission(
                holder.id, member.id, holder_account.id, "debit"
            )

    def test_outsider_is_not_in_circle(
        self,
        circle: FamilyCircleServiceImpl,
        holder: Client,
        outsider: Client,
        holder_account: LoyaltyAccount,
    ):
        with pytest.raises(NotInCircleError):
            circle.validate_member_transaction_permission(
                holder.id, outsider.id, holder_account.id, TransactionType.CREDIT
            )

    def test_member_of_other_holder_is_not_in_circle(
        self,
        circle: FamilyCircleServiceImpl,
        holder: Client,
        member: Client,
        outsider: Client,
        holder_account: LoyaltyAccount,
    ):
        with pytest.raises(NotInCircleError):
            circle.validate_member_transaction_permission(
                outsider.id, member.id, holder_account.id, TransactionType.CREDIT
            )

    def test_removed_member_loses_permission(
        self,
        circle: FamilyCircleServiceImpl,
        holder: Client,
        member: Client,
        holder_account: LoyaltyAccount,
        actor: AuditActor,
    ):
        circle.update_family_circle_config(
            holder.id, holder_account.id, actor, allow_member_credits=True
        )
        circle.remove_family_circle_member(holder.id, member.id, actor)

        with pytest.raises(NotInCircleError):
            circle.validate_member_transaction_permission(
                holder.id, member.id, holder_account.id, TransactionType.CREDIT
            )

    def test_unknown_account(
        self, circle: FamilyCircleServiceImpl, holder: Client, member: Client
    ):
        with pytest.raises(AccountNotFoundError):
            circle.validate_member_transaction_permission(
                holder.id, member.id, "nope", TransactionType.CREDIT
            )

    def test_invalid_transaction_type(
        self,
        circle: FamilyCircleServiceImpl,
        holder: Client,
        member: Client,
        holder_account: LoyaltyAccount,
    ):
        with pytest.raises(ValidationError):
            circle.validate_member_transaction_permission(
                holder.id, member.id, holder_account.id, "refund"
            )
