"""Family circle domain models: holder/member graph and query results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


def _utc_now() -> datetime:
    return datetime.now(UTC)


NOT_IN_CIRCLE_MESSAGE = "This client is not part of any family circle"


class CircleRole(str, Enum):
    HOLDER = "holder"
    MEMBER = "member"


class RelationshipType(str, Enum):
    SPOUSE = "spouse"
    CHILD = "child"
    PARENT = "parent"
    SIBLING = "sibling"
    FRIEND = "friend"
    OTHER = "other"


@dataclass
class FamilyCirclePointer:
    """A client's own position in the circle graph.

    Holders carry only the role. Members also point at their holder.
    """

    role: CircleRole
    holder_id: str | None = None
    relationship_type: RelationshipType | None = None
    joined_at: datetime | None = None

    @classmethod
    def holder(cls) -> FamilyCirclePointer:
        return cls(role=CircleRole.HOLDER)

    @classmethod
    def member(
        cls,
        holder_id: str,
        relationship_type: RelationshipType,
        joined_at: datetime | None = None,
    ) -> FamilyCirclePointer:
        return cls(
            role=CircleRole.MEMBER,
            holder_id=holder_id,
            relationship_type=relationship_type,
            joined_at=joined_at or _utc_now(),
        )

    @property
    def is_holder(self) -> bool:
        return self.role == CircleRole.HOLDER

    @property
    def is_member(self) -> bool:
        return self.role == CircleRole.MEMBER

    def is_member_of(self, holder_id: str) -> bool:
        return self.is_member and self.holder_id == holder_id


@dataclass
class FamilyCircleMember:
    """Edge from a holder to one of their members."""

    holder_id: str
    member_id: str
    relationship_type: RelationshipType
    added_by: str
    added_at: datetime = field(default_factory=_utc_now)


@dataclass
class NoFamilyCircle:
    message: str = NOT_IN_CIRCLE_MESSAGE

    @property
    def role(self) -> None:
        return None


@dataclass
class HolderCircleInfo:
    members: list[FamilyCircleMember] = field(default_factory=list)

    @property
    def role(self) -> CircleRole:
        return CircleRole.HOLDER

    @property
    def total_members(self) -> int:
        return len(self.members)


@dataclass
class MemberCircleInfo:
    holder_id: str
    relationship_type: RelationshipType
    joined_at: datetime

    @property
    def role(self) -> CircleRole:
        return CircleRole.MEMBER


FamilyCircleInfo = NoFamilyCircle | HolderCircleInfo | MemberCircleInfo


@dataclass
class FamilyCircleRoster:
    """Members of a circle, as seen by its holder."""

    holder_id: str
    members: list[FamilyCircleMember] = field(default_factory=list)

    @property
    def total_members(self) -> int:
        return len(self.members)
