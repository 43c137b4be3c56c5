"""Client model.

Clients are created and edited outside the ledger core. The core reads them
and writes only two fields: the account_balances mirror and the family
circle pointer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from loyalty_ledger.domain.family_circle import FamilyCirclePointer


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class ClientName:
    first_name: str
    first_last_name: str
    second_name: str | None = None
    second_last_name: str | None = None


@dataclass
class Client:
    id: str
    name: ClientName
    email: str | None = None
    identity_document: dict[str, Any] | None = None
    phones: list[dict[str, Any]] = field(default_factory=list)
    addresses: list[dict[str, Any]] = field(default_factory=list)
    account_balances: dict[str, int] = field(default_factory=dict)
    family_circle: FamilyCirclePointer | None = None
    affinity_group_ids: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

