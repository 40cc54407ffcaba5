"""
Scope model.

Pure value types shared by the grant resolver, the evaluator and the
exclusivity checker. Nothing in this module performs I/O.

A capability is either boolean (held or not, regardless of where it is
used) or scoped (held as a set of ScopedGrant, each saying how far the
capability reaches).

Usage:
    grants = GrantsSnapshot(
        {
            "manage_roster": ScopedGrants.of(ScopedGrant(Scope.OWN_UNIT, sq12_id)),
            "access_admin": BooleanGrant(False),
        },
        person_id=person.id,
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Union
from uuid import UUID

from roster_access.utils.timezone import utc_now


# ============================================================
# SCOPES
# ============================================================

class Scope(str, Enum):
    """Reach of a scoped grant, narrowest first."""

    NONE = "none"
    OWN_UNIT = "own_unit"
    OWN_PARENT = "own_parent"
    ALL_UNITS = "all_units"
    ALL_PARENTS = "all_parents"
    GLOBAL = "global"

    @property
    def breadth(self) -> int:
        return _SCOPE_ORDER.index(self)

    @property
    def anchored(self) -> bool:
        """Scopes that only make sense together with an anchor id."""
        return self in (Scope.OWN_UNIT, Scope.OWN_PARENT)

    @property
    def label(self) -> str:
        return SCOPE_LABELS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Scope):
            return NotImplemented
        return self.breadth < other.breadth

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Scope):
            return NotImplemented
        return self.breadth <= other.breadth

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Scope):
            return NotImplemented
        return self.breadth > other.breadth

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Scope):
            return NotImplemented
        return self.breadth >= other.breadth


_SCOPE_ORDER = [
    Scope.NONE,
    Scope.OWN_UNIT,
    Scope.OWN_PARENT,
    Scope.ALL_UNITS,
    Scope.ALL_PARENTS,
    Scope.GLOBAL,
]

SCOPE_LABELS = {
    Scope.NONE: "No access",
    Scope.OWN_UNIT: "Own squadron",
    Scope.OWN_PARENT: "Own wing",
    Scope.ALL_UNITS: "All squadrons",
    Scope.ALL_PARENTS: "All wings",
    Scope.GLOBAL: "Global",
}


class ExclusivityScope(str, Enum):
    """How far a role's exclusivity reaches."""

    NONE = "none"
    UNIT = "unit"
    PARENT = "parent"


# ============================================================
# PERMISSION BASES
# ============================================================

class BasisType(str, Enum):
    """What a permission rule is attached to."""

    MANUAL_OVERRIDE = "manual_override"
    STANDING = "standing"
    ROLE = "role"
    QUALIFICATION = "qualification"
    PARENT_UNIT = "parent_unit"
    UNIT = "unit"
    AUTHENTICATED_USER = "authenticated_user"

    @property
    def priority(self) -> int:
        return BASIS_PRIORITIES[self]

    @property
    def requires_id(self) -> bool:
        return self is not BasisType.AUTHENTICATED_USER


# Higher number = listed first in a snapshot's bases
BASIS_PRIORITIES = {
    BasisType.MANUAL_OVERRIDE: 1000,
    BasisType.STANDING: 900,
    BasisType.ROLE: 800,
    BasisType.QUALIFICATION: 700,
    BasisType.PARENT_UNIT: 600,
    BasisType.UNIT: 500,
    BasisType.AUTHENTICATED_USER: 100,
}


@dataclass(frozen=True)
class PermissionBasis:
    """One reason a person may receive grants (a role they hold, their unit...)."""

    type: BasisType
    id: UUID | None
    name: str

    @property
    def priority(self) -> int:
        return self.type.priority


# ============================================================
# GRANTS
# ============================================================

@dataclass(frozen=True)
class ScopedGrant:
    """
    One reach of a scoped capability.

    anchor is the unit id for OWN_UNIT and the parent-unit id for
    OWN_PARENT. Unanchored scopes carry None.
    """

    scope: Scope
    anchor: UUID | None = None


@dataclass(frozen=True)
class BooleanGrant:
    allowed: bool


@dataclass(frozen=True)
class ScopedGrants:
    grants: frozenset[ScopedGrant] = frozenset()

    @classmethod
    def of(cls, *grants: ScopedGrant) -> "ScopedGrants":
        return cls(frozenset(grants))

    def __iter__(self) -> Iterator[ScopedGrant]:
        return iter(self.grants)

    def __len__(self) -> int:
        return len(self.grants)

    @property
    def widest(self) -> Scope:
        """Broadest scope present, NONE when there is none."""
        return max((g.scope for g in self.grants), default=Scope.NONE)


Grant = Union[BooleanGrant, ScopedGrants]


# ============================================================
# REQUEST CONTEXT
# ============================================================

@dataclass(frozen=True)
class RequestContext:
    """Where an action is being performed."""

    unit_id: UUID | None = None
    parent_unit_id: UUID | None = None
    caller_id: UUID | None = None

    @property
    def has_target(self) -> bool:
        return self.unit_id is not None or self.parent_unit_id is not None


# ============================================================
# SNAPSHOT
# ============================================================

class GrantsSnapshot(Mapping[str, Grant]):
    """
    Read-only mapping of capability name to grant, with provenance.

    Snapshots are produced by GrantResolver and consumed by the evaluator.
    Absent capabilities are denied.
    """

    __slots__ = (
        "_grants",
        "person_id",
        "unit_id",
        "parent_unit_id",
        "bases",
        "calculated_at",
        "expires_at",
    )

    def __init__(
        self,
        grants: Mapping[str, Grant] | Iterable[tuple[str, Grant]] = (),
        *,
        person_id: UUID | None = None,
        unit_id: UUID | None = None,
        parent_unit_id: UUID | None = None,
        bases: Iterable[PermissionBasis] = (),
        calculated_at: datetime | None = None,
        ttl: int | None = None,
    ):
        self._grants = MappingProxyType(dict(grants))
        self.person_id = person_id
        self.unit_id = unit_id
        self.parent_unit_id = parent_unit_id
        self.bases = tuple(sorted(bases, key=lambda b: -b.priority))
        self.calculated_at = calculated_at or utc_now()
        self.expires_at = (
            self.calculated_at + timedelta(seconds=ttl) if ttl is not None else None
        )

    @classmethod
    def empty(cls, person_id: UUID | None = None) -> "GrantsSnapshot":
        """Snapshot that denies everything."""
        return cls({}, person_id=person_id)

    def __getitem__(self, capability: str) -> Grant:
        return self._grants[capability]

    def __iter__(self) -> Iterator[str]:
        return iter(self._grants)

    def __len__(self) -> int:
        return len(self._grants)

    def __repr__(self) -> str:
        return f"GrantsSnapshot(person_id={self.person_id!r}, capabilities={len(self)})"

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utc_now()) >= self.expires_at

    def as_dict(self) -> dict[str, bool | list[dict[str, str | None]]]:
        """Plain view for serialization: bool for boolean capabilities, scope list otherwise."""
        out: dict[str, bool | list[dict[str, str | None]]] = {}
        for name, grant in self._grants.items():
            if isinstance(grant, BooleanGrant):
                out[name] = grant.allowed
            elif isinstance(grant, ScopedGrants):
                out[name] = [
                    {"scope": g.scope.value, "anchor": str(g.anchor) if g.anchor else None}
                    for g in sorted(grant, key=lambda g: (g.scope.breadth, str(g.anchor)))
                ]
        return out
