"""
Grant resolver.

Turns a caller identity into a GrantsSnapshot by collecting the person's
permission bases (standings, qualifications, roles, unit, parent unit)
and applying every active permission rule attached to them.

Rules apply additively: a boolean capability becomes held as soon as one
rule grants it, a scoped capability collects one ScopedGrant per rule.
A person holding a capability at OWN_PARENT also holds it at OWN_UNIT
for their own unit.

Usage:
    cache = GrantCache()
    resolver = GrantResolver(db, cache=cache)
    grants = await resolver.resolve(token_subject)

    # After role or unit changes
    cache.invalidate(person_id)
"""

from collections import OrderedDict
from datetime import datetime
from threading import Lock
from uuid import UUID

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from roster_access.core.config import settings
from roster_access.core.errors import IdentityNotFound, StoreUnavailable
from roster_access.models.org import Person
from roster_access.models.roster import (
    PersonQualification,
    PersonStanding,
    Qualification,
    Role,
    Standing,
)
from roster_access.repositories.org import (
    PersonRepository,
    UnitAssignmentRepository,
    UnitRepository,
)
from roster_access.repositories.permissions import (
    CapabilityRepository,
    PermissionRuleRepository,
)
from roster_access.repositories.roles import RoleAssignmentRepository
from roster_access.utils.timezone import utc_now

from .scope import (
    BasisType,
    BooleanGrant,
    Grant,
    GrantsSnapshot,
    PermissionBasis,
    Scope,
    ScopedGrant,
    ScopedGrants,
)

logger = structlog.get_logger()


# ============================================================
# CACHE
# ============================================================

class GrantCache:
    """
    Time-boxed snapshot cache keyed by caller identity.

    Entries expire with their snapshot. Writes that change a person's
    bases must call invalidate(person_id); rule edits call clear().
    The oldest entry is evicted once max_entries is reached.
    """

    def __init__(self, max_entries: int | None = None):
        self.max_entries = max_entries or settings.access.grant_cache_max_entries
        self._entries: OrderedDict[str, GrantsSnapshot] = OrderedDict()
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def get(self, identity: str, now: datetime | None = None) -> GrantsSnapshot | None:
        with self._lock:
            snapshot = self._entries.get(identity)
            if snapshot is None:
                self.misses += 1
                return None
            if snapshot.is_expired(now):
                del self._entries[identity]
                self.misses += 1
                return None
            self._entries.move_to_end(identity)
            self.hits += 1
            return snapshot

    def put(self, identity: str, snapshot: GrantsSnapshot) -> None:
        with self._lock:
            self._entries[identity] = snapshot
            self._entries.move_to_end(identity)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, person_id: UUID) -> int:
        """Drop every entry belonging to a person. Returns the number removed."""
        with self._lock:
            keys = [k for k, s in self._entries.items() if s.person_id == person_id]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.debug("grant_cache_invalidated", person_id=str(person_id), entries=len(keys))
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("grant_cache_cleared")

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        return len(self._entries)


# ============================================================
# RESOLVER
# ============================================================

class GrantResolver:
    """Resolve grants for a caller. Reads only."""

    def __init__(
        self,
        db: AsyncSession,
        cache: GrantCache | None = None,
        ttl: int | None = None,
    ):
        self.db = db
        self.cache = cache
        self.ttl = settings.access.grant_cache_ttl if ttl is None else ttl
        self.people = PersonRepository(db)
        self.units = UnitRepository(db)
        self.unit_assignments = UnitAssignmentRepository(db)
        self.role_assignments = RoleAssignmentRepository(db)
        self.capabilities = CapabilityRepository(db)
        self.rules = PermissionRuleRepository(db)

    async def resolve(self, identity: str) -> GrantsSnapshot:
        """
        Resolve grants for an identity-provider subject.

        Raises:
            IdentityNotFound: No person is linked to the identity
            StoreUnavailable: The store could not be read
        """
        if self.cache is not None:
            cached = self.cache.get(identity)
            if cached is not None:
                logger.debug("grants_cache_hit", identity=identity)
                return cached

        try:
            person = await self.people.get_by_identity(identity)
            if person is None:
                raise IdentityNotFound(identity)
            snapshot = await self._build(person)
        except DBAPIError as e:
            logger.error("grant_resolution_failed", identity=identity, error=str(e))
            raise StoreUnavailable("Could not read grants") from e

        if self.cache is not None:
            self.cache.put(identity, snapshot)
        return snapshot

    async def resolve_person(self, person_id: UUID) -> GrantsSnapshot:
        """Resolve grants for a person by id. Not cached."""
        try:
            person = await self.people.get_by_id(person_id)
            if person is None:
                raise IdentityNotFound(person_id)
            return await self._build(person)
        except DBAPIError as e:
            logger.error("grant_resolution_failed", person_id=str(person_id), error=str(e))
            raise StoreUnavailable("Could not read grants") from e

    async def _build(self, person: Person) -> GrantsSnapshot:
        calculated_at = utc_now()
        today = calculated_at.date()

        # Unit and parent unit
        unit_id: UUID | None = None
        parent_unit_id: UUID | None = None
        bases: list[PermissionBasis] = []

        membership = await self.unit_assignments.current_for_person(person.id)
        if membership is not None:
            unit = await self.units.get_by_id(membership.unit_id)
            if unit is not None:
                unit_id = unit.id
                bases.append(PermissionBasis(BasisType.UNIT, unit.id, unit.name))
                parent = await self.units.get_parent(unit)
                if parent is not None:
                    parent_unit_id = parent.id
                    bases.append(PermissionBasis(BasisType.PARENT_UNIT, parent.id, parent.name))

        bases.extend(await self._standing_bases(person.id, today))
        bases.extend(await self._qualification_bases(person.id, today))
        bases.extend(await self._role_bases(person.id, today))
        bases.append(PermissionBasis(BasisType.AUTHENTICATED_USER, None, "Authenticated user"))

        by_type: dict[BasisType, set[UUID]] = {}
        for basis in bases:
            if basis.id is not None:
                by_type.setdefault(basis.type, set()).add(basis.id)

        # Start from the catalog so every known capability has an explicit denial
        catalog = await self.capabilities.catalog()
        booleans: dict[str, bool] = {c.name: False for c in catalog if not c.scoped}
        scoped: dict[str, set[ScopedGrant]] = {c.name: set() for c in catalog if c.scoped}

        rules = await self.rules.active_for_bases(person.id, by_type)
        overridden = False
        for rule, capability in rules:
            if rule.basis_type is BasisType.MANUAL_OVERRIDE:
                overridden = True
            if not capability.scoped:
                booleans[capability.name] = True
                continue
            grant = self._scoped_grant(rule.scope, unit_id, parent_unit_id)
            if grant is not None:
                scoped.setdefault(capability.name, set()).add(grant)

        if overridden:
            bases.append(PermissionBasis(BasisType.MANUAL_OVERRIDE, person.id, "Manual override"))

        # Wing-level reach includes the person's own squadron
        if unit_id is not None:
            for name, grants in scoped.items():
                if any(g.scope is Scope.OWN_PARENT for g in grants):
                    grants.add(ScopedGrant(Scope.OWN_UNIT, unit_id))

        grants: dict[str, Grant] = {name: BooleanGrant(v) for name, v in booleans.items()}
        grants.update({name: ScopedGrants(frozenset(g)) for name, g in scoped.items()})

        snapshot = GrantsSnapshot(
            grants,
            person_id=person.id,
            unit_id=unit_id,
            parent_unit_id=parent_unit_id,
            bases=bases,
            calculated_at=calculated_at,
            ttl=self.ttl,
        )
        logger.info(
            "grants_resolved",
            person_id=str(person.id),
            capabilities=len(snapshot),
            rules=len(rules),
            bases=len(bases),
        )
        return snapshot

    @staticmethod
    def _scoped_grant(
        scope: Scope,
        unit_id: UUID | None,
        parent_unit_id: UUID | None,
    ) -> ScopedGrant | None:
        if scope is Scope.NONE:
            return None
        if scope is Scope.OWN_UNIT:
            return ScopedGrant(scope, unit_id)
        if scope is Scope.OWN_PARENT:
            return ScopedGrant(scope, parent_unit_id)
        return ScopedGrant(scope)

    async def _standing_bases(self, person_id: UUID, today) -> list[PermissionBasis]:
        stmt = (
            select(Standing)
            .join(PersonStanding, PersonStanding.standing_id == Standing.id)
            .where(
                PersonStanding.person_id == person_id,
                or_(PersonStanding.end_date.is_(None), PersonStanding.end_date > today),
            )
        )
        result = await self.db.execute(stmt)
        return [
            PermissionBasis(BasisType.STANDING, s.id, s.name)
            for s in result.scalars().unique().all()
        ]

    async def _qualification_bases(self, person_id: UUID, today) -> list[PermissionBasis]:
        stmt = (
            select(Qualification)
            .join(PersonQualification, PersonQualification.qualification_id == Qualification.id)
            .where(
                PersonQualification.person_id == person_id,
                or_(
                    PersonQualification.expiry_date.is_(None),
                    PersonQualification.expiry_date > today,
                ),
            )
        )
        result = await self.db.execute(stmt)
        return [
            PermissionBasis(BasisType.QUALIFICATION, q.id, q.name)
            for q in result.scalars().unique().all()
        ]

    async def _role_bases(self, person_id: UUID, today) -> list[PermissionBasis]:
        seen: dict[UUID, Role] = {}
        for _, role in await self.role_assignments.current_roles_for_person(person_id, today):
            seen.setdefault(role.id, role)
        return [PermissionBasis(BasisType.ROLE, r.id, r.name) for r in seen.values()]
