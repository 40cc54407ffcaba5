"""
Exclusivity checker.

Finds the current holder of an exclusive role inside the boundary a new
assignment would land in. The boundary is the target squadron for
unit-exclusive roles and every squadron of the target's wing for
parent-exclusive roles.

A holder counts only while their role assignment is current, their
current squadron is inside the boundary and their current status is
flagged active.
"""

from datetime import date
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from roster_access.core.errors import InvariantViolation, StoreUnavailable
from roster_access.models.roster import Role
from roster_access.repositories.org import UnitRepository
from roster_access.repositories.roles import RoleAssignmentRepository, RoleRepository
from roster_access.utils.timezone import utc_today

from .scope import ExclusivityScope

logger = structlog.get_logger()


class ConflictHolder(BaseModel):
    """A current holder of an exclusive role."""
    model_config = ConfigDict(frozen=True)

    person_id: UUID
    display_name: str
    assignment_id: UUID
    unit_id: UUID
    effective_date: date
    accepted_duplicate: bool = False


class Conflict(BaseModel):
    """
    An exclusive role already held inside the target boundary.

    incumbent is the earliest holder; holders lists everyone found,
    including holders committed as accepted duplicates.
    """
    model_config = ConfigDict(frozen=True)

    role_id: UUID
    role_name: str
    exclusivity_scope: ExclusivityScope
    target_unit_id: UUID
    incumbent: ConflictHolder
    holders: list[ConflictHolder]

    @property
    def holder_assignment_ids(self) -> frozenset[UUID]:
        return frozenset(h.assignment_id for h in self.holders)

    @property
    def message(self) -> str:
        return f"{self.incumbent.display_name} currently holds {self.role_name}"


class ExclusivityChecker:
    """
    Detect exclusive-role conflicts.

    Usage:
        checker = ExclusivityChecker(db)
        conflict = await checker.find_conflict(role, unit_id, exclude_person_id=person.id)
        if conflict:
            attempt = arbiter.begin_arbitration(conflict, operation)
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.units = UnitRepository(db)
        self.roles = RoleRepository(db)
        self.assignments = RoleAssignmentRepository(db)

    async def boundary(self, role: Role, unit_id: UUID) -> list[UUID]:
        """Units whose holders compete with an assignment made in unit_id."""
        if role.exclusivity_scope is ExclusivityScope.UNIT:
            return [unit_id]
        if role.exclusivity_scope is ExclusivityScope.PARENT:
            return await self.units.sibling_ids(unit_id)
        return []

    async def holders(
        self,
        role: Role,
        unit_ids: list[UUID],
        exclude_person_id: UUID | None = None,
        today: date | None = None,
    ) -> list[ConflictHolder]:
        rows = await self.assignments.active_holders(
            role.id,
            unit_ids,
            today or utc_today(),
            exclude_person_id=exclude_person_id,
        )
        seen: set[UUID] = set()
        holders = []
        for assignment, display_name, holder_unit_id in rows:
            if assignment.id in seen:
                continue
            seen.add(assignment.id)
            holders.append(
                ConflictHolder(
                    person_id=assignment.person_id,
                    display_name=display_name,
                    assignment_id=assignment.id,
                    unit_id=holder_unit_id,
                    effective_date=assignment.effective_date,
                    accepted_duplicate=assignment.accepted_duplicate,
                )
            )
        return holders

    async def find_conflict(
        self,
        role: Role,
        target_unit_id: UUID | None,
        exclude_person_id: UUID | None = None,
        *,
        lock: bool = False,
    ) -> Conflict | None:
        """
        Return the conflict an assignment of role in target_unit_id would
        create, or None.

        Without a target unit there is no boundary and no conflict.
        With lock=True the role row is locked for the rest of the
        transaction.

        Raises:
            InvariantViolation: More than one non-duplicate holder exists
            StoreUnavailable: The store could not be read
        """
        if role.exclusivity_scope is ExclusivityScope.NONE:
            return None
        if target_unit_id is None:
            return None

        try:
            if lock:
                await self.roles.lock([role.id])
            unit_ids = await self.boundary(role, target_unit_id)
            holders = await self.holders(role, unit_ids, exclude_person_id)
        except DBAPIError as e:
            logger.error("conflict_check_failed", role_id=str(role.id), error=str(e))
            raise StoreUnavailable("Could not read role holders") from e

        if not holders:
            return None

        primary = {h.person_id for h in holders if not h.accepted_duplicate}
        if len(primary) > 1:
            logger.error(
                "exclusivity_invariant_violated",
                role_id=str(role.id),
                role=role.name,
                unit_ids=[str(u) for u in unit_ids],
                holders=[str(p) for p in sorted(primary, key=str)],
            )
            raise InvariantViolation(role.id, unit_ids, sorted(primary, key=str))

        conflict = Conflict(
            role_id=role.id,
            role_name=role.name,
            exclusivity_scope=role.exclusivity_scope,
            target_unit_id=target_unit_id,
            incumbent=holders[0],
            holders=holders,
        )
        logger.info(
            "role_conflict_detected",
            role=role.name,
            target_unit_id=str(target_unit_id),
            incumbent=str(conflict.incumbent.person_id),
            holders=len(holders),
        )
        return conflict
