"""
Roster service.

Entry points for roster changes that may collide with an exclusive role.
Each one runs an advisory conflict check first: a conflict opens an
arbitration attempt for the user to decide on, no conflict commits
straight away through the arbiter (which checks again under lock).
"""

from datetime import date
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roster_access.core.access.arbiter import (
    ArbitrationAttempt,
    ArbitrationResult,
    ArbitrationState,
    ConflictArbiter,
    Decision,
    OperationKind,
    PendingOperation,
)
from roster_access.core.access.exclusivity import ConflictHolder, ExclusivityChecker
from roster_access.core.access.resolver import GrantCache
from roster_access.core.config import RosterSettings, settings
from roster_access.core.errors import AssignmentRejected, CommitFailed, RecordNotFound
from roster_access.models.org import Person, Unit
from roster_access.models.roster import Role, RoleAssignment
from roster_access.repositories.org import (
    PersonRepository,
    UnitAssignmentRepository,
    UnitRepository,
)
from roster_access.repositories.roles import RoleAssignmentRepository, RoleRepository
from roster_access.utils.timezone import utc_today

logger = structlog.get_logger()


class RosterService:
    """Role assignment and squadron transfer."""

    def __init__(
        self,
        db: AsyncSession,
        grant_cache: GrantCache | None = None,
        roster_settings: RosterSettings | None = None,
    ):
        self.db = db
        self.grant_cache = grant_cache
        self.settings = roster_settings or settings.roster
        self.checker = ExclusivityChecker(db)
        self.arbiter = ConflictArbiter(db, checker=self.checker, grant_cache=grant_cache)
        self.people = PersonRepository(db)
        self.units = UnitRepository(db)
        self.unit_assignments = UnitAssignmentRepository(db)
        self.roles = RoleRepository(db)
        self.role_assignments = RoleAssignmentRepository(db)

    async def _person(self, person_id: UUID) -> Person:
        person = await self.people.get_by_id(person_id)
        if person is None:
            raise RecordNotFound("person", person_id)
        return person

    async def _role(self, role_id: UUID) -> Role:
        role = await self.roles.get_by_id(role_id)
        if role is None:
            raise RecordNotFound("role", role_id)
        return role

    async def _unit(self, unit_id: UUID) -> Unit:
        unit = await self.units.get_by_id(unit_id)
        if unit is None:
            raise RecordNotFound("unit", unit_id)
        return unit

    async def current_unit_id(self, person_id: UUID) -> UUID | None:
        membership = await self.unit_assignments.current_for_person(person_id)
        return membership.unit_id if membership else None

    async def assign_role(
        self,
        person_id: UUID,
        role_id: UUID,
        effective_date: date | None = None,
    ) -> ArbitrationResult:
        """
        Give a person a role in their current squadron.

        Returns a committed result, or a DETECTED result carrying the
        attempt to present when the role is exclusive and already held.

        Raises:
            RecordNotFound: Unknown person or role
            AssignmentRejected: Exclusive role for a person without a squadron
                while require_unit_for_exclusive_roles is set
        """
        person = await self._person(person_id)
        role = await self._role(role_id)
        unit_id = await self.current_unit_id(person.id)

        held = await self.role_assignments.current_for_person(person.id, utc_today(), role.id)
        if held:
            return ArbitrationResult(
                state=ArbitrationState.IDLE, role_assignment=held[0], changed=False
            )

        if role.is_exclusive and unit_id is None and self.settings.require_unit_for_exclusive_roles:
            raise AssignmentRejected(
                "Person must be assigned to a squadron before taking an exclusive role"
            )

        operation = PendingOperation(
            kind=OperationKind.ASSIGN_ROLE,
            person_id=person.id,
            role_id=role.id,
            unit_id=unit_id,
            effective_date=effective_date,
        )
        conflict = await self.checker.find_conflict(role, unit_id, exclude_person_id=person.id)
        if conflict is not None:
            attempt = self.arbiter.begin_arbitration(conflict, operation)
            return ArbitrationResult(state=ArbitrationState.DETECTED, attempt=attempt)

        return await self.arbiter.execute(operation)

    async def transfer_person(
        self,
        person_id: UUID,
        unit_id: UUID,
        effective_date: date | None = None,
    ) -> ArbitrationResult:
        """
        Move a person into another squadron.

        Exclusive roles the person holds are checked against the
        destination, in role display order. The first collision opens an
        attempt; later ones surface when that attempt is resolved.
        """
        person = await self._person(person_id)
        unit = await self._unit(unit_id)

        operation = PendingOperation(
            kind=OperationKind.TRANSFER,
            person_id=person.id,
            unit_id=unit.id,
            effective_date=effective_date,
        )

        if await self.current_unit_id(person.id) != unit.id:
            seen: set[UUID] = set()
            for _, role in await self.role_assignments.current_roles_for_person(
                person.id, utc_today()
            ):
                if not role.is_exclusive or role.id in seen:
                    continue
                seen.add(role.id)
                conflict = await self.checker.find_conflict(
                    role, unit.id, exclude_person_id=person.id
                )
                if conflict is not None:
                    attempt = self.arbiter.begin_arbitration(conflict, operation)
                    return ArbitrationResult(state=ArbitrationState.DETECTED, attempt=attempt)

        return await self.arbiter.execute(operation)

    async def resolve(self, attempt: ArbitrationAttempt, decision: Decision) -> ArbitrationResult:
        return await self.arbiter.resolve(attempt, decision)

    async def end_role(self, person_id: UUID, role_id: UUID) -> list[RoleAssignment]:
        """End a person's current assignments of a role as of today."""
        person = await self._person(person_id)
        role = await self._role(role_id)
        today = utc_today()

        try:
            current = await self.role_assignments.current_for_person(person.id, today, role.id)
            ended = await self.role_assignments.end(current, today)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("role_end_failed", person_id=str(person.id), role_id=str(role.id), exc_info=True)
            raise CommitFailed(None, "Could not end role") from e

        if ended and self.grant_cache is not None:
            self.grant_cache.invalidate(person.id)
        logger.info("role_ended", person_id=str(person.id), role=role.name, ended=len(ended))
        return ended

    async def current_holders(self, role_id: UUID, unit_id: UUID) -> list[ConflictHolder]:
        """Active holders of a role inside the boundary around unit_id."""
        role = await self._role(role_id)
        await self._unit(unit_id)
        boundary = await self.checker.boundary(role, unit_id)
        if not boundary:
            boundary = [unit_id]
        return await self.checker.holders(role, boundary)
