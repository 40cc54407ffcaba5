"""
Role and role-assignment queries.
"""

from datetime import date
from uuid import UUID
from sqlalchemy import and_, exists, or_, select

from roster_access.models.org import Person, UnitAssignment
from roster_access.models.roster import PersonStatus, Role, RoleAssignment, Status

from .base import BaseRepository


def _current_role(today: date):
    return or_(RoleAssignment.end_date.is_(None), RoleAssignment.end_date > today)


def _has_active_status(person_id_column):
    return exists(
        select(PersonStatus.id)
        .join(Status, Status.id == PersonStatus.status_id)
        .where(
            PersonStatus.person_id == person_id_column,
            PersonStatus.end_date.is_(None),
            Status.is_active.is_(True),
        )
    )


class RoleRepository(BaseRepository[Role]):
    model = Role

    async def lock(self, role_ids: list[UUID]) -> list[Role]:
        """
        Take row locks on roles, in id order.

        Concurrent assignments of the same role serialize on this lock
        until the surrounding transaction ends.
        """
        if not role_ids:
            return []
        stmt = (
            select(Role)
            .where(Role.id.in_(role_ids))
            .order_by(Role.id)
            .with_for_update()
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


class RoleAssignmentRepository(BaseRepository[RoleAssignment]):
    model = RoleAssignment

    async def current_for_person(
        self,
        person_id: UUID,
        today: date,
        role_id: UUID | None = None,
    ) -> list[RoleAssignment]:
        stmt = select(RoleAssignment).where(
            RoleAssignment.person_id == person_id,
            _current_role(today),
        )
        if role_id is not None:
            stmt = stmt.where(RoleAssignment.role_id == role_id)
        stmt = stmt.order_by(RoleAssignment.effective_date, RoleAssignment.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def current_roles_for_person(
        self,
        person_id: UUID,
        today: date,
    ) -> list[tuple[RoleAssignment, Role]]:
        """Current assignments paired with their roles, by role display order."""
        stmt = (
            select(RoleAssignment, Role)
            .join(Role, Role.id == RoleAssignment.role_id)
            .where(RoleAssignment.person_id == person_id, _current_role(today))
            .order_by(Role.display_order, Role.name, RoleAssignment.effective_date)
        )
        result = await self.db.execute(stmt)
        return [(a, r) for a, r in result.all()]

    async def active_holders(
        self,
        role_id: UUID,
        unit_ids: list[UUID],
        today: date,
        exclude_person_id: UUID | None = None,
    ) -> list[tuple[RoleAssignment, str, UUID]]:
        """
        Current holders of a role whose current unit is one of unit_ids
        and whose current status is active.

        Returns (assignment, display name, holder's unit id) ordered by
        effective date, then creation time.
        """
        if not unit_ids:
            return []

        stmt = (
            select(RoleAssignment, Person.display_name, UnitAssignment.unit_id)
            .join(Person, Person.id == RoleAssignment.person_id)
            .join(
                UnitAssignment,
                and_(
                    UnitAssignment.person_id == RoleAssignment.person_id,
                    UnitAssignment.end_date.is_(None),
                ),
            )
            .where(
                RoleAssignment.role_id == role_id,
                _current_role(today),
                UnitAssignment.unit_id.in_(unit_ids),
                _has_active_status(RoleAssignment.person_id),
            )
            .order_by(
                RoleAssignment.effective_date,
                RoleAssignment.created_at,
                RoleAssignment.id,
            )
        )
        if exclude_person_id is not None:
            stmt = stmt.where(RoleAssignment.person_id != exclude_person_id)

        result = await self.db.execute(stmt)
        return [(a, name, unit_id) for a, name, unit_id in result.all()]

    async def end(self, assignments: list[RoleAssignment], end_date: date) -> list[RoleAssignment]:
        """Close assignments as of end_date."""
        for assignment in assignments:
            assignment.end_date = end_date
        await self.db.flush()
        return assignments
