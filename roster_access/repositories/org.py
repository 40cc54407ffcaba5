"""
Person, unit and unit-membership queries.
"""

from uuid import UUID
from sqlalchemy import select

from roster_access.models.org import ParentUnit, Person, Unit, UnitAssignment

from .base import BaseRepository


class PersonRepository(BaseRepository[Person]):
    model = Person

    async def get_by_identity(self, identity: str) -> Person | None:
        """Find the person linked to an identity-provider subject."""
        return await self.get_one(auth_user_id=identity)


class UnitRepository(BaseRepository[Unit]):
    model = Unit

    async def get_parent(self, unit: Unit) -> ParentUnit | None:
        result = await self.db.execute(
            select(ParentUnit).where(ParentUnit.id == unit.parent_unit_id)
        )
        return result.scalar_one_or_none()

    async def sibling_ids(self, unit_id: UUID) -> list[UUID]:
        """Ids of every unit sharing the given unit's parent, the unit included."""
        parent_id = select(Unit.parent_unit_id).where(Unit.id == unit_id).scalar_subquery()
        result = await self.db.execute(
            select(Unit.id).where(Unit.parent_unit_id == parent_id).order_by(Unit.designation)
        )
        return list(result.scalars().all())


class UnitAssignmentRepository(BaseRepository[UnitAssignment]):
    model = UnitAssignment

    async def current_for_person(self, person_id: UUID) -> UnitAssignment | None:
        """Open unit assignment with the latest start date."""
        stmt = (
            select(UnitAssignment)
            .where(
                UnitAssignment.person_id == person_id,
                UnitAssignment.end_date.is_(None),
            )
            .order_by(UnitAssignment.start_date.desc(), UnitAssignment.created_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def open_for_person(self, person_id: UUID) -> list[UnitAssignment]:
        """Every open unit assignment of a person (normally at most one)."""
        stmt = select(UnitAssignment).where(
            UnitAssignment.person_id == person_id,
            UnitAssignment.end_date.is_(None),
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
