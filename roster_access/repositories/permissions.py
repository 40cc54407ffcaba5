"""
Capability catalog and permission rule queries.
"""

from uuid import UUID
from sqlalchemy import and_, or_, select

from roster_access.core.access.scope import BasisType
from roster_access.models.permissions import Capability, PermissionRule

from .base import BaseRepository


class CapabilityRepository(BaseRepository[Capability]):
    model = Capability

    async def get_by_name(self, name: str) -> Capability | None:
        return await self.get_one(name=name)

    async def catalog(self) -> list[Capability]:
        result = await self.db.execute(select(Capability).order_by(Capability.name))
        return list(result.scalars().all())


class PermissionRuleRepository(BaseRepository[PermissionRule]):
    model = PermissionRule

    async def active_for_bases(
        self,
        person_id: UUID,
        bases: dict[BasisType, set[UUID]],
    ) -> list[tuple[PermissionRule, Capability]]:
        """
        Active rules that apply to a person.

        Always includes AUTHENTICATED_USER rules and MANUAL_OVERRIDE rules
        keyed by the person's id; other basis types match on their ids.
        """
        conditions = [
            PermissionRule.basis_type == BasisType.AUTHENTICATED_USER,
            and_(
                PermissionRule.basis_type == BasisType.MANUAL_OVERRIDE,
                PermissionRule.basis_id == person_id,
            ),
        ]
        for basis_type, ids in bases.items():
            if ids:
                conditions.append(
                    and_(
                        PermissionRule.basis_type == basis_type,
                        PermissionRule.basis_id.in_(ids),
                    )
                )

        stmt = (
            select(PermissionRule, Capability)
            .join(Capability, Capability.id == PermissionRule.capability_id)
            .where(PermissionRule.active.is_(True), or_(*conditions))
            .order_by(Capability.name, PermissionRule.id)
        )
        result = await self.db.execute(stmt)
        return [(rule, cap) for rule, cap in result.all()]

    async def list_rules(
        self,
        basis_type: BasisType | None = None,
    ) -> list[tuple[PermissionRule, Capability]]:
        stmt = select(PermissionRule, Capability).join(
            Capability, Capability.id == PermissionRule.capability_id
        )
        if basis_type is not None:
            stmt = stmt.where(PermissionRule.basis_type == basis_type)
        stmt = stmt.order_by(Capability.name, PermissionRule.basis_type, PermissionRule.id)
        result = await self.db.execute(stmt)
        return [(rule, cap) for rule, cap in result.all()]
