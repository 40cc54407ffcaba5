"""
Permission rule administration.

Every change clears the grant cache, since a rule can affect anyone.
"""

from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from roster_access.core.access.resolver import GrantCache
from roster_access.core.access.scope import BasisType, Scope
from roster_access.core.errors import RecordNotFound
from roster_access.models.permissions import Capability, PermissionRule
from roster_access.repositories.permissions import (
    CapabilityRepository,
    PermissionRuleRepository,
)

logger = structlog.get_logger()


class PermissionRuleService:
    """CRUD for permission rules."""

    def __init__(self, db: AsyncSession, grant_cache: GrantCache | None = None):
        self.db = db
        self.grant_cache = grant_cache
        self.capabilities = CapabilityRepository(db)
        self.rules = PermissionRuleRepository(db)

    def _invalidate(self) -> None:
        if self.grant_cache is not None:
            self.grant_cache.clear()

    async def list_rules(
        self,
        basis_type: BasisType | None = None,
    ) -> list[tuple[PermissionRule, Capability]]:
        return await self.rules.list_rules(basis_type)

    async def create_rule(
        self,
        capability_name: str,
        basis_type: BasisType,
        basis_id: UUID | None = None,
        scope: Scope = Scope.OWN_UNIT,
        created_by: UUID | None = None,
    ) -> tuple[PermissionRule, Capability]:
        """
        Create a rule.

        Raises:
            RecordNotFound: Unknown capability
            ValueError: basis_id missing for a basis type that needs one
        """
        capability = await self.capabilities.get_by_name(capability_name)
        if capability is None:
            raise RecordNotFound("capability", capability_name)
        if basis_type.requires_id and basis_id is None:
            raise ValueError(f"basis_id is required for {basis_type.value} rules")
        if not basis_type.requires_id:
            basis_id = None

        rule = await self.rules.create(
            capability_id=capability.id,
            basis_type=basis_type,
            basis_id=basis_id,
            scope=scope,
            active=True,
            created_by=created_by,
        )
        await self.db.commit()
        self._invalidate()

        logger.info(
            "permission_rule_created",
            rule_id=str(rule.id),
            capability=capability.name,
            basis_type=basis_type.value,
            scope=scope.value,
        )
        return rule, capability

    async def update_rule(
        self,
        rule_id: UUID,
        scope: Scope | None = None,
        active: bool | None = None,
    ) -> tuple[PermissionRule, Capability]:
        changes = {}
        if scope is not None:
            changes["scope"] = scope
        if active is not None:
            changes["active"] = active

        rule = await self.rules.update(rule_id, **changes)
        if rule is None:
            raise RecordNotFound("permission rule", rule_id)
        capability = await self.capabilities.get_by_id(rule.capability_id)
        await self.db.commit()
        self._invalidate()

        logger.info("permission_rule_updated", rule_id=str(rule_id), changes=list(changes))
        return rule, capability

    async def delete_rule(self, rule_id: UUID) -> None:
        if not await self.rules.delete(rule_id):
            raise RecordNotFound("permission rule", rule_id)
        await self.db.commit()
        self._invalidate()
        logger.info("permission_rule_deleted", rule_id=str(rule_id))
