"""
Service dependencies.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roster_access.core.access.resolver import GrantCache
from roster_access.services.permission_rules import PermissionRuleService
from roster_access.services.roster import RosterService

from .access import get_grant_cache
from .database import get_db


async def get_roster_service(
    db: AsyncSession = Depends(get_db),
    cache: GrantCache | None = Depends(get_grant_cache),
) -> RosterService:
    return RosterService(db, grant_cache=cache)


async def get_permission_rule_service(
    db: AsyncSession = Depends(get_db),
    cache: GrantCache | None = Depends(get_grant_cache),
) -> PermissionRuleService:
    return PermissionRuleService(db, grant_cache=cache)
