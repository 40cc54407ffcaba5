"""
Caller identity and capability dependencies.

Usage:
    @router.get("/rules")
    async def list_rules(grants: GrantsSnapshot = Depends(require_capability("manage_permissions"))):
        ...

    @router.post("/people/{person_id}/roles")
    async def assign(person_id: UUID, grants: CallerGrants, db: AsyncSession = Depends(get_db)):
        context = await build_context(db, unit_id=unit_id)
        ensure_capability(grants, "manage_roster", context)
"""

from functools import lru_cache
from typing import Annotated, Callable
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, Query, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from roster_access.core.access.evaluator import all_of, any_of, check
from roster_access.core.access.resolver import GrantCache, GrantResolver
from roster_access.core.access.scope import GrantsSnapshot, RequestContext
from roster_access.core.config import settings
from roster_access.core.errors import IdentityNotFound
from roster_access.repositories.org import UnitRepository

from .database import get_db

logger = structlog.get_logger()

# Tokens are issued by the identity provider; tokenUrl only feeds the docs UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

NO_ACCESS = "No access"


# ============================================================
# COMPONENT FACTORIES
# ============================================================

@lru_cache
def get_grant_cache() -> GrantCache | None:
    """Process-wide grant cache, or None when caching is disabled."""
    if not settings.access.grant_cache_enabled:
        return None
    return GrantCache(settings.access.grant_cache_max_entries)


async def get_grant_resolver(
    db: AsyncSession = Depends(get_db),
    cache: GrantCache | None = Depends(get_grant_cache),
) -> GrantResolver:
    return GrantResolver(db, cache=cache)


# ============================================================
# CALLER DEPENDENCIES
# ============================================================

async def get_caller_identity(token: str | None = Depends(oauth2_scheme)) -> str:
    """
    Subject claim of the caller's bearer token.

    Raises:
        HTTPException 401: Missing or invalid token
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(
            token,
            settings.auth.secret_key,
            algorithms=[settings.auth.algorithm],
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )
    return str(subject)


async def get_caller_grants(
    identity: str = Depends(get_caller_identity),
    resolver: GrantResolver = Depends(get_grant_resolver),
) -> GrantsSnapshot:
    """
    Caller's grants. An identity with no linked person gets an empty
    snapshot, so every check denies.
    """
    try:
        return await resolver.resolve(identity)
    except IdentityNotFound:
        logger.info("caller_without_person", identity=identity)
        return GrantsSnapshot.empty()


CallerIdentity = Annotated[str, Depends(get_caller_identity)]
CallerGrants = Annotated[GrantsSnapshot, Depends(get_caller_grants)]


# ============================================================
# CAPABILITY CHECKS
# ============================================================

async def build_context(
    db: AsyncSession,
    unit_id: UUID | None = None,
    parent_unit_id: UUID | None = None,
    caller_id: UUID | None = None,
) -> RequestContext:
    """
    Context for a target unit.

    When a unit is named its parent always comes from the unit record;
    a caller-supplied parent is only used for parent-only targets.
    """
    if unit_id is not None:
        unit = await UnitRepository(db).get_by_id(unit_id)
        recorded = unit.parent_unit_id if unit is not None else None
        if parent_unit_id is not None and parent_unit_id != recorded:
            logger.info(
                "context_parent_overridden",
                unit_id=str(unit_id),
                supplied=str(parent_unit_id),
                recorded=str(recorded) if recorded else None,
            )
        parent_unit_id = recorded
    return RequestContext(unit_id=unit_id, parent_unit_id=parent_unit_id, caller_id=caller_id)


def ensure_capability(
    grants: GrantsSnapshot,
    capability: str,
    context: RequestContext | None = None,
) -> None:
    """
    Raise 403 unless the capability is held in context.

    The response never says which scope was missing.
    """
    decision = check(grants, capability, context)
    if not decision.allowed:
        logger.info(
            "access_denied",
            person_id=str(grants.person_id) if grants.person_id else None,
            capability=capability,
            reason=decision.reason,
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NO_ACCESS)


def _ensure_combined(
    grants: GrantsSnapshot,
    capabilities: tuple[str, ...],
    combine: Callable[..., bool],
    context: RequestContext | None,
) -> None:
    if not combine(grants, capabilities, context):
        logger.info(
            "access_denied",
            person_id=str(grants.person_id) if grants.person_id else None,
            capabilities=list(capabilities),
            mode=combine.__name__,
            unit_id=str(context.unit_id) if context and context.unit_id else None,
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NO_ACCESS)


def _guard(capabilities: tuple[str, ...], combine: Callable[..., bool], in_unit: bool) -> Callable:
    if in_unit:
        async def unit_checker(
            grants: CallerGrants,
            unit_id: UUID = Query(...),
            db: AsyncSession = Depends(get_db),
        ) -> GrantsSnapshot:
            context = await build_context(db, unit_id=unit_id, caller_id=grants.person_id)
            _ensure_combined(grants, capabilities, combine, context)
            return grants

        return unit_checker

    async def checker(grants: CallerGrants) -> GrantsSnapshot:
        _ensure_combined(grants, capabilities, combine, None)
        return grants

    return checker


def require_any_capability(*capabilities: str, in_unit: bool = False) -> Callable:
    """
    Dependency factory: at least one of the capabilities must be held.

    With in_unit=True the check targets the squadron named by the
    route's unit_id query parameter.

    Usage:
        grants: GrantsSnapshot = Depends(
            require_any_capability("manage_roster", "view_roster", in_unit=True)
        )
    """
    return _guard(capabilities, any_of, in_unit)


def require_all_capabilities(*capabilities: str, in_unit: bool = False) -> Callable:
    """Dependency factory: every capability must be held."""
    return _guard(capabilities, all_of, in_unit)


def require_capability(capability: str, *, in_unit: bool = False) -> Callable:
    """
    Dependency factory for a single capability.

    Usage:
        grants: GrantsSnapshot = Depends(require_capability("manage_permissions"))
    """
    return require_all_capabilities(capability, in_unit=in_unit)
