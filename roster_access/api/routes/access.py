"""
Access routes: the caller's grants, capability checks and rule admin.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from roster_access.core.access.evaluator import check_many, evaluate
from roster_access.core.access.scope import BasisType, GrantsSnapshot
from roster_access.core.errors import IdentityNotFound
from roster_access.models.permissions import Capability, PermissionRule
from roster_access.schemas.access import (
    BasisResponse,
    CheckManyRequest,
    CheckManyResponse,
    CheckRequest,
    CheckResponse,
    GrantsResponse,
    RuleCreate,
    RuleResponse,
    RuleUpdate,
    TargetContext,
)
from roster_access.services.permission_rules import PermissionRuleService
from roster_access.api.dependencies.access import (
    CallerGrants,
    CallerIdentity,
    build_context,
    get_grant_resolver,
    require_capability,
)
from roster_access.api.dependencies.database import get_db
from roster_access.api.dependencies.services import get_permission_rule_service
from roster_access.core.access.resolver import GrantResolver

router = APIRouter()

MANAGE_PERMISSIONS = "manage_permissions"


def _rule_response(rule: PermissionRule, capability: Capability) -> RuleResponse:
    return RuleResponse(
        id=rule.id,
        capability=capability.name,
        basis_type=rule.basis_type,
        basis_id=rule.basis_id,
        scope=rule.scope,
        active=rule.active,
        created_at=rule.created_at,
    )


async def _context(db: AsyncSession, target: TargetContext | None):
    if target is None:
        return None
    return await build_context(db, unit_id=target.unit_id, parent_unit_id=target.parent_unit_id)


@router.get("/me", response_model=GrantsResponse)
async def my_grants(
    identity: CallerIdentity,
    resolver: GrantResolver = Depends(get_grant_resolver),
):
    """Resolved grants of the caller."""
    try:
        grants = await resolver.resolve(identity)
    except IdentityNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No roster member is linked to this account",
        )
    return GrantsResponse(
        person_id=grants.person_id,
        unit_id=grants.unit_id,
        parent_unit_id=grants.parent_unit_id,
        grants=grants.as_dict(),
        bases=[BasisResponse(type=b.type, id=b.id, name=b.name) for b in grants.bases],
        calculated_at=grants.calculated_at,
        expires_at=grants.expires_at,
    )


@router.post("/check", response_model=CheckResponse)
async def check_capability(
    data: CheckRequest,
    grants: CallerGrants,
    db: AsyncSession = Depends(get_db),
):
    """Whether the caller holds a capability, optionally in a unit."""
    context = await _context(db, data.context)
    return CheckResponse(
        capability=data.capability,
        allowed=evaluate(grants, data.capability, context),
    )


@router.post("/check-many", response_model=CheckManyResponse)
async def check_capabilities(
    data: CheckManyRequest,
    grants: CallerGrants,
    db: AsyncSession = Depends(get_db),
):
    """Check several capabilities at once."""
    context = await _context(db, data.context)
    return CheckManyResponse(results=check_many(grants, data.capabilities, context))


# ============================================================
# RULE ADMINISTRATION
# ============================================================

@router.get("/rules", response_model=list[RuleResponse])
async def list_rules(
    basis_type: BasisType | None = Query(None),
    rule_service: PermissionRuleService = Depends(get_permission_rule_service),
    _: GrantsSnapshot = Depends(require_capability(MANAGE_PERMISSIONS)),
):
    rows = await rule_service.list_rules(basis_type)
    return [_rule_response(rule, cap) for rule, cap in rows]


@router.post("/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    data: RuleCreate,
    rule_service: PermissionRuleService = Depends(get_permission_rule_service),
    grants: GrantsSnapshot = Depends(require_capability(MANAGE_PERMISSIONS)),
):
    try:
        rule, cap = await rule_service.create_rule(
            data.capability,
            data.basis_type,
            basis_id=data.basis_id,
            scope=data.scope,
            created_by=grants.person_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _rule_response(rule, cap)


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: UUID,
    data: RuleUpdate,
    rule_service: PermissionRuleService = Depends(get_permission_rule_service),
    _: GrantsSnapshot = Depends(require_capability(MANAGE_PERMISSIONS)),
):
    rule, cap = await rule_service.update_rule(rule_id, scope=data.scope, active=data.active)
    return _rule_response(rule, cap)


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: UUID,
    rule_service: PermissionRuleService = Depends(get_permission_rule_service),
    _: GrantsSnapshot = Depends(require_capability(MANAGE_PERMISSIONS)),
):
    await rule_service.delete_rule(rule_id)
