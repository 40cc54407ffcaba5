"""
Roster routes: role assignment, transfer and conflict resolution.

Every change requires manage_roster in the squadron it lands in.
Reading a role's holders accepts manage_roster or view_roster.
A conflict answers 409 with an attempt; resubmit it to
/arbitrations/resolve with a decision.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from roster_access.core.access.arbiter import (
    ArbitrationResult,
    ArbitrationState,
    OperationKind,
)
from roster_access.core.access.exclusivity import ConflictHolder
from roster_access.core.access.scope import GrantsSnapshot
from roster_access.schemas.roster import (
    ResolveRequest,
    RoleAssignmentResponse,
    RoleAssignRequest,
    RosterChangeResponse,
    TransferRequest,
    UnitAssignmentResponse,
)
from roster_access.services.roster import RosterService
from roster_access.api.dependencies.access import (
    CallerGrants,
    build_context,
    ensure_capability,
    require_any_capability,
)
from roster_access.api.dependencies.database import get_db
from roster_access.api.dependencies.services import get_roster_service

router = APIRouter()

MANAGE_ROSTER = "manage_roster"
VIEW_ROSTER = "view_roster"


def _change_response(result: ArbitrationResult, response: Response) -> RosterChangeResponse:
    if result.state is ArbitrationState.DETECTED:
        response.status_code = status.HTTP_409_CONFLICT
    message = result.attempt.conflict.message if result.state is ArbitrationState.DETECTED else None
    return RosterChangeResponse(
        state=result.state,
        attempt=result.attempt,
        role_assignment=(
            RoleAssignmentResponse.model_validate(result.role_assignment)
            if result.role_assignment else None
        ),
        unit_assignment=(
            UnitAssignmentResponse.model_validate(result.unit_assignment)
            if result.unit_assignment else None
        ),
        ended_assignments=[
            RoleAssignmentResponse.model_validate(a) for a in result.ended_assignments
        ],
        message=message,
    )


async def _authorize_unit(
    db: AsyncSession,
    grants: GrantsSnapshot,
    unit_id: UUID | None,
) -> None:
    context = await build_context(db, unit_id=unit_id, caller_id=grants.person_id)
    ensure_capability(grants, MANAGE_ROSTER, context)


@router.post(
    "/people/{person_id}/roles",
    response_model=RosterChangeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_role(
    person_id: UUID,
    data: RoleAssignRequest,
    response: Response,
    grants: CallerGrants,
    db: AsyncSession = Depends(get_db),
    roster: RosterService = Depends(get_roster_service),
):
    """Assign a role. 409 with an attempt when an exclusive role is taken."""
    await _authorize_unit(db, grants, await roster.current_unit_id(person_id))
    result = await roster.assign_role(person_id, data.role_id, data.effective_date)
    if result.state is ArbitrationState.IDLE and not result.changed:
        response.status_code = status.HTTP_200_OK
    return _change_response(result, response)


@router.delete("/people/{person_id}/roles/{role_id}", response_model=list[RoleAssignmentResponse])
async def end_role(
    person_id: UUID,
    role_id: UUID,
    grants: CallerGrants,
    db: AsyncSession = Depends(get_db),
    roster: RosterService = Depends(get_roster_service),
):
    """End a person's current assignment of a role."""
    await _authorize_unit(db, grants, await roster.current_unit_id(person_id))
    ended = await roster.end_role(person_id, role_id)
    return [RoleAssignmentResponse.model_validate(a) for a in ended]


@router.post("/people/{person_id}/transfer", response_model=RosterChangeResponse)
async def transfer_person(
    person_id: UUID,
    data: TransferRequest,
    response: Response,
    grants: CallerGrants,
    db: AsyncSession = Depends(get_db),
    roster: RosterService = Depends(get_roster_service),
):
    """Move a person into another squadron."""
    await _authorize_unit(db, grants, data.unit_id)
    result = await roster.transfer_person(person_id, data.unit_id, data.effective_date)
    return _change_response(result, response)


@router.post("/arbitrations/resolve", response_model=RosterChangeResponse)
async def resolve_arbitration(
    data: ResolveRequest,
    response: Response,
    grants: CallerGrants,
    db: AsyncSession = Depends(get_db),
    roster: RosterService = Depends(get_roster_service),
):
    """Apply a decision to a pending attempt."""
    operation = data.attempt.operation
    if operation.kind is OperationKind.TRANSFER:
        unit_id = operation.unit_id
    else:
        unit_id = await roster.current_unit_id(operation.person_id)
    await _authorize_unit(db, grants, unit_id)

    result = await roster.resolve(data.attempt, data.decision)
    return _change_response(result, response)


@router.get("/roles/{role_id}/holders", response_model=list[ConflictHolder])
async def list_holders(
    role_id: UUID,
    unit_id: UUID = Query(...),
    roster: RosterService = Depends(get_roster_service),
    _: GrantsSnapshot = Depends(require_any_capability(MANAGE_ROSTER, VIEW_ROSTER, in_unit=True)),
):
    """Active holders of a role within its exclusivity boundary around a squadron."""
    return await roster.current_holders(role_id, unit_id)
