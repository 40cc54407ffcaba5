"""
Roster change schemas.
"""

from datetime import date
from uuid import UUID
from pydantic import BaseModel, ConfigDict

from roster_access.core.access.arbiter import ArbitrationAttempt, ArbitrationState, Decision


class RoleAssignRequest(BaseModel):
    role_id: UUID
    effective_date: date | None = None


class TransferRequest(BaseModel):
    unit_id: UUID
    effective_date: date | None = None


class ResolveRequest(BaseModel):
    attempt: ArbitrationAttempt
    decision: Decision


class RoleAssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    person_id: UUID
    role_id: UUID
    unit_id: UUID | None = None
    effective_date: date
    end_date: date | None = None
    accepted_duplicate: bool


class UnitAssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    person_id: UUID
    unit_id: UUID
    start_date: date
    end_date: date | None = None


class RosterChangeResponse(BaseModel):
    """
    Outcome of a roster change.

    state "detected" means nothing was written; present attempt.conflict
    and resubmit the attempt with a decision.
    """
    state: ArbitrationState
    attempt: ArbitrationAttempt | None = None
    role_assignment: RoleAssignmentResponse | None = None
    unit_assignment: UnitAssignmentResponse | None = None
    ended_assignments: list[RoleAssignmentResponse] = []
    message: str | None = None
