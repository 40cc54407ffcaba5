"""
Access check and permission rule schemas.
"""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field

from roster_access.core.access.scope import BasisType, Scope


class TargetContext(BaseModel):
    """Where the checked action happens. Both ids optional."""
    unit_id: UUID | None = None
    parent_unit_id: UUID | None = None


class CheckRequest(BaseModel):
    capability: str = Field(min_length=1, max_length=100)
    context: TargetContext | None = None


class CheckResponse(BaseModel):
    capability: str
    allowed: bool


class CheckManyRequest(BaseModel):
    capabilities: list[str] = Field(min_length=1, max_length=100)
    context: TargetContext | None = None


class CheckManyResponse(BaseModel):
    results: dict[str, bool]


class BasisResponse(BaseModel):
    type: BasisType
    id: UUID | None = None
    name: str


class GrantsResponse(BaseModel):
    """The caller's resolved grants."""
    person_id: UUID | None
    unit_id: UUID | None = None
    parent_unit_id: UUID | None = None
    grants: dict[str, bool | list[dict[str, str | None]]]
    bases: list[BasisResponse]
    calculated_at: datetime
    expires_at: datetime | None = None


class RuleCreate(BaseModel):
    capability: str = Field(min_length=1, max_length=100)
    basis_type: BasisType
    basis_id: UUID | None = None
    scope: Scope = Scope.OWN_UNIT


class RuleUpdate(BaseModel):
    scope: Scope | None = None
    active: bool | None = None


class RuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    capability: str
    basis_type: BasisType
    basis_id: UUID | None = None
    scope: Scope
    active: bool
    created_at: datetime
