"""
Database models.
"""

from .base import Base
from .org import ParentUnit, Unit, Person, UnitAssignment
from .roster import (
    Status,
    PersonStatus,
    Standing,
    PersonStanding,
    Qualification,
    PersonQualification,
    Role,
    RoleAssignment,
)
from .permissions import Capability, PermissionRule

__all__ = [
    "Base",
    "ParentUnit",
    "Unit",
    "Person",
    "UnitAssignment",
    "Status",
    "PersonStatus",
    "Standing",
    "PersonStanding",
    "Qualification",
    "PersonQualification",
    "Role",
    "RoleAssignment",
    "Capability",
    "PermissionRule",
]
