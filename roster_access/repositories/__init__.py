"""
Repositories wrap the queries shared by the access engine and services.
"""

from .base import BaseRepository
from .org import PersonRepository, UnitRepository, UnitAssignmentRepository
from .roles import RoleRepository, RoleAssignmentRepository
from .permissions import CapabilityRepository, PermissionRuleRepository

__all__ = [
    "BaseRepository",
    "PersonRepository",
    "UnitRepository",
    "UnitAssignmentRepository",
    "RoleRepository",
    "RoleAssignmentRepository",
    "CapabilityRepository",
    "PermissionRuleRepository",
]
