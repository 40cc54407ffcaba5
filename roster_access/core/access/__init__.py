"""
Scoped authorization and exclusive role arbitration.

Pure pieces (scope model, evaluator) are exported here. The resolver,
checker and arbiter touch the database and are imported from their
modules:

    from roster_access.core.access.resolver import GrantResolver
    from roster_access.core.access.exclusivity import ExclusivityChecker
    from roster_access.core.access.arbiter import ConflictArbiter
"""

from .scope import (
    BasisType,
    BooleanGrant,
    ExclusivityScope,
    Grant,
    GrantsSnapshot,
    PermissionBasis,
    RequestContext,
    Scope,
    ScopedGrant,
    ScopedGrants,
)
from .evaluator import AccessDecision, all_of, any_of, check, check_many, evaluate, matches

__all__ = [
    "BasisType",
    "BooleanGrant",
    "ExclusivityScope",
    "Grant",
    "GrantsSnapshot",
    "PermissionBasis",
    "RequestContext",
    "Scope",
    "ScopedGrant",
    "ScopedGrants",
    "AccessDecision",
    "all_of",
    "any_of",
    "check",
    "check_many",
    "evaluate",
    "matches",
]
