"""
Permission evaluator.

Pure, synchronous decisions over a GrantsSnapshot. No clock, no I/O,
inputs are never mutated. Anything the evaluator does not recognize is
denied.

Matching rules for a scoped capability against a context:
- GLOBAL matches everything.
- ALL_UNITS and ALL_PARENTS match any context that targets a unit or a
  parent unit.
- OWN_PARENT matches when its anchor is the context's parent unit.
- OWN_UNIT matches when its anchor is the context's unit.
- NONE never matches. An anchored scope with no anchor never matches.

Without a target (no context, or a context naming neither a unit nor a
parent unit) a scoped capability is held if any non-NONE grant exists.

Usage:
    if not evaluate(grants, "manage_roster", RequestContext(unit_id=sq12.id)):
        raise HTTPException(status_code=403, detail="No access")
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from .scope import (
    BooleanGrant,
    Grant,
    RequestContext,
    Scope,
    ScopedGrant,
    ScopedGrants,
)


@dataclass(frozen=True)
class AccessDecision:
    """
    Result of a capability check.

    Attributes:
        allowed: Whether the capability is held in the context
        reason: Explanation for logs. Never shown to end users.
        matching: Scoped grants that satisfied the context
    """
    allowed: bool
    reason: str
    matching: tuple[ScopedGrant, ...] = field(default_factory=tuple)

    @classmethod
    def allow(cls, reason: str, matching: Iterable[ScopedGrant] = ()) -> "AccessDecision":
        return cls(allowed=True, reason=reason, matching=tuple(matching))

    @classmethod
    def deny(cls, reason: str = "Permission denied") -> "AccessDecision":
        return cls(allowed=False, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed


def matches(grant: ScopedGrant, context: RequestContext) -> bool:
    """Whether a single scoped grant covers a targeted context."""
    scope = grant.scope
    if scope is Scope.GLOBAL:
        return True
    if scope in (Scope.ALL_UNITS, Scope.ALL_PARENTS):
        return context.has_target
    if scope is Scope.OWN_PARENT:
        return grant.anchor is not None and grant.anchor == context.parent_unit_id
    if scope is Scope.OWN_UNIT:
        return grant.anchor is not None and grant.anchor == context.unit_id
    return False


def _well_formed(grant: object) -> bool:
    return isinstance(grant, ScopedGrant) and isinstance(grant.scope, Scope)


def _matching(grants: list[ScopedGrant], context: RequestContext | None) -> list[ScopedGrant]:
    if context is None or not context.has_target:
        return [g for g in grants if g.scope is not Scope.NONE]
    return [g for g in grants if matches(g, context)]


def check(
    grants: Mapping[str, Grant],
    capability: str,
    context: RequestContext | None = None,
) -> AccessDecision:
    """Evaluate a capability and explain the outcome."""
    grant = grants.get(capability)

    if grant is None:
        return AccessDecision.deny(f"Capability not granted: {capability}")

    if isinstance(grant, BooleanGrant):
        if grant.allowed is True:
            return AccessDecision.allow(f"Boolean capability held: {capability}")
        return AccessDecision.deny(f"Boolean capability not held: {capability}")

    if isinstance(grant, ScopedGrants):
        # Members of any other shape grant nothing
        found = _matching([g for g in grant if _well_formed(g)], context)
        if found:
            scopes = ", ".join(sorted({g.scope.value for g in found}))
            return AccessDecision.allow(f"Held via {scopes}", found)
        if context is None or not context.has_target:
            return AccessDecision.deny(f"No scopes held for {capability}")
        return AccessDecision.deny(f"No scope of {capability} covers the target")

    return AccessDecision.deny(f"Unrecognized grant for {capability}")


def evaluate(
    grants: Mapping[str, Grant],
    capability: str,
    context: RequestContext | None = None,
) -> bool:
    """Whether the capability is held in the given context."""
    return check(grants, capability, context).allowed


def any_of(
    grants: Mapping[str, Grant],
    capabilities: Iterable[str],
    context: RequestContext | None = None,
) -> bool:
    """True if at least one capability is held. Stops at the first hit."""
    return any(evaluate(grants, c, context) for c in capabilities)


def all_of(
    grants: Mapping[str, Grant],
    capabilities: Iterable[str],
    context: RequestContext | None = None,
) -> bool:
    """True if every capability is held. Stops at the first miss."""
    return all(evaluate(grants, c, context) for c in capabilities)


def check_many(
    grants: Mapping[str, Grant],
    capabilities: Iterable[str],
    context: RequestContext | None = None,
) -> dict[str, bool]:
    """Evaluate several capabilities at once."""
    return {c: evaluate(grants, c, context) for c in capabilities}
