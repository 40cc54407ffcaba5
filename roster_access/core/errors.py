"""
Error taxonomy for grant resolution and role arbitration.

All errors derive from AccessError so request handlers can map the
whole family in one place.
"""

from typing import Any
from uuid import UUID


class AccessError(Exception):
    """Base class for access and roster errors."""

    code = "access_error"


class IdentityNotFound(AccessError):
    """No person is linked to the given caller identity."""

    code = "identity_not_found"

    def __init__(self, identity: Any):
        self.identity = identity
        super().__init__(f"No person linked to identity {identity!r}")


class StoreUnavailable(AccessError):
    """The backing store could not be read."""

    code = "store_unavailable"


class InvariantViolation(AccessError):
    """
    More than one non-duplicate holder of an exclusive role was found
    inside a single boundary. Reported, never repaired.
    """

    code = "invariant_violation"

    def __init__(self, role_id: UUID, unit_ids: list[UUID], holder_ids: list[UUID]):
        self.role_id = role_id
        self.unit_ids = unit_ids
        self.holder_ids = holder_ids
        super().__init__(
            f"Role {role_id} has {len(holder_ids)} concurrent holders "
            f"across units {[str(u) for u in unit_ids]}"
        )


class CommitFailed(AccessError):
    """Writing an arbitration outcome failed. The attempt is still pending."""

    code = "commit_failed"

    def __init__(self, attempt: Any, message: str = "Commit failed"):
        self.attempt = attempt
        super().__init__(message)


class AttemptNotPending(AccessError):
    """A decision was submitted for an attempt that is not awaiting one."""

    code = "attempt_not_pending"

    def __init__(self, attempt: Any):
        self.attempt = attempt
        super().__init__(f"Attempt is {attempt.state.value}, not detected")


class RecordNotFound(AccessError):
    code = "not_found"

    def __init__(self, kind: str, record_id: Any):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class AssignmentRejected(AccessError):
    """An assignment was refused by roster policy before arbitration."""

    code = "assignment_rejected"
