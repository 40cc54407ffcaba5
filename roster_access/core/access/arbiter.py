"""
Conflict arbiter.

Drives the decision a user makes when an assignment collides with the
current holder of an exclusive role:

    Idle -> Detected -> Cancelled
                     -> DuplicateAccepted
                     -> IncumbentReplaced

An ArbitrationAttempt is a plain, serializable handle. The arbiter keeps
no state between calls, so an attempt can travel to a client and back.
Every non-cancel decision is committed in one transaction that locks
the roles involved and re-runs conflict detection first. If the holders
changed since the attempt was made, nothing is written and a fresh
Detected attempt is returned instead.

Usage:
    arbiter = ConflictArbiter(db, grant_cache=cache)
    attempt = arbiter.begin_arbitration(conflict, operation)
    ...
    result = await arbiter.resolve(attempt, Decision.REPLACE_INCUMBENT)
    if result.state is ArbitrationState.DETECTED:
        # someone else changed the roster, ask again
        ...
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from uuid import UUID, uuid4

import structlog
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roster_access.core.errors import (
    AttemptNotPending,
    CommitFailed,
    RecordNotFound,
    StoreUnavailable,
)
from roster_access.models.org import UnitAssignment
from roster_access.models.roster import Role, RoleAssignment
from roster_access.repositories.org import (
    PersonRepository,
    UnitAssignmentRepository,
    UnitRepository,
)
from roster_access.repositories.roles import RoleAssignmentRepository, RoleRepository
from roster_access.utils.timezone import utc_now, utc_today

from .exclusivity import Conflict, ExclusivityChecker
from .resolver import GrantCache

logger = structlog.get_logger()


# ============================================================
# STATES & DECISIONS
# ============================================================

class ArbitrationState(str, Enum):
    IDLE = "idle"
    DETECTED = "detected"
    CANCELLED = "cancelled"
    DUPLICATE_ACCEPTED = "duplicate_accepted"
    INCUMBENT_REPLACED = "incumbent_replaced"


class Decision(str, Enum):
    CANCEL = "cancel"
    ACCEPT_DUPLICATE = "accept_duplicate"
    REPLACE_INCUMBENT = "replace_incumbent"


_DECISION_STATES = {
    Decision.CANCEL: ArbitrationState.CANCELLED,
    Decision.ACCEPT_DUPLICATE: ArbitrationState.DUPLICATE_ACCEPTED,
    Decision.REPLACE_INCUMBENT: ArbitrationState.INCUMBENT_REPLACED,
}


class OperationKind(str, Enum):
    ASSIGN_ROLE = "assign_role"
    TRANSFER = "transfer"


# ============================================================
# HANDLES
# ============================================================

class PendingOperation(BaseModel):
    """
    The roster change waiting on a decision.

    ASSIGN_ROLE gives person_id a role in unit_id (their current unit).
    TRANSFER moves person_id into unit_id, carrying their roles along.
    """

    kind: OperationKind
    person_id: UUID
    role_id: UUID | None = None
    unit_id: UUID | None = None
    effective_date: date | None = None

    @model_validator(mode="after")
    def check_kind_fields(self) -> "PendingOperation":
        if self.kind is OperationKind.ASSIGN_ROLE and self.role_id is None:
            raise ValueError("assign_role requires role_id")
        if self.kind is OperationKind.TRANSFER and self.unit_id is None:
            raise ValueError("transfer requires unit_id")
        return self


class ResolvedConflict(BaseModel):
    """A decision already taken for one role of a multi-role operation."""

    role_id: UUID
    decision: Decision
    holder_assignment_ids: list[UUID]


class ArbitrationAttempt(BaseModel):
    attempt_id: UUID = Field(default_factory=uuid4)
    state: ArbitrationState = ArbitrationState.DETECTED
    operation: PendingOperation
    conflict: Conflict
    resolved: list[ResolvedConflict] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)


@dataclass
class ArbitrationResult:
    """
    Outcome of resolve() or execute().

    On DETECTED, attempt is the new handle to present and nothing was
    written. Otherwise the written records are attached.
    """
    state: ArbitrationState
    attempt: ArbitrationAttempt | None = None
    role_assignment: RoleAssignment | None = None
    unit_assignment: UnitAssignment | None = None
    ended_assignments: list[RoleAssignment] = field(default_factory=list)
    changed: bool = True

    @property
    def committed(self) -> bool:
        return self.state in (
            ArbitrationState.IDLE,
            ArbitrationState.DUPLICATE_ACCEPTED,
            ArbitrationState.INCUMBENT_REPLACED,
        )


class _Stale(Exception):
    """Conflict detection at commit time disagrees with the decisions taken."""

    def __init__(self, attempt: ArbitrationAttempt):
        self.attempt = attempt


# ============================================================
# ARBITER
# ============================================================

class ConflictArbiter:
    """Resolve exclusive-role conflicts and commit the outcome."""

    def __init__(
        self,
        db: AsyncSession,
        checker: ExclusivityChecker | None = None,
        grant_cache: GrantCache | None = None,
    ):
        self.db = db
        self.checker = checker or ExclusivityChecker(db)
        self.grant_cache = grant_cache
        self.people = PersonRepository(db)
        self.units = UnitRepository(db)
        self.unit_assignments = UnitAssignmentRepository(db)
        self.roles = RoleRepository(db)
        self.role_assignments = RoleAssignmentRepository(db)

    def begin_arbitration(
        self,
        conflict: Conflict,
        operation: PendingOperation,
        resolved: list[ResolvedConflict] | None = None,
    ) -> ArbitrationAttempt:
        """Open a Detected attempt. Writes nothing."""
        attempt = ArbitrationAttempt(
            operation=operation,
            conflict=conflict,
            resolved=list(resolved or []),
        )
        logger.info(
            "arbitration_started",
            attempt_id=str(attempt.attempt_id),
            operation=operation.kind.value,
            person_id=str(operation.person_id),
            role=conflict.role_name,
            incumbent=str(conflict.incumbent.person_id),
        )
        return attempt

    async def resolve(self, attempt: ArbitrationAttempt, decision: Decision) -> ArbitrationResult:
        """
        Apply a decision to a Detected attempt.

        Raises:
            AttemptNotPending: The attempt is not in Detected
            CommitFailed: The outcome could not be written
        """
        if attempt.state is not ArbitrationState.DETECTED:
            raise AttemptNotPending(attempt)

        if decision is Decision.CANCEL:
            logger.info("arbitration_cancelled", attempt_id=str(attempt.attempt_id))
            closed = attempt.model_copy(update={"state": ArbitrationState.CANCELLED})
            return ArbitrationResult(state=ArbitrationState.CANCELLED, attempt=closed)

        conflict = attempt.conflict
        resolved = [r for r in attempt.resolved if r.role_id != conflict.role_id]
        resolved.append(
            ResolvedConflict(
                role_id=conflict.role_id,
                decision=decision,
                holder_assignment_ids=sorted(conflict.holder_assignment_ids, key=str),
            )
        )

        result = await self._apply(attempt.operation, resolved, attempt)
        if result.state is ArbitrationState.DETECTED or not result.changed:
            return result

        result.state = _DECISION_STATES[decision]
        result.attempt = attempt.model_copy(update={"state": result.state})
        if decision is Decision.ACCEPT_DUPLICATE:
            logger.warning(
                "exclusive_role_duplicate_accepted",
                attempt_id=str(attempt.attempt_id),
                role=conflict.role_name,
                person_id=str(attempt.operation.person_id),
                incumbent=str(conflict.incumbent.person_id),
            )
        else:
            logger.info(
                "exclusive_role_incumbent_replaced",
                attempt_id=str(attempt.attempt_id),
                role=conflict.role_name,
                person_id=str(attempt.operation.person_id),
                ended=[str(a.id) for a in result.ended_assignments],
            )
        return result

    async def execute(self, operation: PendingOperation) -> ArbitrationResult:
        """
        Commit an operation no conflict was found for.

        Detection is repeated inside the transaction; a conflict that
        appeared meanwhile yields a Detected result and no writes.
        """
        return await self._apply(operation, [], None)

    # ------------------------------------------------------------
    # Transaction
    # ------------------------------------------------------------

    async def _apply(
        self,
        operation: PendingOperation,
        resolved: list[ResolvedConflict],
        attempt: ArbitrationAttempt | None,
    ) -> ArbitrationResult:
        try:
            result = await self._write(operation, resolved)
            await self.db.commit()
        except _Stale as stale:
            await self.db.rollback()
            return ArbitrationResult(state=ArbitrationState.DETECTED, attempt=stale.attempt)
        except (SQLAlchemyError, StoreUnavailable) as e:
            await self.db.rollback()
            logger.error(
                "arbitration_commit_failed",
                attempt_id=str(attempt.attempt_id) if attempt else None,
                person_id=str(operation.person_id),
                error=str(e),
                exc_info=True,
            )
            raise CommitFailed(attempt, "Could not commit roster change") from e
        except Exception:
            await self.db.rollback()
            raise

        touched = {operation.person_id}
        touched.update(a.person_id for a in result.ended_assignments)
        if self.grant_cache is not None:
            for person_id in touched:
                self.grant_cache.invalidate(person_id)
        return result

    async def _write(
        self,
        operation: PendingOperation,
        resolved: list[ResolvedConflict],
    ) -> ArbitrationResult:
        today = utc_today()
        effective = operation.effective_date or today

        person = await self.people.get_by_id(operation.person_id)
        if person is None:
            raise RecordNotFound("person", operation.person_id)

        membership = await self.unit_assignments.current_for_person(person.id)

        if operation.kind is OperationKind.ASSIGN_ROLE:
            role = await self.roles.get_by_id(operation.role_id)
            if role is None:
                raise RecordNotFound("role", operation.role_id)
            held = await self.role_assignments.current_for_person(person.id, today, role.id)
            if held:
                return ArbitrationResult(
                    state=ArbitrationState.IDLE, role_assignment=held[0], changed=False
                )
            roles = [role]
            target_unit_id = membership.unit_id if membership else None
        else:
            unit = await self.units.get_by_id(operation.unit_id)
            if unit is None:
                raise RecordNotFound("unit", operation.unit_id)
            if membership is not None and membership.unit_id == unit.id:
                return ArbitrationResult(
                    state=ArbitrationState.IDLE, unit_assignment=membership, changed=False
                )
            held_roles = await self.role_assignments.current_roles_for_person(person.id, today)
            roles = list({r.id: r for _, r in held_roles if r.is_exclusive}.values())
            target_unit_id = unit.id

        conflicts = await self._detect(roles, target_unit_id, person.id)
        decided = {r.role_id: r for r in resolved}
        self._revalidate(operation, conflicts, decided)

        ended: list[RoleAssignment] = []
        duplicate_roles: set[UUID] = set()
        for conflict in conflicts:
            decision = decided[conflict.role_id].decision
            if decision is Decision.REPLACE_INCUMBENT:
                rows = await self.role_assignments.get_by_ids(
                    [h.assignment_id for h in conflict.holders]
                )
                ended.extend(await self.role_assignments.end(rows, today))
            elif decision is Decision.ACCEPT_DUPLICATE:
                duplicate_roles.add(conflict.role_id)

        result = ArbitrationResult(state=ArbitrationState.IDLE, ended_assignments=ended)

        if operation.kind is OperationKind.ASSIGN_ROLE:
            result.role_assignment = await self.role_assignments.create(
                person_id=person.id,
                role_id=operation.role_id,
                unit_id=target_unit_id,
                effective_date=effective,
                accepted_duplicate=operation.role_id in duplicate_roles,
            )
        else:
            for open_membership in await self.unit_assignments.open_for_person(person.id):
                open_membership.end_date = effective
            result.unit_assignment = await self.unit_assignments.create(
                person_id=person.id,
                unit_id=target_unit_id,
                start_date=effective,
            )
            if duplicate_roles:
                for assignment, role in await self.role_assignments.current_roles_for_person(
                    person.id, today
                ):
                    if role.id in duplicate_roles:
                        assignment.accepted_duplicate = True
                await self.db.flush()

        logger.info(
            "roster_change_written",
            operation=operation.kind.value,
            person_id=str(person.id),
            target_unit_id=str(target_unit_id) if target_unit_id else None,
            ended=len(ended),
            duplicates=len(duplicate_roles),
        )
        return result

    async def _detect(
        self,
        roles: list[Role],
        target_unit_id: UUID | None,
        person_id: UUID,
    ) -> list[Conflict]:
        conflicts = []
        # Lock in id order so concurrent multi-role operations cannot deadlock
        for role in sorted(roles, key=lambda r: str(r.id)):
            conflict = await self.checker.find_conflict(
                role,
                target_unit_id,
                exclude_person_id=person_id,
                lock=True,
            )
            if conflict is not None:
                conflicts.append(conflict)
        order = {r.id: i for i, r in enumerate(roles)}
        conflicts.sort(key=lambda c: order[c.role_id])
        return conflicts

    def _revalidate(
        self,
        operation: PendingOperation,
        conflicts: list[Conflict],
        decided: dict[UUID, ResolvedConflict],
    ) -> None:
        """Raise _Stale unless every live conflict has a decision on the same holders."""

        def current(conflict: Conflict) -> bool:
            taken = decided.get(conflict.role_id)
            return taken is not None and (
                frozenset(taken.holder_assignment_ids) == conflict.holder_assignment_ids
            )

        pending = [c for c in conflicts if not current(c)]
        if not pending:
            return

        still_valid = [decided[c.role_id] for c in conflicts if current(c)]
        logger.info(
            "arbitration_stale",
            person_id=str(operation.person_id),
            role_id=str(pending[0].role_id),
            pending=len(pending),
        )
        raise _Stale(self.begin_arbitration(pending[0], operation, still_valid))
