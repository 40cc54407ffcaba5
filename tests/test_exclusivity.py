"""
Tests for exclusive role conflict detection.
"""

from datetime import timedelta

import pytest

from roster_access.core.access.exclusivity import ExclusivityChecker
from roster_access.core.access.scope import ExclusivityScope
from roster_access.core.errors import InvariantViolation
from roster_access.utils.timezone import utc_today


@pytest.mark.asyncio
async def test_active_holder_in_same_unit_conflicts(db, org, sq12):
    co = await org.role("Commanding Officer")
    alice = await org.person("Alice", unit=sq12)
    held = await org.assign(alice, co)
    bob = await org.person("Bob", unit=sq12)

    conflict = await ExclusivityChecker(db).find_conflict(co, sq12.id, exclude_person_id=bob.id)

    assert conflict is not None
    assert conflict.incumbent.person_id == alice.id
    assert conflict.incumbent.display_name == "Alice"
    assert conflict.incumbent.assignment_id == held.id
    assert conflict.role_name == "Commanding Officer"
    assert conflict.message == "Alice currently holds Commanding Officer"


@pytest.mark.asyncio
async def test_holder_in_other_unit_does_not_conflict(db, org, sq12, sq14):
    co = await org.role("Commanding Officer")
    alice = await org.person("Alice", unit=sq14)
    await org.assign(alice, co)

    assert await ExclusivityChecker(db).find_conflict(co, sq12.id) is None


@pytest.mark.asyncio
async def test_parent_scope_spans_sibling_units(db, org, wing, sq12, sq14):
    other_wing = await org.wing("WING-B")
    sq20 = await org.squadron(other_wing, "SQ-20")
    cag = await org.role("Wing Commander", ExclusivityScope.PARENT)
    alice = await org.person("Alice", unit=sq14)
    await org.assign(alice, cag)

    checker = ExclusivityChecker(db)
    conflict = await checker.find_conflict(cag, sq12.id)

    assert conflict is not None
    assert conflict.incumbent.unit_id == sq14.id
    assert await checker.find_conflict(cag, sq20.id) is None
    assert set(await checker.boundary(cag, sq12.id)) == {sq12.id, sq14.id}


@pytest.mark.asyncio
async def test_non_exclusive_role_never_conflicts(db, org, sq12):
    instructor = await org.role("Instructor", ExclusivityScope.NONE)
    alice = await org.person("Alice", unit=sq12)
    await org.assign(alice, instructor)

    assert await ExclusivityChecker(db).find_conflict(instructor, sq12.id) is None


@pytest.mark.asyncio
async def test_missing_target_unit_never_conflicts(db, org, sq12):
    co = await org.role("Commanding Officer")
    alice = await org.person("Alice", unit=sq12)
    await org.assign(alice, co)

    assert await ExclusivityChecker(db).find_conflict(co, None) is None


@pytest.mark.asyncio
async def test_inactive_holder_does_not_conflict(db, org, sq12):
    co = await org.role("Commanding Officer")
    retired = await org.person("Retired", unit=sq12, active=False)
    await org.assign(retired, co)

    assert await ExclusivityChecker(db).find_conflict(co, sq12.id) is None


@pytest.mark.asyncio
async def test_ended_and_expiring_assignments(db, org, sq12):
    co = await org.role("Commanding Officer")
    alice = await org.person("Alice", unit=sq12)
    ended = await org.assign(alice, co)
    ended.end_date = utc_today()
    bob = await org.person("Bob", unit=sq12)
    expiring = await org.assign(bob, co)
    expiring.end_date = utc_today() + timedelta(days=5)
    await db.commit()

    conflict = await ExclusivityChecker(db).find_conflict(co, sq12.id)

    assert conflict is not None
    assert [h.person_id for h in conflict.holders] == [bob.id]


@pytest.mark.asyncio
async def test_subject_is_excluded(db, org, sq12):
    co = await org.role("Commanding Officer")
    alice = await org.person("Alice", unit=sq12)
    await org.assign(alice, co)

    assert await ExclusivityChecker(db).find_conflict(co, sq12.id, exclude_person_id=alice.id) is None


@pytest.mark.asyncio
async def test_accepted_duplicates_are_listed_behind_incumbent(db, org, sq12):
    co = await org.role("Commanding Officer")
    alice = await org.person("Alice", unit=sq12)
    bob = await org.person("Bob", unit=sq12)
    await org.assign(alice, co, effective_date=utc_today() - timedelta(days=60))
    await org.assign(bob, co, effective_date=utc_today() - timedelta(days=10), accepted_duplicate=True)

    conflict = await ExclusivityChecker(db).find_conflict(co, sq12.id, lock=True)

    assert conflict is not None
    assert conflict.incumbent.person_id == alice.id
    assert [h.person_id for h in conflict.holders] == [alice.id, bob.id]


@pytest.mark.asyncio
async def test_two_primary_holders_is_an_invariant_violation(db, org, sq12):
    co = await org.role("Commanding Officer")
    alice = await org.person("Alice", unit=sq12)
    bob = await org.person("Bob", unit=sq12)
    await org.assign(alice, co)
    await org.assign(bob, co)

    with pytest.raises(InvariantViolation) as exc_info:
        await ExclusivityChecker(db).find_conflict(co, sq12.id)

    assert set(exc_info.value.holder_ids) == {alice.id, bob.id}
