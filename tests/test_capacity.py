"""Integration tests for per-class seat accounting."""

import asyncio
import sqlite3

import pytest

from core.exceptions import CapacityExceededError, NotFoundError
from database.base_repository import BaseRepository
from database.repositories import ClassRepository
from waitlist.capacity import CapacityTracker

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_reserve_takes_one_seat(db_pool, seed):
    tracker = CapacityTracker()
    inst = await seed.institution()
    class_id = await seed.school_class(inst, capacity=2)

    async with db_pool.transaction() as conn:
        updated = await tracker.reserve(class_id, conn)

    assert updated.current_students == 1
    assert (await ClassRepository.get(class_id)).current_students == 1
    assert await tracker.has_capacity(class_id)


@pytest.mark.asyncio
async def test_reserve_on_full_class_fails_without_writing(db_pool, seed):
    """Test that a full class rejects the reservation and keeps its counter."""
    tracker = CapacityTracker()
    inst = await seed.institution()
    class_id = await seed.school_class(inst, capacity=1, current_students=1)

    with pytest.raises(CapacityExceededError) as exc_info:
        async with db_pool.transaction() as conn:
            await tracker.reserve(class_id, conn)

    assert exc_info.value.class_id == class_id
    assert (await ClassRepository.get(class_id)).current_students == 1
    assert not await tracker.has_capacity(class_id)


@pytest.mark.asyncio
async def test_reserve_unknown_class(db_pool, seed):
    tracker = CapacityTracker()
    with pytest.raises(NotFoundError):
        async with db_pool.transaction() as conn:
            await tracker.reserve(999, conn)


@pytest.mark.asyncio
async def test_concurrent_reservations_never_overbook(db_pool, seed):
    """Test that only one of two racing reservations gets the last seat."""
    tracker = CapacityTracker()
    inst = await seed.institution()
    class_id = await seed.school_class(inst, capacity=3, current_students=2)

    async def attempt():
        async with db_pool.transaction() as conn:
            return await tracker.reserve(class_id, conn)

    results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], CapacityExceededError)
    assert (await ClassRepository.get(class_id)).current_students == 3


@pytest.mark.asyncio
async def test_persist_counters_refuses_overflow(db_pool, seed):
    inst = await seed.institution()
    class_id = await seed.school_class(inst, capacity=2)

    assert await ClassRepository.persist_counters(class_id, 2)
    assert not await ClassRepository.persist_counters(class_id, 3)
    assert not await ClassRepository.persist_counters(class_id, -1)
    assert (await ClassRepository.get(class_id)).current_students == 2


@pytest.mark.asyncio
async def test_schema_rejects_overflow_written_directly(db_pool, seed):
    inst = await seed.institution()
    class_id = await seed.school_class(inst, capacity=2)

    with pytest.raises(sqlite3.IntegrityError):
        await BaseRepository.execute(
            "UPDATE classes SET current_students = 5 WHERE class_id = ?", (class_id,))


@pytest.mark.asyncio
async def test_institution_totals(db_pool, seed):
    tracker = CapacityTracker()
    inst = await seed.institution()
    other = await seed.institution("Other")
    await seed.school_class(inst, capacity=10, current_students=4)
    await seed.school_class(inst, capacity=5, current_students=5, min_age_months=36, max_age_months=72)
    await seed.school_class(other, capacity=20, current_students=1)

    assert await tracker.total_capacity(inst) == 15
    assert await tracker.total_enrolled(inst) == 9
    assert await tracker.free_seats(inst) == 6
