"""Integration tests for dense waitlist ordering."""

import pytest

from core import ParticipantStatus
from core.exceptions import InvalidStateError, OrderingInvariantViolation
from database.base_repository import BaseRepository
from database.repositories import ParticipantRepository
from waitlist.queue_manager import QueueManager

pytestmark = pytest.mark.integration


async def _enter(db_pool, queue, participant_id):
    async with db_pool.transaction() as conn:
        participant = await ParticipantRepository.get(participant_id, conn)
        return await queue.enter_waiting(participant, conn)


async def _exit(db_pool, queue, participant_id, status=ParticipantStatus.ADMITTED):
    async with db_pool.transaction() as conn:
        participant = await ParticipantRepository.get(participant_id, conn)
        return await queue.exit_waiting(participant, status, conn)


async def _orders(db_pool, institution_id):
    waiting = await ParticipantRepository.load_waiting(institution_id)
    return {p.participant_id: p.current_order for p in waiting}


@pytest.mark.asyncio
async def test_enter_waiting_assigns_consecutive_orders(db_pool, seed):
    """Test that each new waiting child goes to the end of the queue."""
    queue = QueueManager()
    inst = await seed.institution()
    ids = [await seed.child(inst, f"c{i}") for i in range(3)]

    assigned = [await _enter(db_pool, queue, pid) for pid in ids]

    assert assigned == [1, 2, 3]
    assert await _orders(db_pool, inst) == dict(zip(ids, [1, 2, 3]))


@pytest.mark.asyncio
async def test_removing_middle_entry_closes_the_gap(db_pool, seed):
    """Test that orders [1..5] minus order 3 become [1..4]."""
    queue = QueueManager()
    inst = await seed.institution()
    ids = [await seed.child(inst, f"c{i}") for i in range(5)]
    for pid in ids:
        await _enter(db_pool, queue, pid)

    vacated = await _exit(db_pool, queue, ids[2])

    assert vacated == 3
    assert await _orders(db_pool, inst) == {ids[0]: 1, ids[1]: 2, ids[3]: 3, ids[4]: 4}
    removed = await ParticipantRepository.get(ids[2])
    assert removed.status is ParticipantStatus.ADMITTED
    assert removed.current_order is None


@pytest.mark.asyncio
async def test_next_order_counts_waiting_children_only(db_pool, seed):
    queue = QueueManager()
    inst = await seed.institution()
    first, second = await seed.child(inst, "a"), await seed.child(inst, "b")
    await _enter(db_pool, queue, first)
    await _enter(db_pool, queue, second)
    await _exit(db_pool, queue, second, ParticipantStatus.WITHDRAWN)

    async with db_pool.transaction() as conn:
        assert await queue.next_order(inst, conn) == 2


@pytest.mark.asyncio
async def test_queues_of_institutions_are_independent(db_pool, seed):
    queue = QueueManager()
    north, south = await seed.institution("North"), await seed.institution("South")
    n1, s1, n2 = await seed.child(north, "n1"), await seed.child(south, "s1"), await seed.child(north, "n2")

    assert await _enter(db_pool, queue, n1) == 1
    assert await _enter(db_pool, queue, s1) == 1
    assert await _enter(db_pool, queue, n2) == 2

    await _exit(db_pool, queue, n1)
    assert await _orders(db_pool, north) == {n2: 1}
    assert await _orders(db_pool, south) == {s1: 1}


@pytest.mark.asyncio
async def test_enter_waiting_twice_is_rejected(db_pool, seed):
    queue = QueueManager()
    inst = await seed.institution()
    pid = await seed.child(inst, "twice")
    await _enter(db_pool, queue, pid)

    with pytest.raises(InvalidStateError):
        await _enter(db_pool, queue, pid)
    assert await _orders(db_pool, inst) == {pid: 1}


@pytest.mark.asyncio
async def test_exit_waiting_requires_waiting_participant(db_pool, seed):
    queue = QueueManager()
    inst = await seed.institution()
    pid = await seed.child(inst, "never-queued")

    with pytest.raises(InvalidStateError):
        await _exit(db_pool, queue, pid)


@pytest.mark.asyncio
async def test_exit_waiting_without_order_is_rejected(db_pool, seed):
    """Test that a waiting row that lost its order is refused, not renumbered."""
    queue = QueueManager()
    inst = await seed.institution()
    pid = await seed.child(inst, "orderless")
    await _enter(db_pool, queue, pid)
    await BaseRepository.execute(
        "UPDATE application_participants SET current_order = NULL WHERE participant_id = ?", (pid,))

    with pytest.raises(InvalidStateError):
        await _exit(db_pool, queue, pid, ParticipantStatus.REJECTED)

    stored = await ParticipantRepository.get(pid)
    assert stored.status is ParticipantStatus.WAITING
    assert stored.current_order is None


@pytest.mark.asyncio
async def test_reset_then_assign_renumbers_in_given_sequence(db_pool, seed):
    queue = QueueManager()
    inst = await seed.institution()
    ids = [await seed.child(inst, f"c{i}") for i in range(4)]
    for pid in ids:
        await _enter(db_pool, queue, pid)

    reordered = [ids[2], ids[0], ids[3], ids[1]]
    async with db_pool.transaction() as conn:
        assert await queue.reset_orders(inst, conn) == 4
        await queue.assign_orders(inst, reordered, conn)

    assert await _orders(db_pool, inst) == {pid: i for i, pid in enumerate(reordered, start=1)}


@pytest.mark.asyncio
async def test_incomplete_assignment_is_detected_and_rolled_back(db_pool, seed):
    queue = QueueManager()
    inst = await seed.institution()
    ids = [await seed.child(inst, f"c{i}") for i in range(3)]
    for pid in ids:
        await _enter(db_pool, queue, pid)

    with pytest.raises(OrderingInvariantViolation):
        async with db_pool.transaction() as conn:
            await queue.reset_orders(inst, conn)
            await queue.assign_orders(inst, ids[:2], conn)

    assert await _orders(db_pool, inst) == dict(zip(ids, [1, 2, 3]))


@pytest.mark.asyncio
async def test_corrupted_orders_are_reported(db_pool, seed):
    """Test that a gap written behind the queue's back is caught."""
    queue = QueueManager()
    inst = await seed.institution()
    a, b = await seed.child(inst, "a"), await seed.child(inst, "b")
    await _enter(db_pool, queue, a)
    await _enter(db_pool, queue, b)
    await BaseRepository.execute(
        "UPDATE application_participants SET current_order = 7 WHERE participant_id = ?", (b,))

    async with db_pool.connection() as conn:
        with pytest.raises(OrderingInvariantViolation):
            await queue.verify_dense(inst, conn)
