"""Per-class seat accounting."""

from __future__ import annotations

from typing import Optional

import aiosqlite

from core.exceptions import CapacityExceededError
from core.logger import format_fields, get_logger
from database.models import SchoolClass
from database.repositories import ClassRepository
from waitlist.locks import KeyedLocks

logger = get_logger(__name__)


class CapacityTracker:
    """Owns ``current_students`` of every class.

    ``reserve`` must be called with the connection of an open transaction so
    that the capacity check and the increment commit together.
    """

    def __init__(self, locks: Optional[KeyedLocks] = None) -> None:
        self._locks = locks or KeyedLocks("class")

    async def has_capacity(self, class_id: int, conn: Optional[aiosqlite.Connection] = None) -> bool:
        school_class = await ClassRepository.get(class_id, conn)
        return school_class.has_capacity

    async def reserve(self, class_id: int, conn: aiosqlite.Connection) -> SchoolClass:
        """Take one seat in the class.

        Returns:
            The class with its updated counter

        Raises:
            NotFoundError: If the class does not exist
            CapacityExceededError: If the class is full; nothing is written
        """
        async with self._locks.hold(class_id):
            school_class = await ClassRepository.get(class_id, conn)
            if not school_class.has_capacity:
                raise CapacityExceededError(class_id, school_class.capacity)

            enrolled = school_class.current_students + 1
            if not await ClassRepository.persist_counters(class_id, enrolled, conn):
                raise CapacityExceededError(class_id, school_class.capacity)

            school_class.current_students = enrolled
            logger.debug(
                "Seat reserved "
                + format_fields(class_id=class_id, enrolled=enrolled, capacity=school_class.capacity)
            )
            return school_class

    async def total_capacity(self, institution_id: int, conn: Optional[aiosqlite.Connection] = None) -> int:
        return await ClassRepository.total_capacity(institution_id, conn)

    async def total_enrolled(self, institution_id: int, conn: Optional[aiosqlite.Connection] = None) -> int:
        return await ClassRepository.total_enrolled(institution_id, conn)

    async def free_seats(self, institution_id: int, conn: Optional[aiosqlite.Connection] = None) -> int:
        capacity = await self.total_capacity(institution_id, conn)
        enrolled = await self.total_enrolled(institution_id, conn)
        return max(capacity - enrolled, 0)
