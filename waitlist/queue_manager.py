"""Dense waitlist ordering per institution."""

from __future__ import annotations

from typing import List, Sequence

import aiosqlite

from core.constants import ParticipantRole, ParticipantStatus
from core.exceptions import InvalidStateError, OrderingInvariantViolation
from core.logger import format_fields, get_logger
from database.base_repository import BaseRepository
from database.models import Participant

logger = get_logger(__name__)

# Waiting children of one institution; parameters: status, role, institution
_WAITING_SCOPE = """
    status = ? AND participant_type = ?
    AND application_id IN (SELECT application_id FROM applications WHERE institution_id = ?)
"""


class QueueManager:
    """Maintains ``current_order`` of waiting children.

    Among the waiting children of one institution the orders are always
    exactly ``1..N``. Every method takes the connection of an open
    transaction; the caller holds the institution lock.
    """

    @staticmethod
    def _scope(institution_id: int) -> tuple:
        return (ParticipantStatus.WAITING.value, ParticipantRole.CHILD.value, institution_id)

    async def next_order(self, institution_id: int, conn: aiosqlite.Connection) -> int:
        value = await BaseRepository.fetch_value(
            f"SELECT COALESCE(MAX(current_order), 0) + 1 FROM application_participants WHERE {_WAITING_SCOPE}",
            self._scope(institution_id),
            conn,
        )
        return int(value or 1)

    async def enter_waiting(self, participant: Participant, conn: aiosqlite.Connection) -> int:
        """Append the participant to the end of its institution's queue.

        Returns:
            The assigned order

        Raises:
            InvalidStateError: If the participant is already waiting or is not a child
        """
        if participant.is_waiting:
            raise InvalidStateError(f"Participant {participant.participant_id} is already waiting")
        if participant.role is not ParticipantRole.CHILD:
            raise InvalidStateError(f"Participant {participant.participant_id} is not a child applicant")

        order = await self.next_order(participant.institution_id, conn)
        await BaseRepository.execute(
            "UPDATE application_participants SET status=?, current_order=? WHERE participant_id=?",
            (ParticipantStatus.WAITING.value, order, participant.participant_id),
            conn,
        )
        await self.verify_dense(participant.institution_id, conn)

        participant.status = ParticipantStatus.WAITING
        participant.current_order = order
        logger.debug(
            "Entered waitlist "
            + format_fields(participant=participant.participant_id,
                            institution=participant.institution_id, order=order)
        )
        return order

    async def exit_waiting(
        self,
        participant: Participant,
        new_status: ParticipantStatus,
        conn: aiosqlite.Connection,
    ) -> int:
        """Take the participant off the queue and close the gap it leaves.

        Every waiting child of the same institution ordered after it moves up
        by one.

        Returns:
            The order the participant held

        Raises:
            InvalidStateError: If the participant is not waiting or holds no order
            OrderingInvariantViolation: If the queue is not dense afterwards
        """
        if not participant.is_waiting or participant.current_order is None:
            raise InvalidStateError(
                f"Participant {participant.participant_id} is not on the waitlist"
            )
        if new_status is ParticipantStatus.WAITING:
            raise InvalidStateError("Exit status must differ from waiting")

        vacated = participant.current_order
        await BaseRepository.execute(
            "UPDATE application_participants SET status=?, current_order=NULL WHERE participant_id=?",
            (new_status.value, participant.participant_id),
            conn,
        )
        moved = await BaseRepository.execute(
            f"""
            UPDATE application_participants SET current_order = current_order - 1
            WHERE {_WAITING_SCOPE} AND current_order > ?
            """,
            (*self._scope(participant.institution_id), vacated),
            conn,
        )
        await self.verify_dense(participant.institution_id, conn)

        participant.status = new_status
        participant.current_order = None
        logger.debug(
            "Left waitlist "
            + format_fields(participant=participant.participant_id, status=new_status,
                            vacated=vacated, renumbered=moved)
        )
        return vacated

    async def reset_orders(self, institution_id: int, conn: aiosqlite.Connection) -> int:
        """Zero every waiting order of the institution.

        Leaves the queue non-dense; only valid right before
        :meth:`assign_orders` in the same transaction.
        """
        return await BaseRepository.execute(
            f"UPDATE application_participants SET current_order = 0 WHERE {_WAITING_SCOPE}",
            self._scope(institution_id),
            conn,
        )

    async def assign_orders(
        self,
        institution_id: int,
        participant_ids: Sequence[int],
        conn: aiosqlite.Connection,
    ) -> None:
        """Number the given waiting children 1..N in the given sequence.

        Raises:
            OrderingInvariantViolation: If the sequence is not exactly the
                institution's waiting set
        """
        await BaseRepository.execute_many(
            f"""
            UPDATE application_participants SET current_order = ?
            WHERE participant_id = ? AND {_WAITING_SCOPE}
            """,
            [
                (order, participant_id, *self._scope(institution_id))
                for order, participant_id in enumerate(participant_ids, start=1)
            ],
            conn,
        )
        await self.verify_dense(institution_id, conn)

    async def waiting_orders(self, institution_id: int, conn: aiosqlite.Connection) -> List[int]:
        return await BaseRepository.fetch_column(
            f"""
            SELECT current_order FROM application_participants
            WHERE {_WAITING_SCOPE}
            ORDER BY current_order
            """,
            self._scope(institution_id),
            conn,
        )

    async def verify_dense(self, institution_id: int, conn: aiosqlite.Connection) -> None:
        orders = await self.waiting_orders(institution_id, conn)
        expected = list(range(1, len(orders) + 1))
        if orders != expected:
            logger.error(
                "Waitlist order corrupted "
                + format_fields(institution=institution_id, orders=orders[:20])
            )
            raise OrderingInvariantViolation(
                f"Institution {institution_id}: waiting orders {orders} are not 1..{len(orders)}"
            )
