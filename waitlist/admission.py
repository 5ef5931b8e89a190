"""Admission state machine and the operations staff workflows call."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import AsyncIterator, Callable, Dict, List, Optional

import aiosqlite

from core import (
    ALLOWED_TRANSITIONS,
    AuditAction,
    LotteryDefaults,
    ParticipantStatus,
    PriorityTier,
    SkipReasons,
    format_fields,
    get_logger,
)
from core.exceptions import (
    CapacityExceededError,
    InvalidStateError,
    InvalidTransitionError,
    NoVacancyError,
    NotFoundError,
)
from database.connection import OptimizedSQLitePool, get_db_pool
from database.filters import WaitlistFilter
from database.models import Participant, SchoolClass, WaitlistEntry
from database.repositories import (
    ClassRepository,
    InstitutionRepository,
    LotteryRunRepository,
    ParticipantRepository,
)
from waitlist.audit import AdmissionAudit
from waitlist.capacity import CapacityTracker
from waitlist.class_matcher import find_eligible_class, format_age, months_between
from waitlist.locks import KeyedLocks
from waitlist.lottery import LotteryGrouping, SecureLottery, TierQuotas
from waitlist.queue_manager import QueueManager

logger = get_logger(__name__)


@dataclass
class AdmissionDecision:
    participant_id: int
    tier: PriorityTier
    admitted: bool
    class_id: Optional[int] = None
    reason: Optional[str] = None


@dataclass
class AdmissionPassResult:
    institution_id: int
    admitted: List[AdmissionDecision] = field(default_factory=list)
    skipped: List[AdmissionDecision] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return len(self.admitted) + len(self.skipped)

    def admitted_in(self, tier: PriorityTier) -> int:
        return sum(1 for decision in self.admitted if decision.tier is tier)


@dataclass
class ManualAdmissionResult:
    participant_id: int
    class_id: int
    skipped_ahead: List[WaitlistEntry] = field(default_factory=list)

    @property
    def out_of_order(self) -> bool:
        return bool(self.skipped_ahead)

    @property
    def warning(self) -> Optional[str]:
        if not self.skipped_ahead:
            return None
        return f"{len(self.skipped_ahead)} waiting applicant(s) ahead were not admitted"


@dataclass
class LotteryDrawResult(AdmissionPassResult):
    run_id: int = 0
    seed: str = ""
    quotas: Optional[TierQuotas] = None
    not_drawn: List[int] = field(default_factory=list)
    waitlisted: int = 0


@dataclass
class ClassOccupancy:
    class_id: int
    class_name: str
    capacity: int
    current_students: int
    min_age_months: int
    max_age_months: int


@dataclass
class WaitlistStatistics:
    institution_id: int
    total_capacity: int
    total_enrolled: int
    waiting_by_tier: Dict[PriorityTier, int]
    admitted_by_tier: Dict[PriorityTier, int]
    quotas: TierQuotas
    classes: List[ClassOccupancy]

    @property
    def free_seats(self) -> int:
        return max(self.total_capacity - self.total_enrolled, 0)


class AdmissionProcessor:
    """Runs every waitlist-changing operation of an institution.

    Each operation that touches one participant is one transaction taken
    under the institution lock. An admission pass is a sequence of such
    transactions, one per candidate, so an interrupted pass leaves every
    decision made so far committed and can simply be run again.
    """

    def __init__(
        self,
        pool: Optional[OptimizedSQLitePool] = None,
        queue: Optional[QueueManager] = None,
        capacity: Optional[CapacityTracker] = None,
        grouping: Optional[LotteryGrouping] = None,
        audit: Optional[AdmissionAudit] = None,
        clock: Callable[[], datetime] = datetime.now,
        first_priority_quota_ratio: float = LotteryDefaults.FIRST_PRIORITY_QUOTA_RATIO,
        second_priority_quota_ratio: float = LotteryDefaults.SECOND_PRIORITY_QUOTA_RATIO,
    ) -> None:
        self._pool = pool
        self.queue = queue or QueueManager()
        self.capacity = capacity or CapacityTracker()
        self.grouping = grouping or LotteryGrouping()
        self.audit = audit or AdmissionAudit(clock)
        self._clock = clock
        self._institution_locks = KeyedLocks("institution")
        self.first_priority_quota_ratio = first_priority_quota_ratio
        self.second_priority_quota_ratio = second_priority_quota_ratio

    @property
    def pool(self) -> OptimizedSQLitePool:
        return self._pool or get_db_pool()

    def _today(self) -> date:
        return self._clock().date()

    @asynccontextmanager
    async def _unit_of_work(self, institution_id: int) -> AsyncIterator[aiosqlite.Connection]:
        async with self._institution_locks.hold(institution_id):
            async with self.pool.transaction() as conn:
                yield conn

    # ========== Waitlist entry and generic status changes ==========

    async def enter_waitlist(self, participant_id: int, institution_id: int) -> int:
        """Put a reviewed child at the end of the institution's waitlist.

        Returns:
            The assigned order

        Raises:
            NotFoundError: If the participant does not belong to the institution
            InvalidStateError: If the participant is already waiting or cannot wait
        """
        await self._participant_in(participant_id, institution_id)

        async with self._unit_of_work(institution_id) as conn:
            participant = await ParticipantRepository.get(participant_id, conn)
            old_status = participant.status
            if not participant.is_waiting and ParticipantStatus.WAITING not in ALLOWED_TRANSITIONS[old_status]:
                raise InvalidTransitionError(participant_id, old_status.value, ParticipantStatus.WAITING.value)

            order = await self.queue.enter_waiting(participant, conn)
            await ParticipantRepository.update(participant_id, {"review_date": self._clock()}, conn)
            await self.audit.record(
                conn, institution_id, AuditAction.ENTER_WAITLIST,
                participant_id=participant_id, old_status=old_status,
                new_status=ParticipantStatus.WAITING, details={"order": order},
            )

        logger.info("Waitlist entry " + format_fields(
            participant=participant_id, institution=institution_id, order=order))
        return order

    async def change_status(
        self,
        participant_id: int,
        new_status: ParticipantStatus,
        reason: Optional[str] = None,
        review_date: Optional[datetime] = None,
    ) -> Participant:
        """Move a participant along the admission state machine.

        Leaving the waitlist closes the gap in the queue; returning to it
        appends the participant at the end. Admission is not reachable from
        here because it needs a seat, see :meth:`manual_admit`.

        Raises:
            NotFoundError: If the participant does not exist
            InvalidTransitionError: If the transition is not allowed
        """
        institution_id = (await ParticipantRepository.get(participant_id)).institution_id

        async with self._unit_of_work(institution_id) as conn:
            participant = await ParticipantRepository.get(participant_id, conn)
            old_status = participant.status

            if (
                new_status not in ALLOWED_TRANSITIONS[old_status]
                or new_status is ParticipantStatus.ADMITTED
            ):
                raise InvalidTransitionError(participant_id, old_status.value, new_status.value)

            order = None
            if old_status is ParticipantStatus.WAITING:
                order = await self.queue.exit_waiting(participant, new_status, conn)
            elif new_status is ParticipantStatus.WAITING:
                order = await self.queue.enter_waiting(participant, conn)
            else:
                await ParticipantRepository.update(participant_id, {"status": new_status}, conn)

            participant.status = new_status
            participant.reason = reason
            participant.review_date = review_date or self._clock()
            await ParticipantRepository.update(
                participant_id,
                {"reason": participant.reason, "review_date": participant.review_date},
                conn,
            )
            await self.audit.record(
                conn, institution_id, AuditAction.STATUS_CHANGE,
                participant_id=participant_id, old_status=old_status,
                new_status=new_status, reason=reason,
                details={"order": order} if order is not None else None,
            )

        logger.info("Status changed " + format_fields(
            participant=participant_id, old=old_status, new=new_status, reason=reason))
        return participant

    # Name used by review workflows that always pass an explicit review date
    async def update_status_reason(
        self,
        participant_id: int,
        new_status: ParticipantStatus,
        reason: Optional[str],
        review_date: datetime,
    ) -> Participant:
        return await self.change_status(participant_id, new_status, reason, review_date)

    # ========== Admission ==========

    async def run_admission_pass(self, institution_id: int) -> AdmissionPassResult:
        """Admit waiting children tier by tier, in queue order, while seats fit.

        A candidate without an eligible class keeps waiting with a reason
        recorded; the pass then moves on, since a younger or older child
        further down may still fit another class.
        """
        await InstitutionRepository.get(institution_id)
        groups = await self.grouping.group_by_priority(institution_id)
        classes = await ClassRepository.load_classes(institution_id)
        result = AdmissionPassResult(institution_id=institution_id)

        logger.info("Admission pass started " + format_fields(
            institution=institution_id,
            classes=len(classes),
            free_seats=sum(c.free_seats for c in classes),
            waiting=sum(len(g) for g in groups.values()),
        ))

        for tier in PriorityTier:
            for candidate in groups[tier]:
                async with self._unit_of_work(institution_id) as conn:
                    participant = await ParticipantRepository.find(candidate.participant_id, conn)
                    if participant is None or not participant.is_waiting:
                        continue
                    decision = await self._try_admit(conn, participant, tier, AuditAction.ADMIT)

                if decision.admitted:
                    result.admitted.append(decision)
                else:
                    result.skipped.append(decision)

        logger.info("Admission pass finished " + format_fields(
            institution=institution_id,
            admitted=len(result.admitted),
            skipped=len(result.skipped),
        ))
        return result

    async def manual_admit(self, participant_id: int, class_id: int) -> ManualAdmissionResult:
        """Admit one waiting child into a class chosen by staff.

        Children ahead in the queue may be passed over; they are reported
        back and the admitted child's reason records how many.

        Raises:
            NotFoundError: If the participant or class does not exist
            InvalidStateError: If the participant is not waiting
            CapacityExceededError: If the class is full; nothing is changed
        """
        participant = await ParticipantRepository.get(participant_id)
        school_class = await ClassRepository.get(class_id)
        institution_id = participant.institution_id
        if school_class.institution_id != institution_id:
            raise NotFoundError("Class", f"{class_id} in institution {institution_id}")

        async with self._unit_of_work(institution_id) as conn:
            participant = await ParticipantRepository.get(participant_id, conn)
            if not participant.is_waiting:
                raise InvalidStateError(f"Participant {participant_id} is not on the waitlist")

            ahead = [
                entry for entry in await ParticipantRepository.search_waiting(
                    WaitlistFilter(institution_id=institution_id), conn)
                if entry.current_order < participant.current_order
            ]

            await self.capacity.reserve(class_id, conn)
            vacated = await self.queue.exit_waiting(participant, ParticipantStatus.ADMITTED, conn)

            reason = SkipReasons.OUT_OF_ORDER.format(count=len(ahead)) if ahead else None
            await ParticipantRepository.update(
                participant_id,
                {"class_id": class_id, "review_date": self._clock(), "reason": reason},
                conn,
            )
            await self.audit.record(
                conn, institution_id, AuditAction.MANUAL_ADMIT,
                participant_id=participant_id, old_status=ParticipantStatus.WAITING,
                new_status=ParticipantStatus.ADMITTED, reason=reason,
                details={
                    "class_id": class_id,
                    "order": vacated,
                    "skipped": [entry.participant_id for entry in ahead],
                },
            )

        fields = format_fields(participant=participant_id, class_id=class_id, skipped=len(ahead))
        if ahead:
            logger.warning("Manual admission out of queue order " + fields)
        else:
            logger.info("Manual admission " + fields)
        return ManualAdmissionResult(participant_id=participant_id, class_id=class_id, skipped_ahead=ahead)

    async def run_lottery_draw(self, institution_id: int, seed: Optional[str] = None) -> LotteryDrawResult:
        """Draw lots for the open seats and rebuild the waitlist from the draw.

        Runs as one transaction: the queue is reset, renumbered in lottery
        order, and drawn children are admitted where an eligible class has
        room. Everyone else keeps waiting in lottery order.

        Raises:
            NotFoundError: If the institution does not exist
            NoVacancyError: If the institution has no free seat
        """
        await InstitutionRepository.get(institution_id)
        lottery = SecureLottery(seed)

        async with self._unit_of_work(institution_id) as conn:
            total_capacity = await self.capacity.total_capacity(institution_id, conn)
            enrolled = await self.capacity.total_enrolled(institution_id, conn)
            if total_capacity - enrolled <= 0:
                raise NoVacancyError(
                    f"Institution {institution_id} has no free seat "
                    f"(capacity={total_capacity}, enrolled={enrolled})"
                )

            quotas = TierQuotas.compute(
                total_capacity,
                await ParticipantRepository.count_admitted_by_tier(institution_id, conn),
                self.first_priority_quota_ratio,
                self.second_priority_quota_ratio,
            )
            groups = await self.grouping.group_by_priority(institution_id, conn)
            outcome = lottery.draw(groups, quotas)

            await self.queue.reset_orders(institution_id, conn)
            await self.queue.assign_orders(
                institution_id, [p.participant_id for p in outcome.lottery_order], conn)

            result = LotteryDrawResult(institution_id=institution_id, seed=lottery.seed, quotas=quotas)
            for tier in PriorityTier:
                for drawn in outcome.selected[tier]:
                    # Orders shift after every admission, so re-read before deciding
                    participant = await ParticipantRepository.get(drawn.participant_id, conn)
                    decision = await self._try_admit(conn, participant, tier, AuditAction.ADMIT)
                    if decision.admitted:
                        result.admitted.append(decision)
                    else:
                        result.skipped.append(decision)

            for participant in outcome.not_selected:
                await ParticipantRepository.update(
                    participant.participant_id, {"reason": SkipReasons.NOT_DRAWN}, conn)
                result.not_drawn.append(participant.participant_id)

            result.waitlisted = len(await self.queue.waiting_orders(institution_id, conn))
            result.run_id = await LotteryRunRepository.save(
                institution_id, lottery.seed, len(result.admitted), result.waitlisted,
                self._clock(), conn,
            )
            await self.audit.record(
                conn, institution_id, AuditAction.LOTTERY_DRAW,
                details={
                    "run_id": result.run_id,
                    "seed": lottery.seed,
                    "admitted": [d.participant_id for d in result.admitted],
                    "remaining_quota": {tier.name: quotas.remaining[tier] for tier in PriorityTier},
                },
            )

        logger.info("Lottery draw finished " + format_fields(
            institution=institution_id, run=result.run_id, admitted=len(result.admitted),
            waitlisted=result.waitlisted))
        return result

    async def _try_admit(
        self,
        conn: aiosqlite.Connection,
        participant: Participant,
        tier: PriorityTier,
        action: AuditAction,
    ) -> AdmissionDecision:
        """Admit a waiting child into the first eligible class, or record why not."""
        classes = await ClassRepository.load_classes(participant.institution_id, conn)
        school_class = find_eligible_class(participant.birth_date, classes, self._today())

        if school_class is not None:
            try:
                await self.capacity.reserve(school_class.class_id, conn)
            except CapacityExceededError as e:
                logger.warning("Seat vanished before reservation " + format_fields(
                    participant=participant.participant_id, class_id=e.class_id))
                school_class = None

        if school_class is None:
            return await self._record_skip(conn, participant, tier, SkipReasons.NO_ELIGIBLE_CLASS)

        vacated = await self.queue.exit_waiting(participant, ParticipantStatus.ADMITTED, conn)
        await ParticipantRepository.update(
            participant.participant_id,
            {"class_id": school_class.class_id, "review_date": self._clock(), "reason": None},
            conn,
        )
        await self.audit.record(
            conn, participant.institution_id, action,
            participant_id=participant.participant_id,
            old_status=ParticipantStatus.WAITING, new_status=ParticipantStatus.ADMITTED,
            details={"class_id": school_class.class_id, "order": vacated, "tier": tier.value},
        )
        logger.info("Admitted " + format_fields(
            participant=participant.participant_id, class_id=school_class.class_id,
            tier=tier.value, order=vacated))
        return AdmissionDecision(
            participant_id=participant.participant_id,
            tier=tier,
            admitted=True,
            class_id=school_class.class_id,
        )

    async def _record_skip(
        self,
        conn: aiosqlite.Connection,
        participant: Participant,
        tier: PriorityTier,
        reason: str,
    ) -> AdmissionDecision:
        await ParticipantRepository.update(participant.participant_id, {"reason": reason}, conn)
        await self.audit.record(
            conn, participant.institution_id, AuditAction.SKIP,
            participant_id=participant.participant_id,
            old_status=ParticipantStatus.WAITING, new_status=ParticipantStatus.WAITING,
            reason=reason, details={"order": participant.current_order, "tier": tier.value},
        )
        logger.info("Skipped " + format_fields(
            participant=participant.participant_id, tier=tier.value,
            order=participant.current_order, reason=reason))
        return AdmissionDecision(
            participant_id=participant.participant_id, tier=tier, admitted=False, reason=reason)

    # ========== Read side ==========

    async def get_waitlist_snapshot(
        self, institution_id: int, name: Optional[str] = None
    ) -> List[WaitlistEntry]:
        """Waiting children in queue order, with their age as of today."""
        await InstitutionRepository.get(institution_id)
        entries = await ParticipantRepository.search_waiting(
            WaitlistFilter(institution_id=institution_id, name=name))

        today = self._today()
        for entry in entries:
            if entry.birth_date is not None:
                entry.age_months = months_between(entry.birth_date, today)
                entry.age_label = format_age(entry.age_months)
        return entries

    async def get_waitlist_statistics(self, institution_id: int) -> WaitlistStatistics:
        await InstitutionRepository.get(institution_id)
        groups = await self.grouping.group_by_priority(institution_id)
        classes = await ClassRepository.load_classes(institution_id)
        admitted = await ParticipantRepository.count_admitted_by_tier(institution_id)
        total_capacity = sum(c.capacity for c in classes)

        return WaitlistStatistics(
            institution_id=institution_id,
            total_capacity=total_capacity,
            total_enrolled=sum(c.current_students for c in classes),
            waiting_by_tier={tier: len(groups[tier]) for tier in PriorityTier},
            admitted_by_tier=admitted,
            quotas=TierQuotas.compute(
                total_capacity, admitted,
                self.first_priority_quota_ratio, self.second_priority_quota_ratio,
            ),
            classes=[_occupancy(c) for c in classes],
        )

    async def history(self, participant_id: int):
        return await self.audit.history(participant_id)

    async def _participant_in(self, participant_id: int, institution_id: int) -> Participant:
        participant = await ParticipantRepository.get(participant_id)
        if participant.institution_id != institution_id:
            raise NotFoundError("Participant", f"{participant_id} in institution {institution_id}")
        return participant


def _occupancy(school_class: SchoolClass) -> ClassOccupancy:
    return ClassOccupancy(
        class_id=school_class.class_id,
        class_name=school_class.class_name,
        capacity=school_class.capacity,
        current_students=school_class.current_students,
        min_age_months=school_class.min_age_months,
        max_age_months=school_class.max_age_months,
    )
