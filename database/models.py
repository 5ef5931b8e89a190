"""Typed rows returned by the data access layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Optional

from core.constants import ParticipantRole, ParticipantStatus, PriorityTier


@dataclass(slots=True)
class Institution:
    institution_id: int
    name: str


@dataclass(slots=True)
class Participant:
    participant_id: int
    application_id: int
    institution_id: int
    role: ParticipantRole
    national_id: str
    name: str
    birth_date: Optional[date]
    status: ParticipantStatus
    current_order: Optional[int]
    class_id: Optional[int]
    tier: PriorityTier
    reason: Optional[str] = None
    review_date: Optional[datetime] = None

    @property
    def is_waiting(self) -> bool:
        return self.status is ParticipantStatus.WAITING


@dataclass(slots=True)
class SchoolClass:
    class_id: int
    institution_id: int
    class_name: str
    capacity: int
    current_students: int
    min_age_months: int
    max_age_months: int

    @property
    def has_capacity(self) -> bool:
        return self.current_students < self.capacity

    @property
    def free_seats(self) -> int:
        return max(self.capacity - self.current_students, 0)

    def accepts_age(self, age_months: int) -> bool:
        """Age bounds are half-open: ``[min_age_months, max_age_months)``."""
        return self.min_age_months <= age_months < self.max_age_months


@dataclass(slots=True)
class WaitlistEntry:
    """One row of a waitlist snapshot."""
    participant_id: int
    application_id: int
    institution_id: int
    name: str
    birth_date: Optional[date]
    tier: PriorityTier
    current_order: int
    age_months: Optional[int] = None
    age_label: str = ""
    reason: Optional[str] = None


@dataclass(slots=True)
class LotteryRun:
    id: int
    institution_id: int
    seed: str
    executed_at: datetime
    admitted_count: int
    waitlisted_count: int


@dataclass(slots=True)
class AdmissionLogEntry:
    id: int
    institution_id: int
    participant_id: Optional[int]
    action: str
    old_status: Optional[str]
    new_status: Optional[str]
    reason: Optional[str]
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
