"""Shared test data builders."""

from __future__ import annotations

from datetime import date, datetime

from database.models import Participant, SchoolClass
from core import ParticipantRole, ParticipantStatus, PriorityTier

# Every age in the suite is measured against this instant
FIXED_NOW = datetime(2024, 9, 1, 9, 30)
TODAY = FIXED_NOW.date()


def fixed_clock() -> datetime:
    return FIXED_NOW


def born_months_ago(months: int) -> date:
    """Birth date that makes a child exactly ``months`` old on TODAY."""
    year, month = divmod(TODAY.year * 12 + (TODAY.month - 1) - months, 12)
    return date(year, month + 1, TODAY.day)


def make_class(
    class_id: int = 1,
    capacity: int = 10,
    current_students: int = 0,
    min_age_months: int = 0,
    max_age_months: int = 36,
    institution_id: int = 1,
) -> SchoolClass:
    return SchoolClass(
        class_id=class_id,
        institution_id=institution_id,
        class_name=f"class-{class_id}",
        capacity=capacity,
        current_students=current_students,
        min_age_months=min_age_months,
        max_age_months=max_age_months,
    )


def make_participant(
    participant_id: int,
    tier: PriorityTier = PriorityTier.THIRD,
    order: int = 1,
    age_months: int = 18,
) -> Participant:
    return Participant(
        participant_id=participant_id,
        application_id=participant_id,
        institution_id=1,
        role=ParticipantRole.CHILD,
        national_id=f"ID-{participant_id}",
        name=f"child-{participant_id}",
        birth_date=born_months_ago(age_months),
        status=ParticipantStatus.WAITING,
        current_order=order,
        class_id=None,
        tier=tier,
    )
