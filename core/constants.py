"""Application-wide constants and enumerations."""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Optional


# Database constants
class DatabaseDefaults:
    """Default database configuration."""
    POOL_SIZE = 5
    BUSY_TIMEOUT = 5000  # milliseconds


# Lottery constants
class LotteryDefaults:
    """Lottery configuration."""
    SEED_RANDOM_BYTES = 32
    FIRST_PRIORITY_QUOTA_RATIO = 0.2
    SECOND_PRIORITY_QUOTA_RATIO = 0.1


class SkipReasons:
    """Reasons recorded on candidates that stay on the waitlist."""
    NO_ELIGIBLE_CLASS = "no eligible class / institution full"
    NOT_DRAWN = "not drawn in lottery"
    OUT_OF_ORDER = "admitted out of order (skipped {count} waiting)"


class ParticipantStatus(str, Enum):
    """Lifecycle status of an application participant."""
    UNDER_REVIEW = "under_review"
    NEEDS_DOCUMENTS = "needs_documents"
    REJECTED = "rejected"
    WAITING = "waiting"
    ADMITTED = "admitted"
    WITHDRAWN = "withdrawn"
    REVOKE_PENDING = "revoke_pending"


ALLOWED_TRANSITIONS: dict[ParticipantStatus, frozenset[ParticipantStatus]] = {
    ParticipantStatus.UNDER_REVIEW: frozenset({
        ParticipantStatus.NEEDS_DOCUMENTS,
        ParticipantStatus.REJECTED,
        ParticipantStatus.WAITING,
    }),
    ParticipantStatus.NEEDS_DOCUMENTS: frozenset({
        ParticipantStatus.UNDER_REVIEW,
        ParticipantStatus.REJECTED,
        ParticipantStatus.WAITING,
    }),
    ParticipantStatus.WAITING: frozenset({
        ParticipantStatus.ADMITTED,
        ParticipantStatus.REJECTED,
        ParticipantStatus.WITHDRAWN,
        ParticipantStatus.REVOKE_PENDING,
    }),
    ParticipantStatus.REVOKE_PENDING: frozenset({
        ParticipantStatus.WITHDRAWN,
        ParticipantStatus.WAITING,
    }),
    # Terminal for the application cycle
    ParticipantStatus.ADMITTED: frozenset(),
    ParticipantStatus.REJECTED: frozenset(),
    ParticipantStatus.WITHDRAWN: frozenset(),
}


class ParticipantRole(str, Enum):
    """Role of a person listed on an application."""
    CHILD = "child"
    PARENT = "parent"


class PriorityTier(IntEnum):
    """Admission priority tier derived from an application's identity type."""
    FIRST = 1
    SECOND = 2
    THIRD = 3

    @classmethod
    def from_identity_type(cls, identity_type: Optional[int]) -> "PriorityTier":
        if identity_type == 1:
            return cls.FIRST
        if identity_type == 2:
            return cls.SECOND
        return cls.THIRD


class AuditAction(str, Enum):
    """Kinds of decisions written to the admission log."""
    ENTER_WAITLIST = "enter_waitlist"
    ADMIT = "admit"
    MANUAL_ADMIT = "manual_admit"
    SKIP = "skip"
    STATUS_CHANGE = "status_change"
    LOTTERY_DRAW = "lottery_draw"
