"""Core application components."""

from core.logger import setup_logger, get_logger, format_fields
from core.constants import (
    ALLOWED_TRANSITIONS,
    AuditAction,
    DatabaseDefaults,
    LotteryDefaults,
    ParticipantRole,
    ParticipantStatus,
    PriorityTier,
    SkipReasons,
)
from core.exceptions import (
    ApplicationError,
    CapacityExceededError,
    ConfigurationError,
    DatabaseError,
    InvalidStateError,
    InvalidTransitionError,
    LotteryError,
    NoVacancyError,
    NotFoundError,
    OrderingInvariantViolation,
    RepositoryError,
    ServiceError,
    ValidationError,
    WaitlistError,
)

__all__ = [
    # Logging
    'setup_logger',
    'get_logger',
    'format_fields',
    # Constants
    'ALLOWED_TRANSITIONS',
    'AuditAction',
    'DatabaseDefaults',
    'LotteryDefaults',
    'ParticipantRole',
    'ParticipantStatus',
    'PriorityTier',
    'SkipReasons',
    # Exceptions
    'ApplicationError',
    'CapacityExceededError',
    'ConfigurationError',
    'DatabaseError',
    'InvalidStateError',
    'InvalidTransitionError',
    'LotteryError',
    'NoVacancyError',
    'NotFoundError',
    'OrderingInvariantViolation',
    'RepositoryError',
    'ServiceError',
    'ValidationError',
    'WaitlistError',
]
