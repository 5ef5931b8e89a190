"""Application-wide exception classes."""

from __future__ import annotations

from typing import Optional


class ApplicationError(Exception):
    """Base exception for all application errors."""
    pass


class ConfigurationError(ApplicationError):
    """Raised when configuration is invalid."""
    pass


class ValidationError(ApplicationError):
    """Raised when input data validation fails."""
    pass


class DatabaseError(ApplicationError):
    """Base exception for database-related errors."""
    pass


class ConnectionPoolError(DatabaseError):
    """Raised when database connection pool has issues."""
    pass


class RepositoryError(DatabaseError):
    """Raised when repository operation fails."""
    pass


class ServiceError(ApplicationError):
    """Base exception for service-level errors."""
    pass


class WaitlistError(ServiceError):
    """Base exception for waitlist and admission operations."""
    pass


class CapacityExceededError(WaitlistError):
    """Raised when a seat is requested in a class that is already full."""

    def __init__(self, class_id: int, capacity: Optional[int] = None) -> None:
        self.class_id = class_id
        self.capacity = capacity
        detail = f" (capacity {capacity})" if capacity is not None else ""
        super().__init__(f"Class {class_id} has no free seat{detail}")


class InvalidStateError(WaitlistError):
    """Raised when an operation is not allowed in the participant's current state."""
    pass


class InvalidTransitionError(InvalidStateError):
    """Raised when a status change is not part of the admission state machine."""

    def __init__(self, participant_id: int, current: str, requested: str) -> None:
        self.participant_id = participant_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Participant {participant_id}: transition {current} -> {requested} is not allowed"
        )


class NotFoundError(WaitlistError):
    """Raised when a referenced institution, class or participant does not exist."""

    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class OrderingInvariantViolation(WaitlistError):
    """Raised when waiting orders of an institution are not exactly 1..N.

    This signals a bug or out-of-band data corruption and is never retried.
    """
    pass


class LotteryError(ServiceError):
    """Base exception for lottery operations."""
    pass


class NoVacancyError(LotteryError):
    """Raised when a lottery draw is requested for an institution with no free seats."""
    pass
