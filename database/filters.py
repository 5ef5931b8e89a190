"""Typed query filters compiled to parameterized SQL."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from core.constants import ParticipantRole, ParticipantStatus, PriorityTier


@dataclass(frozen=True)
class WaitlistFilter:
    """Optional criteria for waitlist queries; unset fields do not filter."""
    institution_id: Optional[int] = None
    name: Optional[str] = None
    tier: Optional[PriorityTier] = None

    def to_sql(self) -> Tuple[str, List[Any]]:
        """Return a WHERE clause (without the keyword) and its parameters.

        Column aliases: ``ap`` for application_participants, ``a`` for
        applications.
        """
        clauses = ["ap.status = ?", "ap.participant_type = ?"]
        params: List[Any] = [ParticipantStatus.WAITING.value, ParticipantRole.CHILD.value]

        if self.institution_id is not None:
            clauses.append("a.institution_id = ?")
            params.append(self.institution_id)

        if self.name and self.name.strip():
            clauses.append("ap.name LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(self.name.strip())}%")

        if self.tier is PriorityTier.FIRST:
            clauses.append("a.identity_type = 1")
        elif self.tier is PriorityTier.SECOND:
            clauses.append("a.identity_type = 2")
        elif self.tier is PriorityTier.THIRD:
            clauses.append("(a.identity_type IS NULL OR a.identity_type NOT IN (1, 2))")

        return " AND ".join(clauses), params


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
