"""Admission decision log."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional

import aiosqlite

from core.constants import AuditAction, ParticipantStatus
from database.models import AdmissionLogEntry
from database.repositories import AdmissionLogRepository


class AdmissionAudit:
    """Writes one log row per admission decision.

    Rows are written on the caller's transaction, so a decision and its log
    entry commit or roll back together.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock

    async def record(
        self,
        conn: aiosqlite.Connection,
        institution_id: int,
        action: AuditAction,
        participant_id: Optional[int] = None,
        old_status: Optional[ParticipantStatus] = None,
        new_status: Optional[ParticipantStatus] = None,
        reason: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> int:
        return await AdmissionLogRepository.append(
            institution_id=institution_id,
            participant_id=participant_id,
            action=action.value,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value if new_status else None,
            reason=reason,
            details=details,
            created_at=self._clock(),
            conn=conn,
        )

    async def history(self, participant_id: int) -> List[AdmissionLogEntry]:
        return await AdmissionLogRepository.for_participant(participant_id)
