"""Database access layer helpers."""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

import aiosqlite

from core.constants import ParticipantRole, ParticipantStatus, PriorityTier
from core.exceptions import NotFoundError, RepositoryError
from database.base_repository import BaseRepository
from database.filters import WaitlistFilter
from database.models import (
    AdmissionLogEntry,
    Institution,
    LotteryRun,
    Participant,
    SchoolClass,
    WaitlistEntry,
)

_PARTICIPANT_COLUMNS = """
    ap.participant_id, ap.application_id, a.institution_id, ap.participant_type,
    ap.national_id, ap.name, ap.birth_date, ap.status, ap.current_order,
    ap.class_id, a.identity_type, ap.reason, ap.review_date
"""

_CLASS_COLUMNS = """
    class_id, institution_id, class_name, capacity, current_students,
    min_age_months, max_age_months
"""


def _to_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _row_to_participant(row: aiosqlite.Row) -> Participant:
    return Participant(
        participant_id=row["participant_id"],
        application_id=row["application_id"],
        institution_id=row["institution_id"],
        role=ParticipantRole(row["participant_type"]),
        national_id=row["national_id"],
        name=row["name"],
        birth_date=_to_date(row["birth_date"]),
        status=ParticipantStatus(row["status"]),
        current_order=row["current_order"],
        class_id=row["class_id"],
        tier=PriorityTier.from_identity_type(row["identity_type"]),
        reason=row["reason"],
        review_date=_to_datetime(row["review_date"]),
    )


def _row_to_class(row: aiosqlite.Row) -> SchoolClass:
    return SchoolClass(
        class_id=row["class_id"],
        institution_id=row["institution_id"],
        class_name=row["class_name"],
        capacity=row["capacity"],
        current_students=row["current_students"],
        min_age_months=row["min_age_months"],
        max_age_months=row["max_age_months"],
    )


class InstitutionRepository(BaseRepository):
    """Repository for institutions."""

    @staticmethod
    async def create(name: str, conn: Optional[aiosqlite.Connection] = None) -> int:
        return await BaseRepository.insert(
            "INSERT INTO institutions (name) VALUES (?)", (name,), conn
        )

    @staticmethod
    async def get(institution_id: int, conn: Optional[aiosqlite.Connection] = None) -> Institution:
        """Get an institution or raise NotFoundError."""
        row = await BaseRepository.fetch_one(
            "SELECT institution_id, name FROM institutions WHERE institution_id=?",
            (institution_id,),
            conn,
        )
        if row is None:
            raise NotFoundError("Institution", institution_id)
        return Institution(institution_id=row["institution_id"], name=row["name"])


class ApplicationRepository(BaseRepository):
    """Repository for applications (one family's request to one institution)."""

    @staticmethod
    async def create(
        institution_id: int,
        identity_type: Optional[int] = None,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> int:
        return await BaseRepository.insert(
            "INSERT INTO applications (institution_id, identity_type) VALUES (?, ?)",
            (institution_id, identity_type),
            conn,
        )


class ParticipantRepository(BaseRepository):
    """Repository for application participants.

    ``current_order`` is deliberately absent from every write here; the
    queue manager owns that column.
    """

    # Columns the admission state machine may set explicitly
    STATE_COLUMNS = frozenset({"status", "reason", "review_date", "class_id"})
    # Descriptive columns editable with "None means unchanged" semantics
    DETAIL_COLUMNS = ("name", "national_id", "birth_date")

    @staticmethod
    async def create(
        application_id: int,
        national_id: str,
        name: str,
        birth_date: Optional[date],
        role: ParticipantRole = ParticipantRole.CHILD,
        status: ParticipantStatus = ParticipantStatus.UNDER_REVIEW,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> int:
        if status is ParticipantStatus.WAITING:
            raise RepositoryError("Participants enter the waitlist through the queue manager")
        return await BaseRepository.insert(
            """
            INSERT INTO application_participants
                (application_id, participant_type, national_id, name, birth_date, status)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                application_id,
                role.value,
                national_id,
                name,
                birth_date.isoformat() if birth_date else None,
                status.value,
            ),
            conn,
        )

    @staticmethod
    async def find(
        participant_id: int, conn: Optional[aiosqlite.Connection] = None
    ) -> Optional[Participant]:
        row = await BaseRepository.fetch_one(
            f"""
            SELECT {_PARTICIPANT_COLUMNS}
            FROM application_participants ap
            JOIN applications a ON a.application_id = ap.application_id
            WHERE ap.participant_id=?
            """,
            (participant_id,),
            conn,
        )
        return _row_to_participant(row) if row else None

    @staticmethod
    async def get(participant_id: int, conn: Optional[aiosqlite.Connection] = None) -> Participant:
        """Get a participant or raise NotFoundError."""
        participant = await ParticipantRepository.find(participant_id, conn)
        if participant is None:
            raise NotFoundError("Participant", participant_id)
        return participant

    @staticmethod
    async def load_waiting(
        institution_id: int, conn: Optional[aiosqlite.Connection] = None
    ) -> List[Participant]:
        """Waiting children of an institution, by current order."""
        where, params = WaitlistFilter(institution_id=institution_id).to_sql()
        rows = await BaseRepository.fetch_all(
            f"""
            SELECT {_PARTICIPANT_COLUMNS}
            FROM application_participants ap
            JOIN applications a ON a.application_id = ap.application_id
            WHERE {where}
            ORDER BY ap.current_order, ap.participant_id
            """,
            params,
            conn,
        )
        return [_row_to_participant(row) for row in rows]

    @staticmethod
    async def load_waiting_by_priority(
        institution_id: int, conn: Optional[aiosqlite.Connection] = None
    ) -> List[Participant]:
        """Waiting children ordered by priority tier, then current order."""
        where, params = WaitlistFilter(institution_id=institution_id).to_sql()
        rows = await BaseRepository.fetch_all(
            f"""
            SELECT {_PARTICIPANT_COLUMNS}
            FROM application_participants ap
            JOIN applications a ON a.application_id = ap.application_id
            WHERE {where}
            ORDER BY CASE a.identity_type WHEN 1 THEN 1 WHEN 2 THEN 2 ELSE 3 END,
                     ap.current_order, ap.participant_id
            """,
            params,
            conn,
        )
        return [_row_to_participant(row) for row in rows]

    @staticmethod
    async def search_waiting(
        criteria: WaitlistFilter, conn: Optional[aiosqlite.Connection] = None
    ) -> List[WaitlistEntry]:
        where, params = criteria.to_sql()
        rows = await BaseRepository.fetch_all(
            f"""
            SELECT ap.participant_id, ap.application_id, a.institution_id, ap.name,
                   ap.birth_date, a.identity_type, ap.current_order, ap.reason
            FROM application_participants ap
            JOIN applications a ON a.application_id = ap.application_id
            WHERE {where}
            ORDER BY a.institution_id, ap.current_order
            """,
            params,
            conn,
        )
        return [
            WaitlistEntry(
                participant_id=row["participant_id"],
                application_id=row["application_id"],
                institution_id=row["institution_id"],
                name=row["name"],
                birth_date=_to_date(row["birth_date"]),
                tier=PriorityTier.from_identity_type(row["identity_type"]),
                current_order=row["current_order"],
                reason=row["reason"],
            )
            for row in rows
        ]

    @staticmethod
    async def update(
        participant_id: int,
        changes: Mapping[str, Any],
        conn: Optional[aiosqlite.Connection] = None,
    ) -> None:
        """Write the given state columns verbatim, None included."""
        unknown = set(changes) - ParticipantRepository.STATE_COLUMNS
        if unknown:
            raise RepositoryError(f"Columns not writable here: {sorted(unknown)}")
        if not changes:
            return

        columns = sorted(changes)
        assignments = ", ".join(f"{column}=?" for column in columns)
        params = [_to_db_value(changes[column]) for column in columns]
        params.append(participant_id)

        updated = await BaseRepository.execute(
            f"UPDATE application_participants SET {assignments} WHERE participant_id=?",
            params,
            conn,
        )
        if updated == 0:
            raise NotFoundError("Participant", participant_id)

    @staticmethod
    async def merge_details(
        participant_id: int,
        name: Optional[str] = None,
        national_id: Optional[str] = None,
        birth_date: Optional[date] = None,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> Participant:
        """Update descriptive fields; a None argument keeps the stored value."""
        values = {"name": name, "national_id": national_id, "birth_date": birth_date}
        assignments = ", ".join(
            f"{column}=COALESCE(?, {column})" for column in ParticipantRepository.DETAIL_COLUMNS
        )
        params = [_to_db_value(values[column]) for column in ParticipantRepository.DETAIL_COLUMNS]
        params.append(participant_id)

        updated = await BaseRepository.execute(
            f"UPDATE application_participants SET {assignments} WHERE participant_id=?",
            params,
            conn,
        )
        if updated == 0:
            raise NotFoundError("Participant", participant_id)
        return await ParticipantRepository.get(participant_id, conn)

    @staticmethod
    async def count_admitted_by_tier(
        institution_id: int, conn: Optional[aiosqlite.Connection] = None
    ) -> Dict[PriorityTier, int]:
        rows = await BaseRepository.fetch_all(
            """
            SELECT a.identity_type, COUNT(*) AS cnt
            FROM application_participants ap
            JOIN applications a ON a.application_id = ap.application_id
            WHERE a.institution_id=? AND ap.participant_type=? AND ap.status=?
            GROUP BY a.identity_type
            """,
            (institution_id, ParticipantRole.CHILD.value, ParticipantStatus.ADMITTED.value),
            conn,
        )
        counts = {tier: 0 for tier in PriorityTier}
        for row in rows:
            counts[PriorityTier.from_identity_type(row["identity_type"])] += row["cnt"]
        return counts


class ClassRepository(BaseRepository):
    """Repository for classes and their enrollment counters."""

    @staticmethod
    async def create(
        institution_id: int,
        class_name: str,
        capacity: int,
        min_age_months: int,
        max_age_months: int,
        current_students: int = 0,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> int:
        return await BaseRepository.insert(
            """
            INSERT INTO classes
                (institution_id, class_name, capacity, current_students, min_age_months, max_age_months)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (institution_id, class_name, capacity, current_students, min_age_months, max_age_months),
            conn,
        )

    @staticmethod
    async def get(class_id: int, conn: Optional[aiosqlite.Connection] = None) -> SchoolClass:
        """Get a class or raise NotFoundError."""
        row = await BaseRepository.fetch_one(
            f"SELECT {_CLASS_COLUMNS} FROM classes WHERE class_id=?", (class_id,), conn
        )
        if row is None:
            raise NotFoundError("Class", class_id)
        return _row_to_class(row)

    @staticmethod
    async def load_classes(
        institution_id: int, conn: Optional[aiosqlite.Connection] = None
    ) -> List[SchoolClass]:
        """Classes of an institution, youngest age band first."""
        rows = await BaseRepository.fetch_all(
            f"""
            SELECT {_CLASS_COLUMNS} FROM classes
            WHERE institution_id=?
            ORDER BY min_age_months, class_id
            """,
            (institution_id,),
            conn,
        )
        return [_row_to_class(row) for row in rows]

    @staticmethod
    async def persist_counters(
        class_id: int, current_students: int, conn: Optional[aiosqlite.Connection] = None
    ) -> bool:
        """Store a new enrollment count; returns False if it would exceed capacity."""
        updated = await BaseRepository.execute(
            """
            UPDATE classes SET current_students=?
            WHERE class_id=? AND ? >= 0 AND ? <= capacity
            """,
            (current_students, class_id, current_students, current_students),
            conn,
        )
        return updated == 1

    @staticmethod
    async def total_capacity(institution_id: int, conn: Optional[aiosqlite.Connection] = None) -> int:
        value = await BaseRepository.fetch_value(
            "SELECT COALESCE(SUM(capacity), 0) FROM classes WHERE institution_id=?",
            (institution_id,),
            conn,
        )
        return int(value or 0)

    @staticmethod
    async def total_enrolled(institution_id: int, conn: Optional[aiosqlite.Connection] = None) -> int:
        value = await BaseRepository.fetch_value(
            "SELECT COALESCE(SUM(current_students), 0) FROM classes WHERE institution_id=?",
            (institution_id,),
            conn,
        )
        return int(value or 0)


class LotteryRunRepository(BaseRepository):
    """Repository for lottery draw records."""

    @staticmethod
    async def save(
        institution_id: int,
        seed: str,
        admitted_count: int,
        waitlisted_count: int,
        executed_at: datetime,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> int:
        return await BaseRepository.insert(
            """
            INSERT INTO lottery_runs
                (institution_id, seed, executed_at, admitted_count, waitlisted_count)
            VALUES (?, ?, ?, ?, ?)
            """,
            (institution_id, seed, executed_at.isoformat(sep=" "), admitted_count, waitlisted_count),
            conn,
        )

    @staticmethod
    async def list_runs(
        institution_id: int, limit: int = 50, conn: Optional[aiosqlite.Connection] = None
    ) -> List[LotteryRun]:
        rows = await BaseRepository.fetch_all(
            """
            SELECT id, institution_id, seed, executed_at, admitted_count, waitlisted_count
            FROM lottery_runs WHERE institution_id=?
            ORDER BY id DESC LIMIT ?
            """,
            (institution_id, limit),
            conn,
        )
        return [
            LotteryRun(
                id=row["id"],
                institution_id=row["institution_id"],
                seed=row["seed"],
                executed_at=_to_datetime(row["executed_at"]),
                admitted_count=row["admitted_count"],
                waitlisted_count=row["waitlisted_count"],
            )
            for row in rows
        ]


class AdmissionLogRepository(BaseRepository):
    """Repository for the admission decision log."""

    @staticmethod
    async def append(
        institution_id: int,
        participant_id: Optional[int],
        action: str,
        old_status: Optional[str],
        new_status: Optional[str],
        reason: Optional[str],
        details: Optional[Mapping[str, Any]],
        created_at: datetime,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> int:
        return await BaseRepository.insert(
            """
            INSERT INTO admission_log
                (institution_id, participant_id, action, old_status, new_status, reason, details, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                institution_id,
                participant_id,
                action,
                old_status,
                new_status,
                reason,
                json.dumps(dict(details), default=str) if details else None,
                created_at.isoformat(sep=" "),
            ),
            conn,
        )

    @staticmethod
    async def for_participant(
        participant_id: int, conn: Optional[aiosqlite.Connection] = None
    ) -> List[AdmissionLogEntry]:
        rows = await BaseRepository.fetch_all(
            """
            SELECT id, institution_id, participant_id, action, old_status, new_status,
                   reason, details, created_at
            FROM admission_log WHERE participant_id=?
            ORDER BY id
            """,
            (participant_id,),
            conn,
        )
        return [
            AdmissionLogEntry(
                id=row["id"],
                institution_id=row["institution_id"],
                participant_id=row["participant_id"],
                action=row["action"],
                old_status=row["old_status"],
                new_status=row["new_status"],
                reason=row["reason"],
                details=json.loads(row["details"]) if row["details"] else {},
                created_at=_to_datetime(row["created_at"]),
            )
            for row in rows
        ]


def _to_db_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (ParticipantStatus, ParticipantRole)):
        return value.value
    return value
