"""Database schema migrations."""

from __future__ import annotations

from core.logger import get_logger

from .connection import OptimizedSQLitePool

logger = get_logger(__name__)


SCHEMA_SQL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS institutions (
        institution_id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS applications (
        application_id INTEGER PRIMARY KEY AUTOINCREMENT,
        institution_id INTEGER NOT NULL,
        identity_type INTEGER,
        application_date TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY(institution_id) REFERENCES institutions(institution_id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_applications_institution ON applications(institution_id);",
    """
    CREATE TABLE IF NOT EXISTS classes (
        class_id INTEGER PRIMARY KEY AUTOINCREMENT,
        institution_id INTEGER NOT NULL,
        class_name TEXT NOT NULL,
        capacity INTEGER NOT NULL CHECK (capacity >= 0),
        current_students INTEGER NOT NULL DEFAULT 0,
        min_age_months INTEGER NOT NULL,
        max_age_months INTEGER NOT NULL,
        CHECK (current_students >= 0 AND current_students <= capacity),
        CHECK (min_age_months >= 0 AND min_age_months < max_age_months),
        FOREIGN KEY(institution_id) REFERENCES institutions(institution_id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_classes_institution ON classes(institution_id, min_age_months);",
    """
    CREATE TABLE IF NOT EXISTS application_participants (
        participant_id INTEGER PRIMARY KEY AUTOINCREMENT,
        application_id INTEGER NOT NULL,
        participant_type TEXT NOT NULL DEFAULT 'child',
        national_id TEXT NOT NULL,
        name TEXT NOT NULL,
        birth_date DATE,
        status TEXT NOT NULL DEFAULT 'under_review',
        current_order INTEGER,
        class_id INTEGER,
        reason TEXT,
        review_date TIMESTAMP,
        CHECK (current_order IS NULL OR current_order >= 0),
        FOREIGN KEY(application_id) REFERENCES applications(application_id),
        FOREIGN KEY(class_id) REFERENCES classes(class_id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_participants_application ON application_participants(application_id);",
    "CREATE INDEX IF NOT EXISTS idx_participants_status_order ON application_participants(status, current_order);",
    """
    CREATE TABLE IF NOT EXISTS lottery_runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        institution_id INTEGER NOT NULL,
        seed TEXT NOT NULL,
        executed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        admitted_count INTEGER NOT NULL,
        waitlisted_count INTEGER NOT NULL,
        FOREIGN KEY(institution_id) REFERENCES institutions(institution_id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_lottery_runs_institution ON lottery_runs(institution_id, executed_at);",
    """
    CREATE TABLE IF NOT EXISTS admission_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        institution_id INTEGER NOT NULL,
        participant_id INTEGER,
        action TEXT NOT NULL,
        old_status TEXT,
        new_status TEXT,
        reason TEXT,
        details TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_admission_log_participant ON admission_log(participant_id, id);",
    "CREATE INDEX IF NOT EXISTS idx_admission_log_institution ON admission_log(institution_id, action);",
)


async def run_migrations(pool: OptimizedSQLitePool) -> None:
    async with pool.transaction() as conn:
        for statement in SCHEMA_SQL:
            await conn.execute(statement)
    logger.info(f"Schema up to date statements={len(SCHEMA_SQL)}")
