"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import date
from typing import Optional

import pytest
import pytest_asyncio

from core import ParticipantStatus
from database import close_db_pool, init_db_pool, run_migrations
from database.repositories import (
    ApplicationRepository,
    ClassRepository,
    InstitutionRepository,
    ParticipantRepository,
)
from tests.helpers import TODAY, born_months_ago, fixed_clock
from waitlist import AdmissionProcessor


class Seeder:
    """Creates rows through the repositories the engine itself reads."""

    async def institution(self, name: str = "Sunflower") -> int:
        return await InstitutionRepository.create(name)

    async def school_class(
        self,
        institution_id: int,
        capacity: int = 10,
        min_age_months: int = 0,
        max_age_months: int = 36,
        current_students: int = 0,
        class_name: Optional[str] = None,
    ) -> int:
        return await ClassRepository.create(
            institution_id,
            class_name or f"{min_age_months}-{max_age_months}m",
            capacity,
            min_age_months,
            max_age_months,
            current_students,
        )

    async def child(
        self,
        institution_id: int,
        name: str,
        age_months: int = 18,
        identity_type: Optional[int] = None,
        status: ParticipantStatus = ParticipantStatus.UNDER_REVIEW,
    ) -> int:
        application_id = await ApplicationRepository.create(institution_id, identity_type)
        return await ParticipantRepository.create(
            application_id,
            national_id=f"ID-{name}",
            name=name,
            birth_date=born_months_ago(age_months),
            status=status,
        )


@pytest_asyncio.fixture
async def db_pool(tmp_path):
    """Fresh migrated database for each test."""
    pool = await init_db_pool(
        database_path=str(tmp_path / "childcare_test.sqlite"),
        pool_size=3,
        busy_timeout_ms=2000,
    )
    await run_migrations(pool)
    yield pool
    await close_db_pool()


@pytest_asyncio.fixture
async def seed(db_pool) -> Seeder:
    return Seeder()


@pytest_asyncio.fixture
async def processor(db_pool) -> AdmissionProcessor:
    return AdmissionProcessor(pool=db_pool, clock=fixed_clock)


@pytest.fixture
def today() -> date:
    return TODAY
