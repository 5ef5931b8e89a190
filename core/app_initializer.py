"""Application initialization orchestrator."""

from __future__ import annotations

from typing import Optional

from config import Config, load_config
from core.logger import get_logger
from database import close_db_pool, init_db_pool, run_migrations
from database.connection import OptimizedSQLitePool
from waitlist import AdmissionProcessor

logger = get_logger(__name__)


class ApplicationInitializer:
    """Orchestrates application initialization and lifecycle."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or load_config()
        self.db_pool: Optional[OptimizedSQLitePool] = None
        self.processor: Optional[AdmissionProcessor] = None

    async def initialize(self) -> AdmissionProcessor:
        """Open the database, bring the schema up to date and build the processor."""
        await self._init_database()
        self.processor = AdmissionProcessor(
            pool=self.db_pool,
            first_priority_quota_ratio=self.config.first_priority_quota_ratio,
            second_priority_quota_ratio=self.config.second_priority_quota_ratio,
        )
        logger.info("✅ Admission engine ready")
        return self.processor

    async def cleanup(self) -> None:
        """Cleanup resources."""
        if self.db_pool is not None:
            await close_db_pool()
            self.db_pool = None
            logger.debug("Database pool closed")

    async def __aenter__(self) -> AdmissionProcessor:
        return await self.initialize()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cleanup()

    async def _init_database(self) -> None:
        """Initialize database pool and run migrations."""
        self.db_pool = await init_db_pool(
            database_path=self.config.database_path,
            pool_size=self.config.db_pool_size,
            busy_timeout_ms=self.config.db_busy_timeout,
        )
        await run_migrations(self.db_pool)
        logger.info(f"✅ Database initialized path={self.config.database_path}")
