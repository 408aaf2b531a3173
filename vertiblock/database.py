"""asyncpg pool lifecycle and schema migrations."""

from pathlib import Path
from typing import List, Optional

import asyncpg
import structlog

from vertiblock.config import get_settings

logger = structlog.get_logger(__name__)

# Process-wide pool, opened by the app lifespan
_pool: Optional[asyncpg.Pool] = None

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"

_MIGRATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    filename TEXT PRIMARY KEY,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


async def get_pool() -> asyncpg.Pool:
    """Return the open pool.

    Raises:
        RuntimeError: If init_database() has not run
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_database() first.")
    return _pool


async def init_database() -> asyncpg.Pool:
    """Open the pool sized by DB_POOL_MIN_SIZE / DB_POOL_MAX_SIZE."""
    global _pool

    if _pool is not None:
        return _pool

    settings = get_settings()

    try:
        _pool = await asyncpg.create_pool(
            settings.postgres_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout,
        )
    except (OSError, asyncpg.PostgresError) as e:
        logger.error("database_pool_creation_failed", error=str(e))
        raise

    logger.info(
        "database_pool_created",
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    return _pool


async def close_database() -> None:
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


async def run_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> List[str]:
    """Apply pending SQL migrations in file-name order.

    Applied file names are recorded in ``schema_migrations``; each file runs
    in its own transaction together with its bookkeeping row.

    Returns:
        Names of the files applied by this call
    """
    pool = await get_pool()

    migration_files = sorted(migrations_dir.glob("*.sql")) if migrations_dir.exists() else []
    if not migration_files:
        logger.warning("no_migrations_found", path=str(migrations_dir))
        return []

    applied: List[str] = []
    async with pool.acquire() as conn:
        await conn.execute(_MIGRATIONS_TABLE)
        done = {row["filename"] for row in await conn.fetch("SELECT filename FROM schema_migrations")}

        for migration_file in migration_files:
            if migration_file.name in done:
                continue
            try:
                async with conn.transaction():
                    await conn.execute(migration_file.read_text())
                    await conn.execute(
                        "INSERT INTO schema_migrations (filename) VALUES ($1)",
                        migration_file.name,
                    )
            except asyncpg.PostgresError as e:
                logger.error("migration_failed", file=migration_file.name, error=str(e))
                raise
            logger.info("migration_applied", file=migration_file.name)
            applied.append(migration_file.name)

    return applied


async def health_check() -> bool:
    """True when the pool can run ``SELECT 1``."""
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return False
