"""
SQLite database initialization.

Uses aiosqlite for async SQLite access. Schema is defined in schema.sql
(idempotent, no migrations).
"""

from pathlib import Path

import aiosqlite
import structlog

from wda.core.config import settings

log = structlog.get_logger(__name__)

SCHEMA_FILE = Path(__file__).parent / "schema.sql"


async def init_database(db_path: Path | None = None) -> Path:
    """
    Initialize database from schema.

    Args:
        db_path: Optional path to database file. Uses settings.database_path if not provided.

    Returns:
        Path of the initialized database

    Creates the database file if it doesn't exist. Existing databases are
    left intact (CREATE TABLE IF NOT EXISTS).
    """
    db_path = Path(db_path or settings.database_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    log.info("initializing_database", path=str(db_path))

    if not SCHEMA_FILE.exists():
        log.error("schema_file_not_found", path=str(SCHEMA_FILE))
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_FILE}")

    async with aiosqlite.connect(db_path) as db:
        # WAL for better concurrent read performance
        await db.execute("PRAGMA journal_mode = WAL")
        await db.executescript(SCHEMA_FILE.read_text())
        await db.commit()

    log.info("database_initialized", path=str(db_path))
    return db_path


async def check_database_health(db_path: Path | None = None) -> dict:
    """
    Check database health.

    Returns:
        Dict with health status, record count and integrity result.
    """
    db_path = Path(db_path or settings.database_path)
    try:
        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM records")
            row = await cursor.fetchone()
            record_count = row[0] if row else 0

            cursor = await db.execute("PRAGMA integrity_check")
            integrity = await cursor.fetchone()

            return {
                "status": "healthy",
                "record_count": record_count,
                "integrity": integrity[0] if integrity else "unknown",
                "path": str(db_path),
            }
    except aiosqlite.Error as e:
        log.error("database_health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}
