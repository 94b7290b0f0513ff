"""Durable key-value store on SQLite.

Records are JSON documents addressed by path-like keys ("sessions/{id}",
"sessions/{id}/responses/{rid}", ...). Each operation opens its own
connection, so nothing is held open across awaits beyond a single logical
read or write.

Writes accept an optional expected version for optimistic concurrency:
    - None: unconditional create-or-overwrite
    - 0: the key must not exist yet
    - n: the stored version must be exactly n
A mismatch raises VersionConflictError and leaves the record untouched.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite
import structlog

from wda.core.exceptions import RecordNotFoundError, VersionConflictError
from wda.core.timeutil import utc_now

log = structlog.get_logger(__name__)

Record = Dict[str, Any]


def _normalize(key: str) -> str:
    key = key.strip("/")
    if not key or "//" in key:
        raise ValueError(f"Invalid store key: {key!r}")
    return key


def parent_of(key: str) -> str:
    """Key minus its last segment ("" for top-level keys)."""
    head, _, _ = _normalize(key).rpartition("/")
    return head


class SqliteStore:
    """Async JSON record store backed by the records table."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)

    async def write(
        self, key: str, record: Record, expected_version: Optional[int] = None
    ) -> int:
        """Create or overwrite a record.

        Args:
            key: Record key
            record: JSON-serializable mapping
            expected_version: Optimistic concurrency check (see module docstring)

        Returns:
            The record's new version

        Raises:
            VersionConflictError: Stored version differs from expected_version
        """
        key = _normalize(key)
        value = json.dumps(record, ensure_ascii=False)
        now = utc_now().isoformat()

        async with aiosqlite.connect(self.db_path) as db:
            if expected_version is None:
                await db.execute(
                    "INSERT INTO records (key, parent, value, version, created_at, updated_at) "
                    "VALUES (?, ?, ?, 1, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET "
                    "value = excluded.value, version = records.version + 1, "
                    "updated_at = excluded.updated_at",
                    (key, parent_of(key), value, now, now),
                )
            elif expected_version == 0:
                cursor = await db.execute(
                    "INSERT OR IGNORE INTO records "
                    "(key, parent, value, version, created_at, updated_at) "
                    "VALUES (?, ?, ?, 1, ?, ?)",
                    (key, parent_of(key), value, now, now),
                )
                if cursor.rowcount == 0:
                    log.warning("store_version_conflict", key=key, expected=0)
                    raise VersionConflictError(f"Record already exists: {key}")
            else:
                cursor = await db.execute(
                    "UPDATE records SET value = ?, version = version + 1, updated_at = ? "
                    "WHERE key = ? AND version = ?",
                    (value, now, key, expected_version),
                )
                if cursor.rowcount == 0:
                    log.warning(
                        "store_version_conflict", key=key, expected=expected_version
                    )
                    raise VersionConflictError(
                        f"Record {key} was modified concurrently "
                        f"(expected version {expected_version})"
                    )

            cursor = await db.execute(
                "SELECT version FROM records WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            await db.commit()

        log.debug("store_write", key=key, version=row[0])
        return row[0]

    async def read_with_version(self, key: str) -> Tuple[Record, int]:
        """Read a record and its current version.

        Raises:
            RecordNotFoundError: Key is absent
        """
        key = _normalize(key)
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT value, version FROM records WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
        if row is None:
            raise RecordNotFoundError(f"Record not found: {key}")
        return json.loads(row[0]), row[1]

    async def read(self, key: str) -> Record:
        record, _ = await self.read_with_version(key)
        return record

    async def list(self, prefix: str) -> List[str]:
        """Keys directly under prefix, in creation order."""
        parent = _normalize(prefix)
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT key FROM records WHERE parent = ? ORDER BY rowid", (parent,)
            )
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def delete(self, key: str) -> bool:
        """Delete a record. Returns False if it did not exist."""
        key = _normalize(key)
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM records WHERE key = ?", (key,))
            await db.commit()
            deleted = cursor.rowcount > 0
        log.debug("store_delete", key=key, deleted=deleted)
        return deleted

    async def exists(self, key: str) -> bool:
        key = _normalize(key)
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT 1 FROM records WHERE key = ?", (key,))
            row = await cursor.fetchone()
        return row is not None
