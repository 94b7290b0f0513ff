"""
Checkpoint and recovery for sessions.

A checkpoint is two records:
- backups/{session_id}/{checkpoint_id}: the full session, serialized
- checkpoints/{session_id}/{checkpoint_id}: a descriptor with snapshot
  counters, reason, backup key, size and SHA-256 checksum

The backup is written first. If the descriptor write then fails, the backup
is removed and CheckpointError is raised, so a listed checkpoint always has
its backup. Pruning old checkpoints is explicit (cleanup_checkpoints); the
service never schedules it itself.
"""

import hashlib
import json
from typing import Any, Dict, List, Optional

import aiosqlite
import structlog

from wda.core.config import survey_config
from wda.core.exceptions import (
    CheckpointError,
    RecordNotFoundError,
    ValidationError,
    WdaError,
)
from wda.core.identifiers import new_id
from wda.core.timeutil import utc_now
from wda.domain.models.checkpoint import (
    Checkpoint,
    CheckpointMetadata,
    CheckpointReason,
    CheckpointSnapshot,
)
from wda.domain.models.session import Session
from wda.persistence.store import SqliteStore

log = structlog.get_logger(__name__)

CHECKPOINTS_PREFIX = "checkpoints"
BACKUPS_PREFIX = "backups"

# Failures that abort a checkpoint write
_WRITE_ERRORS = (aiosqlite.Error, OSError, WdaError)


def _canonical_json(data: Dict[str, Any]) -> bytes:
    return json.dumps(
        data, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


class CheckpointService:
    """Creates, lists, restores and prunes session checkpoints."""

    def __init__(self, store: SqliteStore, keep_count: Optional[int] = None):
        self.store = store
        self.keep_count = (
            survey_config.checkpoints.keep_count if keep_count is None else keep_count
        )

    async def create_checkpoint(
        self, session: Session, reason: CheckpointReason
    ) -> Checkpoint:
        """
        Snapshot a session.

        Args:
            session: Session exactly as it should be restored later
            reason: Why the checkpoint is taken

        Returns:
            The stored checkpoint descriptor

        Raises:
            CheckpointError: Backup or descriptor could not be written
        """
        checkpoint_id = new_id()
        backup_key = f"{BACKUPS_PREFIX}/{session.id}/{checkpoint_id}"
        backup = session.model_dump(mode="json")
        serialized = _canonical_json(backup)

        checkpoint = Checkpoint(
            id=checkpoint_id,
            session_id=session.id,
            created_at=utc_now(),
            snapshot=CheckpointSnapshot(
                current_question_index=session.current_question_index,
                progress=session.progress,
                response_count=len(session.response_ids),
                free_talk_count=len(session.free_talk_ids),
            ),
            reason=reason,
            backup_key=backup_key,
            metadata=CheckpointMetadata(
                file_size=len(serialized),
                checksum=hashlib.sha256(serialized).hexdigest(),
            ),
        )

        try:
            await self.store.write(backup_key, backup, expected_version=0)
        except _WRITE_ERRORS as e:
            log.error(
                "checkpoint_backup_failed", session_id=session.id, error=str(e)
            )
            raise CheckpointError(
                f"Failed to write checkpoint backup for {session.id}"
            ) from e

        try:
            await self.store.write(
                f"{CHECKPOINTS_PREFIX}/{session.id}/{checkpoint_id}",
                checkpoint.model_dump(mode="json"),
                expected_version=0,
            )
        except _WRITE_ERRORS as e:
            log.error(
                "checkpoint_descriptor_failed", session_id=session.id, error=str(e)
            )
            try:
                await self.store.delete(backup_key)
            except _WRITE_ERRORS as cleanup_error:
                log.error(
                    "checkpoint_backup_cleanup_failed",
                    session_id=session.id,
                    backup_key=backup_key,
                    error=str(cleanup_error),
                )
            raise CheckpointError(
                f"Failed to write checkpoint descriptor for {session.id}"
            ) from e

        log.info(
            "checkpoint_created",
            session_id=session.id,
            checkpoint_id=checkpoint_id,
            reason=reason.value,
            file_size=checkpoint.metadata.file_size,
        )
        return checkpoint

    async def list_checkpoints(self, session_id: str) -> List[Checkpoint]:
        """All checkpoints of a session, newest first."""
        keys = await self.store.list(f"{CHECKPOINTS_PREFIX}/{session_id}")
        checkpoints = [
            Checkpoint.model_validate(await self.store.read(k)) for k in keys
        ]
        checkpoints.reverse()
        return checkpoints

    async def load_latest_checkpoint(self, session_id: str) -> Optional[Checkpoint]:
        """Most recent checkpoint, or None if the session has none."""
        keys = await self.store.list(f"{CHECKPOINTS_PREFIX}/{session_id}")
        if not keys:
            return None
        return Checkpoint.model_validate(await self.store.read(keys[-1]))

    async def has_checkpoints(self, session_id: str) -> bool:
        return bool(await self.store.list(f"{CHECKPOINTS_PREFIX}/{session_id}"))

    async def restore_session(self, checkpoint: Checkpoint) -> Session:
        """
        Rebuild the session captured by a checkpoint.

        Raises:
            CheckpointError: Backup missing or its checksum does not match
        """
        try:
            backup = await self.store.read(checkpoint.backup_key)
        except RecordNotFoundError as e:
            raise CheckpointError(
                f"Checkpoint backup missing: {checkpoint.backup_key}"
            ) from e

        checksum = hashlib.sha256(_canonical_json(backup)).hexdigest()
        if checksum != checkpoint.metadata.checksum:
            log.error(
                "checkpoint_checksum_mismatch",
                session_id=checkpoint.session_id,
                checkpoint_id=checkpoint.id,
            )
            raise CheckpointError(f"Checkpoint {checkpoint.id} failed integrity check")

        session = Session.model_validate(backup)
        log.info(
            "checkpoint_restored",
            session_id=session.id,
            checkpoint_id=checkpoint.id,
        )
        return session

    async def cleanup_checkpoints(
        self, session_id: str, keep_count: Optional[int] = None
    ) -> int:
        """
        Delete every checkpoint beyond the keep_count most recent.

        Returns:
            Number of checkpoints removed
        """
        keep = self.keep_count if keep_count is None else keep_count
        if keep < 0:
            raise ValidationError("keep_count must be >= 0")

        stale = (await self.list_checkpoints(session_id))[keep:]
        for checkpoint in stale:
            await self.store.delete(checkpoint.backup_key)
            await self.store.delete(
                f"{CHECKPOINTS_PREFIX}/{session_id}/{checkpoint.id}"
            )

        if stale:
            log.info(
                "checkpoints_cleaned_up",
                session_id=session_id,
                removed=len(stale),
                kept=keep,
            )
        return len(stale)
