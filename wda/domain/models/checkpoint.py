"""Checkpoint domain models.

A checkpoint is a descriptor under checkpoints/{session_id}/{id} pointing
at a full session backup under backups/{session_id}/{id}. Both are
immutable once written.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CheckpointReason(str, Enum):
    AUTO_SAVE = "auto_save"
    MANUAL_SAVE = "manual_save"
    PRE_CRASH = "pre_crash"
    SESSION_PAUSE = "session_pause"


class CheckpointSnapshot(BaseModel):
    """Counters captured at checkpoint time, readable without the backup."""

    model_config = ConfigDict(frozen=True)

    current_question_index: int
    progress: int
    response_count: int
    free_talk_count: int


class CheckpointMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_size: int = Field(description="Bytes of the serialized backup")
    checksum: str = Field(description="SHA-256 hex digest of the serialized backup")


class Checkpoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    session_id: str
    created_at: datetime
    snapshot: CheckpointSnapshot
    reason: CheckpointReason
    backup_key: str
    metadata: CheckpointMetadata
