"""Tests for checkpoint creation, restore and cleanup."""

from unittest.mock import AsyncMock

import aiosqlite
import pytest

from wda.core.exceptions import CheckpointError, ValidationError
from wda.core.identifiers import new_id, new_session_id
from wda.core.timeutil import utc_now
from wda.domain.models.checkpoint import CheckpointReason
from wda.domain.models.session import AIModelConfig, Session, SessionStatus, SurveyMode
from wda.services.checkpoint_service import CheckpointService


def make_session(**overrides) -> Session:
    now = utc_now()
    data = dict(
        id=new_session_id(),
        project_id="3f1c9a52-6a4b-4d0e-9a8f-2b7c1d4e5f60",
        name="Checkpoint Session",
        mode=SurveyMode.STANDARD,
        status=SessionStatus.IN_PROGRESS,
        ai_config=AIModelConfig(provider="openai", model_name="gpt-4o-mini", temperature=0.2),
        selected_pack_ids=["pack-team", "pack-tools"],
        current_question_index=2,
        total_questions=4,
        progress=50,
        created_at=now,
        updated_at=now,
        response_ids=[new_id(), new_id()],
        metadata={"source": "vscode", "nested": {"ä": [1, 2]}},
        version=3,
    )
    data.update(overrides)
    return Session(**data)


@pytest.mark.asyncio
async def test_restore_returns_equal_session(checkpoint_service):
    session = make_session()

    checkpoint = await checkpoint_service.create_checkpoint(
        session, CheckpointReason.MANUAL_SAVE
    )
    restored = await checkpoint_service.restore_session(checkpoint)

    assert restored == session


@pytest.mark.asyncio
async def test_descriptor_fields(checkpoint_service, store):
    session = make_session()

    checkpoint = await checkpoint_service.create_checkpoint(
        session, CheckpointReason.SESSION_PAUSE
    )

    assert checkpoint.session_id == session.id
    assert checkpoint.reason == CheckpointReason.SESSION_PAUSE
    assert checkpoint.backup_key == f"backups/{session.id}/{checkpoint.id}"
    assert checkpoint.snapshot.current_question_index == 2
    assert checkpoint.snapshot.progress == 50
    assert checkpoint.snapshot.response_count == 2
    assert checkpoint.snapshot.free_talk_count == 0
    assert checkpoint.metadata.file_size > 0
    assert len(checkpoint.metadata.checksum) == 64
    assert await store.exists(checkpoint.backup_key)


@pytest.mark.asyncio
async def test_list_is_newest_first(checkpoint_service):
    session = make_session()
    first = await checkpoint_service.create_checkpoint(session, CheckpointReason.AUTO_SAVE)
    second = await checkpoint_service.create_checkpoint(session, CheckpointReason.MANUAL_SAVE)

    checkpoints = await checkpoint_service.list_checkpoints(session.id)
    latest = await checkpoint_service.load_latest_checkpoint(session.id)

    assert [c.id for c in checkpoints] == [second.id, first.id]
    assert latest == second


@pytest.mark.asyncio
async def test_no_checkpoints(checkpoint_service):
    session_id = new_session_id()

    assert await checkpoint_service.list_checkpoints(session_id) == []
    assert await checkpoint_service.load_latest_checkpoint(session_id) is None
    assert not await checkpoint_service.has_checkpoints(session_id)


@pytest.mark.asyncio
async def test_tampered_backup_fails_integrity_check(checkpoint_service, store):
    session = make_session()
    checkpoint = await checkpoint_service.create_checkpoint(session, CheckpointReason.AUTO_SAVE)

    backup = await store.read(checkpoint.backup_key)
    backup["current_question_index"] = 4
    await store.write(checkpoint.backup_key, backup)

    with pytest.raises(CheckpointError, match="integrity"):
        await checkpoint_service.restore_session(checkpoint)


@pytest.mark.asyncio
async def test_missing_backup(checkpoint_service, store):
    session = make_session()
    checkpoint = await checkpoint_service.create_checkpoint(session, CheckpointReason.AUTO_SAVE)
    await store.delete(checkpoint.backup_key)

    with pytest.raises(CheckpointError, match="missing"):
        await checkpoint_service.restore_session(checkpoint)


@pytest.mark.asyncio
async def test_cleanup_keeps_most_recent(store):
    service = CheckpointService(store, keep_count=2)
    session = make_session()
    created = [
        await service.create_checkpoint(session, CheckpointReason.AUTO_SAVE)
        for _ in range(4)
    ]

    removed = await service.cleanup_checkpoints(session.id)

    remaining = await service.list_checkpoints(session.id)
    assert removed == 2
    assert [c.id for c in remaining] == [created[3].id, created[2].id]
    assert not await store.exists(created[0].backup_key)
    assert not await store.exists(created[1].backup_key)


@pytest.mark.asyncio
async def test_cleanup_explicit_keep_count(checkpoint_service):
    session = make_session()
    for _ in range(3):
        await checkpoint_service.create_checkpoint(session, CheckpointReason.AUTO_SAVE)

    assert await checkpoint_service.cleanup_checkpoints(session.id, keep_count=0) == 3
    assert not await checkpoint_service.has_checkpoints(session.id)


@pytest.mark.asyncio
async def test_cleanup_rejects_negative_keep_count(checkpoint_service):
    with pytest.raises(ValidationError, match="keep_count"):
        await checkpoint_service.cleanup_checkpoints(new_session_id(), keep_count=-1)


@pytest.mark.asyncio
async def test_descriptor_failure_removes_backup(checkpoint_service, store):
    """A failed descriptor write leaves no orphan backup behind."""
    session = make_session()
    real_write = store.write
    calls = []

    async def failing_write(key, record, expected_version=None):
        calls.append(key)
        if key.startswith("checkpoints/"):
            raise OSError("disk full")
        return await real_write(key, record, expected_version=expected_version)

    store.write = AsyncMock(side_effect=failing_write)

    with pytest.raises(CheckpointError, match="descriptor"):
        await checkpoint_service.create_checkpoint(session, CheckpointReason.AUTO_SAVE)

    assert calls[0].startswith("backups/")
    assert await store.list(f"backups/{session.id}") == []
    assert await store.list(f"checkpoints/{session.id}") == []


@pytest.mark.asyncio
async def test_backup_failure_raises_checkpoint_error(checkpoint_service, store):
    store.write = AsyncMock(side_effect=OSError("read-only filesystem"))

    with pytest.raises(CheckpointError, match="backup"):
        await checkpoint_service.create_checkpoint(make_session(), CheckpointReason.AUTO_SAVE)


@pytest.mark.asyncio
async def test_backup_cleanup_failure_still_raises_checkpoint_error(
    checkpoint_service, store
):
    """Descriptor and backup removal both failing surfaces as CheckpointError."""
    session = make_session()
    real_write = store.write

    async def failing_write(key, record, expected_version=None):
        if key.startswith("checkpoints/"):
            raise aiosqlite.OperationalError("database is locked")
        return await real_write(key, record, expected_version=expected_version)

    store.write = AsyncMock(side_effect=failing_write)
    store.delete = AsyncMock(side_effect=aiosqlite.OperationalError("database is locked"))

    with pytest.raises(CheckpointError, match="descriptor"):
        await checkpoint_service.create_checkpoint(session, CheckpointReason.AUTO_SAVE)

    store.delete.assert_awaited_once()
    assert store.delete.await_args.args[0].startswith(f"backups/{session.id}/")
    assert await checkpoint_service.list_checkpoints(session.id) == []
