"""
Session lifecycle service.

Owns the session state machine:

    not_started -> in_progress -> {paused, completed, abandoned}
    paused -> in_progress | abandoned

completed and abandoned are terminal. Every transition re-reads the session
under its lock, checks the current status, and saves with the store's
version check; a rejected transition changes nothing. Pausing always takes
an auto_save checkpoint first and does not pause if that fails.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from wda.core.config import settings
from wda.core.exceptions import (
    CheckpointNotFoundError,
    InvalidSessionIdError,
    InvalidTransitionError,
    SessionNotFoundError,
    ValidationError,
)
from wda.core.identifiers import is_session_id, is_uuid4, new_session_id
from wda.core.timeutil import next_timestamp, utc_now
from wda.domain.models.checkpoint import Checkpoint, CheckpointReason
from wda.domain.models.question import QuestionCatalog
from wda.domain.models.session import (
    AIModelConfig,
    AIProvider,
    Session,
    SessionStatus,
    SurveyMode,
    compute_progress,
)
from wda.llm.client import DEFAULT_MODELS
from wda.llm.prompts.messages import welcome_back_message
from wda.persistence.repositories.free_talk_repo import FreeTalkRepository
from wda.persistence.repositories.response_repo import ResponseRepository
from wda.persistence.repositories.session_repo import SessionRepository
from wda.services.checkpoint_service import CheckpointService
from wda.services.question_selector import QuestionSelector
from wda.services.session_locks import SessionLockRegistry

log = structlog.get_logger(__name__)

TEMPERATURE_RANGE = (0.0, 1.0)
MAX_TOKENS_RANGE = (100, 4000)


@dataclass
class ResumeResult:
    """Resumed session plus the welcome-back text shown to the respondent."""

    session: Session
    welcome_message: str
    response_count: int


@dataclass
class SessionPage:
    sessions: List[Session]
    total: int
    has_more: bool


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_session_config(
    project_id: Any, mode: Any, model_config: Mapping[str, Any]
) -> List[str]:
    """Every problem with a create request, in a stable order."""
    errors: List[str] = []

    if not is_uuid4(project_id):
        errors.append("Invalid project id format")

    if mode not in {m.value for m in SurveyMode}:
        errors.append("Invalid mode")

    provider = model_config.get("provider")
    if provider not in {p.value for p in AIProvider}:
        errors.append(f"Unsupported AI provider: {provider}")

    model_name = model_config.get("model_name")
    if model_name is not None and not isinstance(model_name, str):
        errors.append("Model name must be a string")

    temperature = model_config.get("temperature")
    if temperature is not None and not (
        _is_number(temperature)
        and TEMPERATURE_RANGE[0] <= temperature <= TEMPERATURE_RANGE[1]
    ):
        errors.append("Temperature must be between 0.0 and 1.0")

    max_tokens = model_config.get("max_tokens")
    if max_tokens is not None and not (
        isinstance(max_tokens, int)
        and not isinstance(max_tokens, bool)
        and MAX_TOKENS_RANGE[0] <= max_tokens <= MAX_TOKENS_RANGE[1]
    ):
        errors.append("Max tokens must be between 100 and 4000")

    return errors


class SessionService:
    """Creates sessions and drives their lifecycle transitions."""

    def __init__(
        self,
        session_repo: SessionRepository,
        response_repo: ResponseRepository,
        free_talk_repo: FreeTalkRepository,
        catalog: QuestionCatalog,
        checkpoint_service: CheckpointService,
        locks: Optional[SessionLockRegistry] = None,
        selector: Optional[QuestionSelector] = None,
        language: Optional[str] = None,
    ):
        """
        Initialize session service.

        Args:
            session_repo: Session repository
            response_repo: Response repository, read when rolling a recovery forward
            free_talk_repo: Free-form entry repository, read on recovery
            catalog: Immutable question catalog
            checkpoint_service: Checkpoint writer used on pause and on request
            locks: Lock registry shared with the conversation service
            selector: Question selector (built from catalog if None)
            language: Language for user-facing messages (settings.survey_language if None)
        """
        self.session_repo = session_repo
        self.response_repo = response_repo
        self.free_talk_repo = free_talk_repo
        self.catalog = catalog
        self.checkpoint_service = checkpoint_service
        self.locks = locks or SessionLockRegistry()
        self.selector = selector or QuestionSelector(catalog)
        self.language = language or settings.survey_language

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_session(self, session_id: str) -> Session:
        """
        Load a session.

        Raises:
            InvalidSessionIdError: Id is not session-<uuid4>
            SessionNotFoundError: No such session
        """
        if not is_session_id(session_id):
            raise InvalidSessionIdError(f"Invalid session id format: {session_id}")
        session = await self.session_repo.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    async def list_sessions(
        self,
        project_id: str,
        status: Optional[Union[SessionStatus, str]] = None,
        created_after: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> SessionPage:
        """
        List a project's sessions, newest first.

        Raises:
            ValidationError: Malformed project id or paging arguments
        """
        errors = []
        if not is_uuid4(project_id):
            errors.append("Invalid project id format")
        if status is not None and status not in {s.value for s in SessionStatus}:
            errors.append("Invalid status")
        if offset < 0 or (limit is not None and limit < 0):
            errors.append("Limit and offset must not be negative")
        if errors:
            raise ValidationError("; ".join(errors), errors)

        sessions = await self.session_repo.list_for_project(
            project_id,
            status=SessionStatus(status) if status is not None else None,
            created_after=created_after,
        )
        end = None if limit is None else offset + limit
        page = sessions[offset:end]
        return SessionPage(
            sessions=page,
            total=len(sessions),
            has_more=end is not None and end < len(sessions),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_session(
        self,
        project_id: str,
        mode: Union[SurveyMode, str],
        model_config: Union[AIModelConfig, Mapping[str, Any]],
        name: Optional[str] = None,
    ) -> Session:
        """
        Create a not_started session.

        Args:
            project_id: Project UUID4
            mode: quick, standard or deep
            model_config: provider, model_name, optional temperature and max_tokens
            name: Display name (defaults to "Session <date>")

        Raises:
            ValidationError: Listing every problem with the request
        """
        if isinstance(mode, SurveyMode):
            mode = mode.value
        if isinstance(model_config, AIModelConfig):
            model_config = model_config.model_dump(mode="json")

        errors = validate_session_config(project_id, mode, model_config)
        if errors:
            log.warning("session_create_rejected", errors=errors)
            raise ValidationError("; ".join(errors), errors)

        survey_mode = SurveyMode(mode)
        provider = AIProvider(model_config["provider"])
        ai_config = AIModelConfig(
            provider=provider,
            model_name=model_config.get("model_name") or DEFAULT_MODELS[provider],
            temperature=model_config.get("temperature"),
            max_tokens=model_config.get("max_tokens"),
        )

        pack_ids = self.selector.select_pack_ids(survey_mode)
        total = len(self.selector.questions_for(pack_ids, survey_mode))
        now = utc_now()

        session = Session(
            id=new_session_id(),
            project_id=project_id,
            name=name or f"Session {now.date().isoformat()}",
            mode=survey_mode,
            ai_config=ai_config,
            selected_pack_ids=pack_ids,
            total_questions=total,
            progress=compute_progress(0, total),
            created_at=now,
            updated_at=now,
        )
        session = await self.session_repo.create(session)

        log.info(
            "session_created",
            session_id=session.id,
            project_id=project_id,
            mode=survey_mode.value,
            provider=provider.value,
            total_questions=total,
            pack_count=len(pack_ids),
        )
        return session

    async def start_session(self, session_id: str) -> Session:
        """not_started -> in_progress."""
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id)
            if session.status != SessionStatus.NOT_STARTED:
                raise InvalidTransitionError("Session already started")
            return await self._transition(session, SessionStatus.IN_PROGRESS)

    async def pause_session(self, session_id: str) -> Session:
        """
        {not_started, in_progress} -> paused, after an auto_save checkpoint.

        Raises:
            InvalidTransitionError: Already paused, or completed/abandoned
            CheckpointError: Checkpoint failed; the session is not paused
        """
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id)
            if session.status == SessionStatus.PAUSED:
                raise InvalidTransitionError("Session is already paused")
            if session.status not in (
                SessionStatus.NOT_STARTED,
                SessionStatus.IN_PROGRESS,
            ):
                raise InvalidTransitionError(
                    f"Cannot pause {session.status.value} session"
                )

            await self.checkpoint_service.create_checkpoint(
                session, CheckpointReason.AUTO_SAVE
            )
            return await self._transition(session, SessionStatus.PAUSED)

    async def resume_session(self, session_id: str) -> ResumeResult:
        """paused -> in_progress, with a welcome-back message."""
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id)
            if session.status != SessionStatus.PAUSED:
                raise InvalidTransitionError("Session is not paused")
            session = await self._transition(session, SessionStatus.IN_PROGRESS)

        count = len(session.response_ids)
        return ResumeResult(
            session=session,
            welcome_message=welcome_back_message(count, self.language),
            response_count=count,
        )

    async def abandon_session(self, session_id: str) -> Session:
        """Any state except abandoned/completed -> abandoned. Data is kept."""
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id)
            if session.status == SessionStatus.ABANDONED:
                raise InvalidTransitionError("Session is already abandoned")
            if session.status == SessionStatus.COMPLETED:
                raise InvalidTransitionError("Cannot abandon completed session")
            return await self._transition(session, SessionStatus.ABANDONED)

    async def complete_session(self, session_id: str) -> Session:
        """in_progress -> completed; progress becomes 100."""
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id)
            if session.status != SessionStatus.IN_PROGRESS:
                raise InvalidTransitionError("Session must be in_progress to complete")
            updated_at = next_timestamp(session.updated_at)
            return await self._transition(
                session,
                SessionStatus.COMPLETED,
                progress=100,
                completed_at=updated_at,
                updated_at=updated_at,
            )

    async def _transition(
        self, session: Session, status: SessionStatus, **changes: Any
    ) -> Session:
        update: Dict[str, Any] = {
            "status": status,
            "updated_at": next_timestamp(session.updated_at),
        }
        update.update(changes)
        saved = await self.session_repo.save(session.model_copy(update=update))
        log.info(
            "session_status_changed",
            session_id=session.id,
            from_status=session.status.value,
            to_status=status.value,
        )
        return saved

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    async def save_checkpoint(self, session_id: str) -> Checkpoint:
        """Operator-requested manual_save checkpoint."""
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id)
            return await self.checkpoint_service.create_checkpoint(
                session, CheckpointReason.MANUAL_SAVE
            )

    async def recover_session(self, session_id: str) -> Session:
        """
        Rebuild the stored session from its latest checkpoint.

        The checkpoint copy is rolled forward with the responses and free-form
        entries stored after it was taken: each later main answer advances the
        cursor by one, ids are appended in the order they were written, and
        the open free-form entry is taken from the stored entries. The cursor
        never ends up behind the current record and the current status is
        kept, so recovery cannot reopen a finished session or undo answers.

        Raises:
            InvalidTransitionError: Session is completed or abandoned
            CheckpointNotFoundError: Session has no checkpoint
            CheckpointError: Backup missing or corrupt
        """
        async with self.locks.hold(session_id):
            current = await self.get_session(session_id)
            if current.is_terminal:
                raise InvalidTransitionError(
                    f"Cannot recover {current.status.value} session"
                )
            checkpoint = await self.checkpoint_service.load_latest_checkpoint(session_id)
            if checkpoint is None:
                raise CheckpointNotFoundError(f"No checkpoint for session {session_id}")
            restored = await self.checkpoint_service.restore_session(checkpoint)
            session = await self.session_repo.replace(
                await self._roll_forward(restored, current)
            )

        log.info(
            "session_recovered",
            session_id=session_id,
            checkpoint_id=checkpoint.id,
            checkpoint_index=restored.current_question_index,
            current_question_index=session.current_question_index,
        )
        return session

    async def _roll_forward(self, restored: Session, current: Session) -> Session:
        response_ids = list(restored.response_ids)
        index = restored.current_question_index
        for response in await self.response_repo.list_for_session(current.id):
            if response.id in response_ids:
                continue
            response_ids.append(response.id)
            if response.metadata.follow_up_of is None:
                index += 1
        for response_id in current.response_ids:
            if response_id not in response_ids:
                response_ids.append(response_id)
        index = min(
            max(index, current.current_question_index), current.total_questions
        )

        entries = await self.free_talk_repo.list_for_session(current.id)
        free_talk_ids = list(restored.free_talk_ids)
        for entry_id in [e.id for e in entries] + current.free_talk_ids:
            if entry_id not in free_talk_ids:
                free_talk_ids.append(entry_id)
        open_entries = [e.id for e in entries if e.is_open]

        status = current.status
        if status == SessionStatus.NOT_STARTED and index > 0:
            status = SessionStatus.IN_PROGRESS

        return restored.model_copy(
            update={
                "status": status,
                "current_question_index": index,
                "progress": compute_progress(index, current.total_questions),
                "response_ids": response_ids,
                "free_talk_ids": free_talk_ids,
                "active_free_talk_id": open_entries[-1] if open_entries else None,
                "completed_at": current.completed_at,
                "updated_at": next_timestamp(current.updated_at),
            }
        )
