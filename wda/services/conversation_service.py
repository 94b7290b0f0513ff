"""
Conversation flow service.

Serves catalog questions one at a time, records answers, and runs the
free-form side channel ("Freier Talk").

Answer flow (submit_answer), all under the session lock:
1. Load session; reject paused/abandoned/completed or an open free talk
2. Resolve the question; it must be the one at the session cursor
3. Validate; on failure nothing is written
4. Follow-up matching and text signals (none for a skipped optional answer)
5. AI feedback (before any write, so a provider failure leaves no trace)
6. Write the response, then save the session with the cursor advanced by one
7. Every N answers, write an auto_save checkpoint

Progress only moves in step 6, so it stays frozen while a free talk is open.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import aiosqlite
import structlog

from wda.core.config import settings, survey_config
from wda.core.exceptions import (
    AlreadyEndedError,
    CheckpointError,
    ExhaustedError,
    FreeTalkNotFoundError,
    InvalidStateError,
    QuestionNotFoundError,
    ValidationError,
    WdaError,
)
from wda.core.identifiers import new_id
from wda.core.timeutil import elapsed_ms, next_timestamp, utc_now
from wda.domain.models.checkpoint import CheckpointReason
from wda.domain.models.free_talk import (
    FreeTalkEntry,
    FreeTalkTrigger,
    MessageRole,
    TranscriptMessage,
)
from wda.domain.models.question import Question, QuestionCatalog
from wda.domain.models.response import Response, ResponseMetadata
from wda.domain.models.session import Session, SessionStatus, compute_progress
from wda.llm.generator import get_text_generator
from wda.llm.prompts.conversation import (
    build_answer_feedback_context,
    build_free_talk_opening_context,
    build_free_talk_reply_context,
    build_free_talk_summary_context,
    build_question_framing_context,
    parse_free_talk_summary,
)
from wda.llm.prompts.messages import ensure_conversational, free_talk_transition_message
from wda.persistence.repositories.free_talk_repo import FreeTalkRepository
from wda.persistence.repositories.response_repo import ResponseRepository
from wda.services.answer_validator import is_empty_answer, validate_answer
from wda.services.follow_up_service import (
    NOT_TRIGGERED,
    FollowUpResult,
    FollowUpService,
    answer_text,
)
from wda.services.protocols import ICheckpointService, TextGeneratorFactory
from wda.services.question_selector import QuestionSelector
from wda.services.session_locks import SessionLockRegistry
from wda.services.session_service import SessionService
from wda.signals.keyword_classifier import (
    KeywordSignalClassifier,
    TextSignalClassifier,
    TextSignals,
)

log = structlog.get_logger(__name__)

_BLOCKED_FOR_QUESTIONS = (
    SessionStatus.PAUSED,
    SessionStatus.ABANDONED,
    SessionStatus.COMPLETED,
)
_BLOCKED_FOR_FREE_TALK = (SessionStatus.PAUSED, SessionStatus.ABANDONED)


@dataclass
class ProgressSnapshot:
    current: int
    total: int
    percent_complete: int


@dataclass
class NextQuestion:
    question: Question
    progress: ProgressSnapshot
    message: str


@dataclass
class AnswerResult:
    """Outcome of an accepted answer."""

    response_id: str
    follow_up_triggered: bool
    follow_up_question: Optional[str]
    follow_up_reason: Optional[str]
    ai_feedback: str
    time_spent: float
    free_talk_suggested: bool
    free_talk_potential: Optional[str]
    transition_message: Optional[str]
    progress: ProgressSnapshot


def _progress_of(session: Session) -> ProgressSnapshot:
    return ProgressSnapshot(
        current=session.current_question_index,
        total=session.total_questions,
        percent_complete=compute_progress(
            session.current_question_index, session.total_questions
        ),
    )


class ConversationService:
    """Question flow and free-form conversation for a session."""

    def __init__(
        self,
        session_service: SessionService,
        response_repo: ResponseRepository,
        free_talk_repo: FreeTalkRepository,
        catalog: QuestionCatalog,
        checkpoint_service: Optional[ICheckpointService] = None,
        generator_factory: Optional[TextGeneratorFactory] = None,
        classifier: Optional[TextSignalClassifier] = None,
        follow_up_service: Optional[FollowUpService] = None,
        selector: Optional[QuestionSelector] = None,
        auto_save_every: Optional[int] = None,
        suggestion_threshold: Optional[float] = None,
        language: Optional[str] = None,
    ):
        """
        Initialize conversation service.

        Args:
            session_service: Lifecycle service (session loading, shared locks)
            response_repo: Response repository
            free_talk_repo: Free-form entry repository
            catalog: Immutable question catalog
            checkpoint_service: Writer for periodic auto_save checkpoints
                (session_service's if None)
            generator_factory: Maps a session's model config to a text
                generator (get_text_generator if None)
            classifier: Text signal classifier (keyword lists if None)
            follow_up_service: Follow-up matcher (built on classifier if None)
            selector: Question selector (built from catalog if None)
            auto_save_every: Checkpoint every N answers, 0 disables (config if None)
            suggestion_threshold: Frustration confidence above which free talk
                is suggested (config if None)
            language: Language for prompts and messages (settings if None)
        """
        self.session_service = session_service
        self.session_repo = session_service.session_repo
        self.locks: SessionLockRegistry = session_service.locks
        self.response_repo = response_repo
        self.free_talk_repo = free_talk_repo
        self.catalog = catalog
        self.checkpoint_service = checkpoint_service or session_service.checkpoint_service
        self.generator_factory = generator_factory or get_text_generator
        self.classifier = classifier or KeywordSignalClassifier()
        self.follow_up_service = follow_up_service or FollowUpService(self.classifier)
        self.selector = selector or QuestionSelector(catalog)
        self.auto_save_every = (
            survey_config.checkpoints.auto_save_every_n_answers
            if auto_save_every is None
            else auto_save_every
        )
        self.suggestion_threshold = (
            survey_config.free_talk.suggestion_threshold
            if suggestion_threshold is None
            else suggestion_threshold
        )
        self.language = language or settings.survey_language

    # ------------------------------------------------------------------
    # Question flow
    # ------------------------------------------------------------------

    async def get_next_question(self, session_id: str) -> NextQuestion:
        """
        Question at the session cursor, with progress and AI framing.

        Raises:
            NotFoundError: Unknown or malformed session id
            InvalidStateError: Session paused, abandoned or completed
            ExhaustedError: Every question has been answered
            ProviderError: AI framing failed
        """
        session = await self.session_service.get_session(session_id)
        if session.status in _BLOCKED_FOR_QUESTIONS:
            raise InvalidStateError(f"Session is {session.status.value}")

        question = self._current_question(session)
        generator = self.generator_factory(session.ai_config)
        framing = await generator.generate(
            build_question_framing_context(
                question,
                session.current_question_index,
                session.total_questions,
                self.language,
            )
        )

        log.info(
            "question_served",
            session_id=session_id,
            question_id=question.id,
            index=session.current_question_index,
        )
        return NextQuestion(
            question=question,
            progress=_progress_of(session),
            message=ensure_conversational(framing, question, self.language),
        )

    def _current_question(self, session: Session) -> Question:
        if session.is_exhausted:
            raise ExhaustedError("No more questions")
        question = self.selector.question_at(session, session.current_question_index)
        if question is None:
            raise ExhaustedError("No more questions")
        return question

    def _check_can_answer(self, session: Session) -> None:
        if session.status in _BLOCKED_FOR_QUESTIONS:
            raise InvalidStateError(f"Session is {session.status.value}")
        if session.active_free_talk_id is not None:
            raise InvalidStateError("Free talk in progress; end it before answering")

    def _resolve_question(self, question_id: str) -> Question:
        question = self.catalog.get_question(question_id)
        if question is None:
            raise QuestionNotFoundError(f"Question not found: {question_id}")
        return question

    def _signals(self, text: Optional[str]) -> Optional[TextSignals]:
        return self.classifier.analyze(text) if text else None

    async def submit_answer(
        self,
        session_id: str,
        question_id: str,
        answer: Any,
        time_spent: Optional[float] = None,
    ) -> AnswerResult:
        """
        Record an answer to the current question and advance the cursor.

        Args:
            session_id: Session id
            question_id: Question being answered (must be the current one)
            answer: Answer value
            time_spent: Milliseconds spent answering (0 if not supplied)

        Raises:
            NotFoundError: Unknown session or question
            InvalidStateError: Session not answerable or a free talk is open
            ExhaustedError: No question left to answer
            ValidationError: Answer invalid or not for the current question
            ProviderError: AI feedback failed (nothing is recorded)
        """
        async with self.locks.hold(session_id):
            session = await self.session_service.get_session(session_id)
            self._check_can_answer(session)
            question = self._resolve_question(question_id)
            current = self._current_question(session)
            if current.id != question.id:
                raise ValidationError(
                    f"Answer must be for the current question {current.id}",
                    [f"Answer must be for the current question {current.id}"],
                )

            result = validate_answer(answer, question)
            if not result.valid:
                log.info(
                    "answer_rejected",
                    session_id=session_id,
                    question_id=question_id,
                    errors=result.errors,
                )
                raise ValidationError("; ".join(result.errors), result.errors)

            # Empty answer to an optional question: recorded as a skip
            skipped = is_empty_answer(answer)
            if skipped:
                answer = None
                text = None
                follow_up = NOT_TRIGGERED
            else:
                text = answer_text(answer)
                follow_up = self.follow_up_service.detect(answer, question, self.language)
            signals = self._signals(text)

            generator = self.generator_factory(session.ai_config)
            feedback = await generator.generate(
                build_answer_feedback_context(
                    question,
                    None if skipped else (text or str(answer)),
                    self.language,
                )
            )

            response = self._build_response(
                session, question, answer, time_spent, follow_up, signals
            )
            index = session.current_question_index + 1
            status = (
                SessionStatus.IN_PROGRESS
                if session.status == SessionStatus.NOT_STARTED
                else session.status
            )
            saved = await self._record(
                session,
                response,
                status=status,
                current_question_index=index,
                progress=compute_progress(index, session.total_questions),
            )

            log.info(
                "answer_submitted",
                session_id=session_id,
                question_id=question_id,
                response_id=response.id,
                progress=saved.progress,
                follow_up=follow_up.triggered,
            )
            await self._maybe_auto_save(saved)

        return self._answer_result(response, follow_up, feedback, saved)

    async def submit_follow_up_answer(
        self,
        session_id: str,
        question_id: str,
        answer: Any,
        time_spent: Optional[float] = None,
    ) -> AnswerResult:
        """
        Record an answer to a follow-up offered for an answered question.

        The cursor does not move. Further follow-ups are offered until the
        rule's max_follow_ups is reached.

        Raises:
            NotFoundError: Unknown session or question
            InvalidStateError: Session not answerable, free talk open, or the
                question has not been answered yet
            ValidationError: Empty or non-text answer
            ProviderError: AI feedback failed (nothing is recorded)
        """
        async with self.locks.hold(session_id):
            session = await self.session_service.get_session(session_id)
            self._check_can_answer(session)
            question = self._resolve_question(question_id)

            responses = await self.response_repo.list_for_session(session_id)
            if not any(
                r.question_id == question_id and r.metadata.follow_up_of is None
                for r in responses
            ):
                raise InvalidStateError(
                    f"Question {question_id} has not been answered yet"
                )
            previous = sum(1 for r in responses if r.metadata.follow_up_of == question_id)

            if not isinstance(answer, str):
                raise ValidationError("Answer type mismatch", ["Answer type mismatch"])
            if not answer.strip():
                raise ValidationError("Answer is required", ["Answer is required"])

            follow_up = self.follow_up_service.detect(
                answer, question, self.language, previous_follow_ups=previous + 1
            )
            signals = self._signals(answer)

            generator = self.generator_factory(session.ai_config)
            feedback = await generator.generate(
                build_answer_feedback_context(question, answer, self.language)
            )

            response = self._build_response(
                session,
                question,
                answer,
                time_spent,
                follow_up,
                signals,
                follow_up_of=question_id,
            )
            saved = await self._record(session, response)

            log.info(
                "follow_up_answer_submitted",
                session_id=session_id,
                question_id=question_id,
                response_id=response.id,
                follow_up_count=previous + 1,
            )

        return self._answer_result(response, follow_up, feedback, saved)

    def _build_response(
        self,
        session: Session,
        question: Question,
        answer: Any,
        time_spent: Optional[float],
        follow_up: FollowUpResult,
        signals: Optional[TextSignals],
        follow_up_of: Optional[str] = None,
    ) -> Response:
        metadata = ResponseMetadata(
            pack_id=self.catalog.pack_of(question.id),
            follow_up_of=follow_up_of,
        )
        if signals is not None:
            metadata = metadata.model_copy(
                update={
                    "sentiment": signals.sentiment.value,
                    "free_talk_potential": signals.insight_potential,
                    "free_talk_suggested": signals.should_suggest_free_talk(
                        self.suggestion_threshold
                    ),
                    "frustration_confidence": signals.frustration.confidence,
                    "digression_detected": signals.digression_detected,
                }
            )
        return Response(
            id=new_id(),
            session_id=session.id,
            question_id=question.id,
            answer=answer,
            answered_at=utc_now(),
            time_spent=time_spent or 0,
            is_valid=True,
            triggered_follow_up=follow_up.triggered,
            metadata=metadata,
        )

    async def _record(self, session: Session, response: Response, **changes: Any) -> Session:
        """Write the response, then the session referencing it.

        If the session save fails the response is removed again, so no
        response exists without its session entry.
        """
        await self.response_repo.create(response)
        update = {
            "response_ids": [*session.response_ids, response.id],
            "updated_at": next_timestamp(session.updated_at),
            **changes,
        }
        try:
            return await self.session_repo.save(session.model_copy(update=update))
        except (WdaError, aiosqlite.Error):
            await self.response_repo.delete(session.id, response.id)
            raise

    async def _maybe_auto_save(self, session: Session) -> None:
        if self.auto_save_every <= 0:
            return
        answered = session.current_question_index
        if answered == 0 or answered % self.auto_save_every != 0:
            return
        try:
            await self.checkpoint_service.create_checkpoint(
                session, CheckpointReason.AUTO_SAVE
            )
        except CheckpointError as e:
            # Answer is already committed; the next cadence point retries
            log.error("auto_save_failed", session_id=session.id, error=e.message)

    def _answer_result(
        self,
        response: Response,
        follow_up: FollowUpResult,
        feedback: str,
        session: Session,
    ) -> AnswerResult:
        suggested = response.metadata.free_talk_suggested
        offer_free_talk = suggested or response.metadata.digression_detected
        return AnswerResult(
            response_id=response.id,
            follow_up_triggered=follow_up.triggered,
            follow_up_question=follow_up.question_text,
            follow_up_reason=follow_up.reason,
            ai_feedback=feedback,
            time_spent=response.time_spent,
            free_talk_suggested=suggested,
            free_talk_potential=response.metadata.free_talk_potential,
            transition_message=(
                free_talk_transition_message(self.language) if offer_free_talk else None
            ),
            progress=_progress_of(session),
        )

    async def list_responses(self, session_id: str) -> List[Response]:
        await self.session_service.get_session(session_id)
        return await self.response_repo.list_for_session(session_id)

    # ------------------------------------------------------------------
    # Free talk
    # ------------------------------------------------------------------

    async def start_free_talk(
        self,
        session_id: str,
        trigger: FreeTalkTrigger = FreeTalkTrigger.USER_INITIATED,
        triggered_by_question_id: Optional[str] = None,
        initial_message: Optional[str] = None,
    ) -> FreeTalkEntry:
        """
        Open a free-form entry with an AI opening message.

        Raises:
            NotFoundError: Unknown session or triggering question
            InvalidStateError: Session paused/abandoned or a free talk is open
            ProviderError: Opening message failed (nothing is recorded)
        """
        async with self.locks.hold(session_id):
            session = await self.session_service.get_session(session_id)
            if session.status in _BLOCKED_FOR_FREE_TALK:
                raise InvalidStateError(f"Session is {session.status.value}")
            if session.active_free_talk_id is not None:
                raise InvalidStateError("Free talk already in progress")

            question = None
            if triggered_by_question_id is not None:
                question = self._resolve_question(triggered_by_question_id)

            generator = self.generator_factory(session.ai_config)
            opening = await generator.generate(
                build_free_talk_opening_context(
                    FreeTalkTrigger(trigger), self.language, question, initial_message
                )
            )

            started_at = utc_now()
            transcript = []
            if initial_message:
                transcript.append(
                    TranscriptMessage(
                        role=MessageRole.USER, message=initial_message, timestamp=started_at
                    )
                )
            transcript.append(
                TranscriptMessage(
                    role=MessageRole.AI,
                    message=opening,
                    timestamp=next_timestamp(started_at),
                )
            )
            entry = FreeTalkEntry(
                id=new_id(),
                session_id=session_id,
                trigger=trigger,
                triggered_by_question_id=triggered_by_question_id,
                transcript=transcript,
                started_at=started_at,
            )

            await self.free_talk_repo.create(entry)
            try:
                await self.session_repo.save(
                    session.model_copy(
                        update={
                            "free_talk_ids": [*session.free_talk_ids, entry.id],
                            "active_free_talk_id": entry.id,
                            "updated_at": next_timestamp(session.updated_at),
                        }
                    )
                )
            except (WdaError, aiosqlite.Error):
                await self.free_talk_repo.delete(session_id, entry.id)
                raise

        log.info(
            "free_talk_started",
            session_id=session_id,
            entry_id=entry.id,
            trigger=entry.trigger.value,
        )
        return entry

    async def _open_entry(self, session: Session, entry_id: str) -> FreeTalkEntry:
        entry = await self.free_talk_repo.get(session.id, entry_id)
        if entry is None:
            raise FreeTalkNotFoundError(f"Free talk entry not found: {entry_id}")
        if not entry.is_open:
            raise AlreadyEndedError(f"Free talk entry already ended: {entry_id}")
        return entry

    async def add_free_talk_message(
        self,
        session_id: str,
        entry_id: str,
        role: MessageRole,
        message: str,
    ) -> FreeTalkEntry:
        """
        Append one message to an open entry.

        Raises:
            NotFoundError: Unknown session or entry
            AlreadyEndedError: Entry is closed
            InvalidStateError: Session paused or abandoned
            ValidationError: Empty message
        """
        if not message or not message.strip():
            raise ValidationError("Message must not be empty")

        async with self.locks.hold(session_id):
            session = await self.session_service.get_session(session_id)
            if session.status in _BLOCKED_FOR_FREE_TALK:
                raise InvalidStateError(f"Session is {session.status.value}")
            entry = await self._open_entry(session, entry_id)
            entry = self._append(entry, MessageRole(role), message)
            await self.free_talk_repo.save(entry)

        log.debug(
            "free_talk_message_added",
            session_id=session_id,
            entry_id=entry_id,
            role=MessageRole(role).value,
        )
        return entry

    async def reply_in_free_talk(
        self, session_id: str, entry_id: str, message: str
    ) -> Tuple[FreeTalkEntry, str]:
        """
        Append a user message and the AI's reply to it.

        Returns:
            (updated entry, AI reply)
        """
        if not message or not message.strip():
            raise ValidationError("Message must not be empty")

        async with self.locks.hold(session_id):
            session = await self.session_service.get_session(session_id)
            if session.status in _BLOCKED_FOR_FREE_TALK:
                raise InvalidStateError(f"Session is {session.status.value}")
            entry = await self._open_entry(session, entry_id)
            entry = self._append(entry, MessageRole.USER, message)

            generator = self.generator_factory(session.ai_config)
            reply = await generator.generate(
                build_free_talk_reply_context(entry.transcript, self.language)
            )
            entry = self._append(entry, MessageRole.AI, reply)
            await self.free_talk_repo.save(entry)

        return entry, reply

    def _append(
        self, entry: FreeTalkEntry, role: MessageRole, message: str
    ) -> FreeTalkEntry:
        last = entry.transcript[-1].timestamp if entry.transcript else entry.started_at
        turn = TranscriptMessage(
            role=role, message=message, timestamp=next_timestamp(last)
        )
        return entry.model_copy(update={"transcript": [*entry.transcript, turn]})

    async def end_free_talk(self, session_id: str, entry_id: str) -> FreeTalkEntry:
        """
        Close an entry and store its AI summary.

        Raises:
            NotFoundError: Unknown session or entry
            AlreadyEndedError: Entry already closed
            ProviderError: Summary failed or was malformed (entry stays open)
        """
        async with self.locks.hold(session_id):
            session = await self.session_service.get_session(session_id)
            entry = await self._open_entry(session, entry_id)

            generator = self.generator_factory(session.ai_config)
            summary = parse_free_talk_summary(
                await generator.generate(
                    build_free_talk_summary_context(entry.transcript, self.language)
                )
            )

            ended_at = next_timestamp(entry.transcript[-1].timestamp)
            entry = entry.model_copy(
                update={
                    "ended_at": ended_at,
                    "duration": elapsed_ms(entry.started_at, ended_at),
                    "summary": summary.summary,
                    "key_insights": summary.key_insights,
                    "tags": summary.tags,
                    "sentiment": summary.sentiment,
                }
            )
            await self.free_talk_repo.save(entry)

            if session.active_free_talk_id == entry.id:
                await self.session_repo.save(
                    session.model_copy(
                        update={
                            "active_free_talk_id": None,
                            "updated_at": next_timestamp(session.updated_at),
                        }
                    )
                )

        log.info(
            "free_talk_ended",
            session_id=session_id,
            entry_id=entry_id,
            duration_ms=entry.duration,
            message_count=len(entry.transcript),
            sentiment=entry.sentiment.value if entry.sentiment else None,
        )
        return entry

    async def get_free_talk_entry(self, session_id: str, entry_id: str) -> FreeTalkEntry:
        await self.session_service.get_session(session_id)
        entry = await self.free_talk_repo.get(session_id, entry_id)
        if entry is None:
            raise FreeTalkNotFoundError(f"Free talk entry not found: {entry_id}")
        return entry

    async def list_free_talk_entries(self, session_id: str) -> List[FreeTalkEntry]:
        await self.session_service.get_session(session_id)
        return await self.free_talk_repo.list_for_session(session_id)
