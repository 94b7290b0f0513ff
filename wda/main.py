"""
Survey engine wiring.

Builds the store, repositories and services over one database and one
catalog. Embedders (an editor extension, a CLI, tests) call create_engine
once at startup:

    engine = await create_engine()
    session = await engine.sessions.create_session(project_id, "quick", {...})
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from wda.core.catalog_loader import load_catalog
from wda.core.config import settings, survey_config
from wda.core.logging import get_logger
from wda.domain.models.question import QuestionCatalog
from wda.persistence.database import init_database
from wda.persistence.repositories.free_talk_repo import FreeTalkRepository
from wda.persistence.repositories.response_repo import ResponseRepository
from wda.persistence.repositories.session_repo import SessionRepository
from wda.persistence.store import SqliteStore
from wda.services.checkpoint_service import CheckpointService
from wda.services.conversation_service import ConversationService
from wda.services.protocols import TextGeneratorFactory
from wda.services.session_locks import SessionLockRegistry
from wda.services.session_service import SessionService

log = get_logger(__name__)


@dataclass
class SurveyEngine:
    store: SqliteStore
    catalog: QuestionCatalog
    sessions: SessionService
    conversation: ConversationService
    checkpoints: CheckpointService


async def create_engine(
    db_path: Optional[Path] = None,
    catalog: Optional[QuestionCatalog] = None,
    generator_factory: Optional[TextGeneratorFactory] = None,
    language: Optional[str] = None,
) -> SurveyEngine:
    """
    Initialize the database and assemble the services.

    Args:
        db_path: SQLite file (settings.database_path if None)
        catalog: Question catalog (loaded from the configured pack directory if None)
        generator_factory: Text generator per model config (real providers if None)
        language: Message language (settings.survey_language if None)
    """
    db_path = await init_database(db_path or settings.database_path)
    catalog = catalog or load_catalog(survey_config.question_packs_dir)

    store = SqliteStore(db_path)
    locks = SessionLockRegistry()
    checkpoints = CheckpointService(store)
    response_repo = ResponseRepository(store)
    free_talk_repo = FreeTalkRepository(store)
    sessions = SessionService(
        SessionRepository(store),
        response_repo,
        free_talk_repo,
        catalog,
        checkpoints,
        locks=locks,
        language=language,
    )
    conversation = ConversationService(
        sessions,
        response_repo,
        free_talk_repo,
        catalog,
        generator_factory=generator_factory,
        language=language,
    )

    log.info(
        "survey_engine_ready",
        database=str(db_path),
        pack_count=len(catalog.packs),
        question_count=catalog.question_count(),
    )
    return SurveyEngine(
        store=store,
        catalog=catalog,
        sessions=sessions,
        conversation=conversation,
        checkpoints=checkpoints,
    )
