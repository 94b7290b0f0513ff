"""
Shared test fixtures.

Every test gets its own temporary SQLite database. AI calls go to a scripted
fake generator so no provider is contacted.
"""

import json
import tempfile
import uuid
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from wda.domain.models.question import (
    FollowUpRule,
    LocalizedOptions,
    LocalizedText,
    Question,
    QuestionCatalog,
    QuestionPack,
    ScaleRange,
    TextConstraints,
)
from wda.domain.models.session import SurveyMode
from wda.llm.generator import ConversationContext
from wda.main import create_engine
from wda.persistence.database import init_database
from wda.persistence.repositories.session_repo import SessionRepository
from wda.persistence.store import SqliteStore
from wda.services.checkpoint_service import CheckpointService

PACKS_DIR = Path(__file__).resolve().parent.parent / "config" / "question_packs"

SUMMARY_JSON = json.dumps(
    {
        "summary": "The respondent described slow CI pipelines.",
        "key_insights": ["CI feedback takes too long"],
        "tags": ["ci", "build-time"],
        "sentiment": "negative",
    }
)


class FakeTextGenerator:
    """Scripted generator: a canned reply per purpose, records every context."""

    def __init__(self, replies: Optional[Dict[str, str]] = None):
        self.replies = {
            "question_framing": "Let's talk about how you work. Here is something I'd like to know.",
            "answer_feedback": "Thanks, that helps.",
            "free_talk_opening": "Sounds interesting, tell me more!",
            "free_talk_reply": "I see. What happened next?",
            "free_talk_summary": SUMMARY_JSON,
        }
        self.replies.update(replies or {})
        self.contexts: List[ConversationContext] = []
        self.error: Optional[Exception] = None

    async def generate(self, context: ConversationContext) -> str:
        self.contexts.append(context)
        if self.error is not None:
            raise self.error
        return self.replies[context.purpose]

    def purposes(self) -> List[str]:
        return [c.purpose for c in self.contexts]


def _text(en: str, de: Optional[str] = None) -> LocalizedText:
    return LocalizedText(en=en, de=de or en)


def build_test_catalog() -> QuestionCatalog:
    """Small catalog: three packs, every question type, one deep-only question."""
    team = Question(
        id="q-team",
        text=_text("Describe your team.", "Beschreibe dein Team."),
        type="text",
        validation=TextConstraints(min_length=3, max_length=500),
        follow_up_rules=(
            FollowUpRule(
                condition="answer_too_short",
                threshold=20,
                follow_up_text=_text("Could you say more?", "Kannst du mehr sagen?"),
            ),
            FollowUpRule(
                condition="contains_keywords",
                keywords=("meeting",),
                follow_up_text=_text("How many meetings?", "Wie viele Meetings?"),
            ),
        ),
    )
    satisfaction = Question(
        id="q-satisfaction",
        text=_text("How satisfied are you?", "Wie zufrieden bist du?"),
        type="scale",
        scale=ScaleRange(min=1, max=5),
    )
    editor = Question(
        id="q-editor",
        text=_text("Which editor do you use?", "Welchen Editor nutzt du?"),
        type="single_choice",
        options=LocalizedOptions(en=("VS Code", "Vim", "Other"), de=("VS Code", "Vim", "Andere")),
    )
    tests = Question(
        id="q-tests",
        text=_text("Which tests do you write?", "Welche Tests schreibst du?"),
        type="multiple_choice",
        options=LocalizedOptions(en=("Unit", "Integration"), de=("Unit", "Integration")),
    )
    years = Question(
        id="q-years",
        text=_text("Years of experience?", "Jahre Erfahrung?"),
        type="number",
        required=False,
    )
    architecture = Question(
        id="q-architecture",
        text=_text("Describe your architecture.", "Beschreibe eure Architektur."),
        type="text",
        applicable_modes=(SurveyMode.DEEP,),
    )
    return QuestionCatalog(
        packs=(
            QuestionPack(
                id="pack-team", name=_text("Team"), version="1.0.0", questions=(team, satisfaction)
            ),
            QuestionPack(
                id="pack-tools", name=_text("Tools"), version="1.0.0", questions=(editor, tests)
            ),
            QuestionPack(
                id="pack-extra",
                name=_text("Extra"),
                version="1.0.0",
                questions=(years, architecture),
            ),
        )
    )


@pytest.fixture
async def db_path():
    """Create and initialize a temporary database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "test.db"
        await init_database(path)
        yield path


@pytest.fixture
def store(db_path):
    return SqliteStore(db_path)


@pytest.fixture
def session_repo(store):
    return SessionRepository(store)


@pytest.fixture
def checkpoint_service(store):
    return CheckpointService(store, keep_count=5)


@pytest.fixture
def catalog():
    return build_test_catalog()


@pytest.fixture
def generator():
    return FakeTextGenerator()


@pytest.fixture
async def engine(db_path, catalog, generator):
    """Fully wired services over the temporary database and test catalog."""
    return await create_engine(
        db_path=db_path,
        catalog=catalog,
        generator_factory=lambda ai_config: generator,
        language="en",
    )


@pytest.fixture
def project_id():
    return str(uuid.uuid4())


@pytest.fixture
def model_config():
    return {
        "provider": "anthropic",
        "model_name": "claude-3-7-sonnet-latest",
        "temperature": 0.5,
        "max_tokens": 1000,
    }
