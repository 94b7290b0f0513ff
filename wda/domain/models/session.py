"""Session domain models for survey lifecycle management.

Core Models:
    - Session: one survey run with its cursor, progress and child record ids
    - AIModelConfig: provider/model settings validated at creation

Session Lifecycle:
    not_started -> in_progress -> {paused, completed, abandoned}
    paused -> in_progress (resume) | abandoned
    completed and abandoned are terminal.

Sessions are stored whole under sessions/{id}; responses and free-form
entries live under the session key and are referenced by id. The version
field is the optimistic concurrency token checked by the store on save.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SurveyMode(str, Enum):
    """Breadth of the survey, fixed at creation."""

    QUICK = "quick"
    STANDARD = "standard"
    DEEP = "deep"


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.ABANDONED})


class AIProvider(str, Enum):
    """AI backends the text generator can talk to."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"
    OLLAMA = "ollama"


class AIModelConfig(BaseModel):
    """Model settings chosen when the session is created."""

    model_config = ConfigDict(protected_namespaces=())

    provider: AIProvider
    model_name: str
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


def compute_progress(current: int, total: int) -> int:
    """Percent complete, rounded half up. Zero when there is nothing to ask."""
    if total <= 0:
        return 0
    return (200 * current + total) // (2 * total)


class Session(BaseModel):
    """Top-level survey session entity.

    Invariants:
        - 0 <= current_question_index <= total_questions
        - progress == compute_progress(current_question_index, total_questions)
          except after completion, where it is 100
        - response_ids and free_talk_ids only ever grow
    """

    id: str
    project_id: str
    name: str
    mode: SurveyMode
    status: SessionStatus = SessionStatus.NOT_STARTED
    ai_config: AIModelConfig
    selected_pack_ids: List[str] = Field(default_factory=list)
    current_question_index: int = Field(default=0, ge=0)
    total_questions: int = Field(default=0, ge=0)
    progress: int = Field(default=0, ge=0, le=100)
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    response_ids: List[str] = Field(default_factory=list)
    free_talk_ids: List[str] = Field(default_factory=list)
    active_free_talk_id: Optional[str] = Field(
        default=None, description="Open free-form entry, if any"
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)
    version: int = Field(default=0, ge=0, description="Store version at last save")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_exhausted(self) -> bool:
        return self.current_question_index >= self.total_questions
