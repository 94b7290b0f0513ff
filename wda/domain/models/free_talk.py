"""Free-form conversation ("Freier Talk") models.

An entry is opened beside the question flow, collects an append-only
transcript, and is closed once with an AI-derived summary. At most one
entry per session is open at a time.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FreeTalkTrigger(str, Enum):
    USER_INITIATED = "user_initiated"
    AI_DETECTED_FRUSTRATION = "ai_detected_frustration"
    FOLLOW_UP_DIGRESSION = "follow_up_digression"
    END_OF_SURVEY = "end_of_survey"


class MessageRole(str, Enum):
    USER = "user"
    AI = "ai"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    MIXED = "mixed"


class TranscriptMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    message: str
    timestamp: datetime


class FreeTalkEntry(BaseModel):
    """Free-form conversation attached to a session."""

    id: str
    session_id: str
    trigger: FreeTalkTrigger
    triggered_by_question_id: Optional[str] = None
    transcript: List[TranscriptMessage] = Field(default_factory=list)
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration: Optional[float] = Field(
        default=None, description="Milliseconds, set when the entry is closed"
    )
    summary: Optional[str] = None
    key_insights: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    sentiment: Optional[Sentiment] = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None
