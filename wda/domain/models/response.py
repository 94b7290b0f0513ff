"""Response domain model.

A Response records one accepted answer. It is written once under
sessions/{session_id}/responses/{id} and never modified afterwards.
"""

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

AnswerValue = Union[bool, int, float, str, List[str]]


class ResponseMetadata(BaseModel):
    """Advisory signals attached when the answer was accepted."""

    model_config = ConfigDict(frozen=True)

    pack_id: Optional[str] = None
    sentiment: Optional[str] = None
    free_talk_potential: Optional[str] = None
    free_talk_suggested: bool = False
    frustration_confidence: float = 0.0
    digression_detected: bool = False
    follow_up_of: Optional[str] = Field(
        default=None, description="Question id this answer follows up on"
    )


class Response(BaseModel):
    """Single accepted answer."""

    model_config = ConfigDict(frozen=True)

    id: str
    session_id: str
    question_id: str
    answer: Optional[AnswerValue] = Field(
        default=None, description="None when an optional question was skipped"
    )
    answered_at: datetime
    time_spent: float = Field(default=0, ge=0, description="Milliseconds")
    is_valid: bool = True
    validation_errors: List[str] = Field(default_factory=list)
    triggered_follow_up: bool = False
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)
