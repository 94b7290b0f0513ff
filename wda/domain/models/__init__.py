"""Domain models package."""

from .session import (
    AIModelConfig,
    AIProvider,
    Session,
    SessionStatus,
    SurveyMode,
    compute_progress,
)
from .response import AnswerValue, Response, ResponseMetadata
from .free_talk import (
    FreeTalkEntry,
    FreeTalkTrigger,
    MessageRole,
    Sentiment,
    TranscriptMessage,
)
from .checkpoint import (
    Checkpoint,
    CheckpointMetadata,
    CheckpointReason,
    CheckpointSnapshot,
)
from .question import (
    FollowUpCondition,
    FollowUpRule,
    LocalizedOptions,
    LocalizedText,
    Question,
    QuestionCatalog,
    QuestionPack,
    QuestionType,
    ScaleRange,
    TextConstraints,
)

__all__ = [
    "AIModelConfig",
    "AIProvider",
    "Session",
    "SessionStatus",
    "SurveyMode",
    "compute_progress",
    "AnswerValue",
    "Response",
    "ResponseMetadata",
    "FreeTalkEntry",
    "FreeTalkTrigger",
    "MessageRole",
    "Sentiment",
    "TranscriptMessage",
    "Checkpoint",
    "CheckpointMetadata",
    "CheckpointReason",
    "CheckpointSnapshot",
    "FollowUpCondition",
    "FollowUpRule",
    "LocalizedOptions",
    "LocalizedText",
    "Question",
    "QuestionCatalog",
    "QuestionPack",
    "QuestionType",
    "ScaleRange",
    "TextConstraints",
]
