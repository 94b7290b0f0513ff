# noqa
from wda.services.checkpoint_service import CheckpointService
from wda.services.conversation_service import ConversationService
from wda.services.follow_up_service import FollowUpService
from wda.services.question_selector import QuestionSelector
from wda.services.session_service import SessionService

__all__ = [
    "CheckpointService",
    "ConversationService",
    "FollowUpService",
    "QuestionSelector",
    "SessionService",
]
