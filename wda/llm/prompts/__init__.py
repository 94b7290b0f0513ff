# noqa
from wda.llm.prompts.conversation import (
    FreeTalkSummary,
    build_answer_feedback_context,
    build_free_talk_opening_context,
    build_free_talk_reply_context,
    build_free_talk_summary_context,
    build_question_framing_context,
    parse_free_talk_summary,
)
from wda.llm.prompts.messages import (
    ensure_conversational,
    free_talk_transition_message,
    welcome_back_message,
)

__all__ = [
    "FreeTalkSummary",
    "build_answer_feedback_context",
    "build_free_talk_opening_context",
    "build_free_talk_reply_context",
    "build_free_talk_summary_context",
    "build_question_framing_context",
    "parse_free_talk_summary",
    "ensure_conversational",
    "free_talk_transition_message",
    "welcome_back_message",
]
