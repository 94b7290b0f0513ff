"""
Prompts for the conversational layer around the survey.

Builds ConversationContext values for:
- framing a catalog question conversationally
- short feedback after an accepted answer
- opening, continuing and summarizing a free-form conversation

The summary prompt asks for JSON, parsed by parse_free_talk_summary.
"""

import json
import re
from typing import List, Optional

import pydantic
from pydantic import BaseModel, Field

from wda.core.exceptions import ProviderResponseParseError
from wda.domain.models.free_talk import (
    FreeTalkTrigger,
    MessageRole,
    Sentiment,
    TranscriptMessage,
)
from wda.domain.models.question import Question
from wda.llm.client import ChatMessage
from wda.llm.generator import ConversationContext

LANGUAGE_NAMES = {"de": "German (informal 'du')", "en": "English"}


def get_interviewer_system_prompt(language: str) -> str:
    """System prompt shared by every conversational call."""
    return (
        "You are a friendly, curious interviewer running a survey about "
        "developer workflows. Keep replies short (one to three sentences), "
        "warm and neutral. Never judge answers and never invent facts about "
        "the respondent. "
        f"Always reply in {LANGUAGE_NAMES.get(language, 'English')}."
    )


def _transcript_messages(transcript: List[TranscriptMessage]) -> List[ChatMessage]:
    """Map a free-talk transcript onto chat roles.

    Consecutive turns of the same role are merged; providers require
    alternating roles.
    """
    messages: List[ChatMessage] = []
    for turn in transcript:
        role = "assistant" if turn.role == MessageRole.AI else "user"
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"] += f"\n\n{turn.message}"
        else:
            messages.append({"role": role, "content": turn.message})
    # Providers expect the conversation to open with a user turn
    if messages and messages[0]["role"] == "assistant":
        messages.insert(0, {"role": "user", "content": "Let's talk freely."})
    return messages


def build_question_framing_context(
    question: Question, current: int, total: int, language: str
) -> ConversationContext:
    prompt = (
        f"Question {current + 1} of {total}.\n"
        f"Catalog question: {question.text.get(language)}\n\n"
        "Introduce this question conversationally with a brief lead-in "
        "sentence, then ask it in your own words. Do not repeat the catalog "
        "question verbatim and do not answer it. Reply with the message only."
    )
    return ConversationContext(
        purpose="question_framing",
        system=get_interviewer_system_prompt(language),
        messages=[{"role": "user", "content": prompt}],
        language=language,
    )


def build_answer_feedback_context(
    question: Question, answer_text: Optional[str], language: str
) -> ConversationContext:
    """Feedback prompt; answer_text None means the question was skipped."""
    shown = answer_text if answer_text is not None else "(skipped, no answer given)"
    prompt = (
        f"Question: {question.text.get(language)}\n"
        f"Respondent's answer: {shown}\n\n"
        "Acknowledge the answer in one short sentence. Do not ask a new "
        "question. Reply with the message only."
    )
    return ConversationContext(
        purpose="answer_feedback",
        system=get_interviewer_system_prompt(language),
        messages=[{"role": "user", "content": prompt}],
        language=language,
    )


def build_free_talk_opening_context(
    trigger: FreeTalkTrigger,
    language: str,
    question: Optional[Question] = None,
    initial_message: Optional[str] = None,
) -> ConversationContext:
    reasons = {
        FreeTalkTrigger.USER_INITIATED: "The respondent asked to talk freely.",
        FreeTalkTrigger.AI_DETECTED_FRUSTRATION: (
            "The respondent sounded frustrated in their last answer."
        ),
        FreeTalkTrigger.FOLLOW_UP_DIGRESSION: (
            "The respondent started talking about a related topic."
        ),
        FreeTalkTrigger.END_OF_SURVEY: "The structured survey is finished.",
    }
    lines = [reasons[trigger]]
    if question is not None:
        lines.append(f"Last survey question: {question.text.get(language)}")
    if initial_message:
        lines.append(f"Respondent said: {initial_message}")
    lines.append(
        "Open a relaxed, free-form conversation outside the structured "
        "survey and invite them to tell you more. Reply with the message only."
    )
    return ConversationContext(
        purpose="free_talk_opening",
        system=get_interviewer_system_prompt(language),
        messages=[{"role": "user", "content": "\n".join(lines)}],
        language=language,
    )


def build_free_talk_reply_context(
    transcript: List[TranscriptMessage], language: str
) -> ConversationContext:
    return ConversationContext(
        purpose="free_talk_reply",
        system=get_interviewer_system_prompt(language)
        + " This is a free-form conversation; follow the respondent's lead "
        "and ask at most one open question.",
        messages=_transcript_messages(transcript),
        language=language,
    )


def build_free_talk_summary_context(
    transcript: List[TranscriptMessage], language: str
) -> ConversationContext:
    rendered = "\n".join(f"{t.role.value}: {t.message}" for t in transcript)
    prompt = (
        "Summarize this free-form conversation from a developer survey.\n\n"
        f"{rendered}\n\n"
        "Respond with a JSON object only, no prose, using exactly these keys:\n"
        '{"summary": "<two sentences>", '
        '"key_insights": ["<insight>", ...], '
        '"tags": ["<lowercase-tag>", ...], '
        '"sentiment": "positive" | "neutral" | "negative" | "mixed"}'
    )
    return ConversationContext(
        purpose="free_talk_summary",
        system=get_interviewer_system_prompt(language),
        messages=[{"role": "user", "content": prompt}],
        language=language,
    )


class FreeTalkSummary(BaseModel):
    """Structured summary returned by the AI for a closed free-form entry."""

    summary: str = ""
    key_insights: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL


_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def parse_free_talk_summary(text: str) -> FreeTalkSummary:
    """
    Parse the JSON summary reply.

    Tolerates surrounding markdown code fences.

    Raises:
        ProviderResponseParseError: Reply is not a JSON object of the expected shape
    """
    cleaned = _FENCE.sub("", text.strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ProviderResponseParseError(
            f"Free talk summary is not valid JSON: {e.msg}"
        ) from e
    if not isinstance(data, dict):
        raise ProviderResponseParseError("Free talk summary is not a JSON object")
    try:
        return FreeTalkSummary.model_validate(data)
    except pydantic.ValidationError as e:
        raise ProviderResponseParseError(
            f"Free talk summary has unexpected fields: {e.error_count()} errors"
        ) from e
