"""Tests for conversational prompts, fixed messages and the text generator."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from wda.core.exceptions import ProviderResponseParseError
from wda.core.timeutil import utc_now
from wda.domain.models.free_talk import FreeTalkTrigger, MessageRole, Sentiment, TranscriptMessage
from wda.domain.models.question import LocalizedText, Question
from wda.domain.models.session import AIModelConfig
from wda.llm.client import LLMResponse
from wda.llm.generator import LLMTextGenerator, get_text_generator
from wda.llm.prompts import (
    build_free_talk_opening_context,
    build_free_talk_reply_context,
    build_question_framing_context,
    ensure_conversational,
    parse_free_talk_summary,
    welcome_back_message,
)

QUESTION = Question(
    id="q-team",
    text=LocalizedText(en="Describe your team.", de="Beschreibe dein Team."),
    type="text",
)


def transcript(*turns):
    start = utc_now()
    return [
        TranscriptMessage(role=role, message=text, timestamp=start + timedelta(seconds=i))
        for i, (role, text) in enumerate(turns)
    ]


class TestPrompts:
    def test_framing_prompt_is_localized(self):
        context = build_question_framing_context(QUESTION, 0, 8, "de")

        assert context.purpose == "question_framing"
        assert "Question 1 of 8" in context.messages[0]["content"]
        assert "Beschreibe dein Team." in context.messages[0]["content"]
        assert "German" in context.system

    def test_opening_prompt_mentions_trigger_and_message(self):
        context = build_free_talk_opening_context(
            FreeTalkTrigger.AI_DETECTED_FRUSTRATION, "en", QUESTION, "Builds are slow"
        )

        content = context.messages[0]["content"]
        assert "frustrated" in content
        assert "Describe your team." in content
        assert "Builds are slow" in content

    def test_reply_context_alternates_roles(self):
        context = build_free_talk_reply_context(
            transcript(
                (MessageRole.AI, "Tell me more"),
                (MessageRole.USER, "Builds are slow"),
                (MessageRole.USER, "And flaky"),
            ),
            "en",
        )

        assert [m["role"] for m in context.messages] == ["user", "assistant", "user"]
        assert context.messages[-1]["content"] == "Builds are slow\n\nAnd flaky"


class TestSummaryParsing:
    def test_plain_json(self):
        summary = parse_free_talk_summary(
            '{"summary": "Slow CI", "key_insights": ["CI"], "tags": ["ci"], "sentiment": "mixed"}'
        )

        assert summary.summary == "Slow CI"
        assert summary.sentiment == Sentiment.MIXED

    def test_code_fenced_json(self):
        summary = parse_free_talk_summary('```json\n{"summary": "ok"}\n```')

        assert summary.summary == "ok"
        assert summary.tags == []
        assert summary.sentiment == Sentiment.NEUTRAL

    @pytest.mark.parametrize(
        "text",
        ["not json at all", "[1, 2]", '{"sentiment": "furious"}'],
    )
    def test_rejects_malformed(self, text):
        with pytest.raises(ProviderResponseParseError):
            parse_free_talk_summary(text)


class TestMessages:
    def test_welcome_back_german(self):
        message = welcome_back_message(3, "de")

        assert message.startswith("Hey! Schön, dass du wieder da bist!")
        assert "3 Fragen" in message

    def test_welcome_back_singular(self):
        assert "1 question." in welcome_back_message(1, "en")

    def test_conversational_framing_kept(self):
        framing = "Let's hear about the people you work with. Who's on your team?"

        assert ensure_conversational(framing, QUESTION, "en") == framing

    @pytest.mark.parametrize("framing", ["Describe your team.", "Beschreibe dein Team.", "  "])
    def test_verbatim_or_empty_framing_replaced(self, framing):
        assert ensure_conversational(framing, QUESTION, "de") == (
            "Nächste Frage: Beschreibe dein Team."
        )


class TestTextGenerator:
    @pytest.mark.asyncio
    async def test_strips_reply(self):
        client = MagicMock()
        client.provider_name = "ollama"
        client.complete = AsyncMock(return_value=LLMResponse(content="  Hi!  ", model="llama2"))

        text = await LLMTextGenerator(client).generate(
            build_question_framing_context(QUESTION, 0, 1, "en")
        )

        assert text == "Hi!"
        assert client.complete.call_args.kwargs["system"].startswith("You are a friendly")

    @pytest.mark.asyncio
    async def test_empty_reply_is_an_error(self):
        client = MagicMock()
        client.provider_name = "ollama"
        client.complete = AsyncMock(return_value=LLMResponse(content="   ", model="llama2"))

        with pytest.raises(ProviderResponseParseError, match="Empty reply"):
            await LLMTextGenerator(client).generate(
                build_question_framing_context(QUESTION, 0, 1, "en")
            )

    def test_generators_are_reused_per_config(self):
        config = AIModelConfig(provider="ollama", model_name="llama2", temperature=0.3)

        assert get_text_generator(config) is get_text_generator(config.model_copy())
