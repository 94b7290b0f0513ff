"""
Text generation capability used by the conversation flow.

The services only ever call generate(context) -> str. Which provider
answers is decided once, by get_text_generator, from the session's model
configuration.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Tuple

import structlog

from wda.core.exceptions import ProviderResponseParseError
from wda.domain.models.session import AIModelConfig
from wda.llm.client import ChatMessage, LLMClient, get_llm_client

log = structlog.get_logger(__name__)

GenerationPurpose = Literal[
    "question_framing",
    "answer_feedback",
    "free_talk_opening",
    "free_talk_reply",
    "free_talk_summary",
]


@dataclass
class ConversationContext:
    """Everything a provider needs to produce one reply."""

    purpose: GenerationPurpose
    system: str
    messages: List[ChatMessage] = field(default_factory=list)
    language: str = "en"


class LLMTextGenerator:
    """Text generator backed by one LLM client."""

    def __init__(self, client: LLMClient):
        self.client = client

    async def generate(self, context: ConversationContext) -> str:
        """
        Produce text for a conversation context.

        Raises:
            ProviderError: Provider failed or is unreachable
            ProviderResponseParseError: Provider replied with empty text
        """
        response = await self.client.complete(
            messages=context.messages, system=context.system
        )
        text = response.content.strip()
        if not text:
            raise ProviderResponseParseError(
                f"Empty reply from {self.client.provider_name} for {context.purpose}"
            )
        log.debug(
            "text_generated",
            purpose=context.purpose,
            provider=self.client.provider_name,
            length=len(text),
        )
        return text


_generators: Dict[Tuple, LLMTextGenerator] = {}


def get_text_generator(ai_config: AIModelConfig) -> LLMTextGenerator:
    """Text generator for a model configuration, reused across calls."""
    key = (
        ai_config.provider,
        ai_config.model_name,
        ai_config.temperature,
        ai_config.max_tokens,
    )
    if key not in _generators:
        _generators[key] = LLMTextGenerator(get_llm_client(ai_config))
    return _generators[key]
