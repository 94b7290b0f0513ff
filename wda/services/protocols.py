"""
Service protocol definitions (interfaces).

Defines the collaborator interfaces the survey services depend on, using
typing.Protocol so fakes and alternative backends need no shared base class.
"""

from typing import Callable, Protocol

from wda.domain.models.checkpoint import Checkpoint, CheckpointReason
from wda.domain.models.session import AIModelConfig, Session
from wda.llm.generator import ConversationContext


class ITextGenerator(Protocol):
    """
    Protocol for AI text generation.

    The conversation flow never inspects provider-specific reply shapes; it
    needs a string back or a ProviderError.
    """

    async def generate(self, context: ConversationContext) -> str:
        """
        Produce text for a conversation context.

        Args:
            context: Purpose, system prompt, messages and language

        Returns:
            Generated text
        """
        ...


# Resolves the generator for a session's model configuration
TextGeneratorFactory = Callable[[AIModelConfig], ITextGenerator]


class ICheckpointService(Protocol):
    """Protocol for checkpoint creation used by the lifecycle and flow services."""

    async def create_checkpoint(
        self, session: Session, reason: CheckpointReason
    ) -> Checkpoint:
        ...
