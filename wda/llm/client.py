"""
LLM client abstraction for multiple AI providers.

Provides an async chat interface with:
- Structured logging of requests/responses
- Timeout handling with one retry on timeout or rate limit
- Usage tracking (tokens)
- Provider failures mapped onto ProviderError subclasses

Supported providers:
- anthropic: Claude models (Messages API)
- openai: GPT models (Chat Completions API)
- google: Gemini models (Generative Language API)
- ollama: local models served by Ollama (/api/chat)
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
import structlog

from wda.core.config import settings
from wda.core.exceptions import (
    ConfigurationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseParseError,
    ProviderTimeoutError,
)
from wda.domain.models.session import AIModelConfig, AIProvider

log = structlog.get_logger(__name__)


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_MODELS: Dict[AIProvider, str] = {
    AIProvider.ANTHROPIC: "claude-3-7-sonnet-latest",
    AIProvider.OPENAI: "gpt-4o-mini",
    AIProvider.GOOGLE: "gemini-1.5-flash",
    AIProvider.OLLAMA: "llama2",
}

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000

# Chat messages are {"role": "user" | "assistant", "content": str}
ChatMessage = Dict[str, str]


# =============================================================================
# Response and Base Classes
# =============================================================================


@dataclass
class LLMResponse:
    """Standardized LLM response."""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    raw_response: Optional[Dict[str, Any]] = None


class LLMClient(ABC):
    """Abstract base for LLM providers.

    Subclasses build the provider payload and parse its reply; the shared
    _post_json handles the HTTP call, retries and error mapping.
    """

    provider_name: str = "unknown"
    max_retries = 1  # 2 total attempts
    base_delay = 1.0  # seconds

    def __init__(
        self,
        model: str,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: Optional[float] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout or settings.llm_timeout_seconds

    @abstractmethod
    async def complete(
        self,
        messages: List[ChatMessage],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """
        Generate a chat completion.

        Args:
            messages: Conversation so far, oldest first, ending with a user turn
            system: Optional system prompt
            temperature: Sampling temperature (defaults to init value)
            max_tokens: Maximum tokens in response (defaults to init value)
            timeout: Optional timeout override in seconds

        Returns:
            LLMResponse with content and metadata

        Raises:
            ProviderTimeoutError: After all retries exhausted on timeout
            ProviderRateLimitError: After all retries exhausted on rate limit (429)
            ProviderError: Other HTTP or connection failures (no retry)
            ProviderResponseParseError: Reply did not have the expected shape
        """
        pass

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> tuple[Dict[str, Any], float]:
        """POST a JSON payload with retry on timeout/rate-limit.

        Returns:
            (decoded JSON body, latency in ms of the successful attempt)
        """
        timeout = timeout or self.timeout

        for attempt in range(self.max_retries + 1):
            start = time.perf_counter()

            log.debug(
                "llm_call_start",
                provider=self.provider_name,
                model=self.model,
                message_count=len(payload.get("messages", payload.get("contents", []))),
                attempt=attempt + 1,
                max_retries=self.max_retries,
            )

            try:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.post(
                        url, headers=headers, params=params, json=payload
                    )
                    response.raise_for_status()
                    data = response.json()
                return data, (time.perf_counter() - start) * 1000

            except httpx.TimeoutException as e:
                log.warning(
                    "llm_timeout",
                    provider=self.provider_name,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    timeout_seconds=timeout,
                )
                if attempt < self.max_retries:
                    delay = self.base_delay * (2**attempt)
                    log.info(
                        "llm_retry_after_timeout",
                        delay_seconds=delay,
                        next_attempt=attempt + 2,
                    )
                    await asyncio.sleep(delay)
                else:
                    raise ProviderTimeoutError(
                        f"{self.provider_name} call timed out after "
                        f"{self.max_retries + 1} attempts (timeout={timeout}s)"
                    ) from e

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code == 429:
                    log.warning(
                        "llm_rate_limit",
                        provider=self.provider_name,
                        attempt=attempt + 1,
                        max_retries=self.max_retries,
                    )
                    if attempt < self.max_retries:
                        delay = self.base_delay * (2**attempt)
                        log.info(
                            "llm_retry_after_rate_limit",
                            delay_seconds=delay,
                            next_attempt=attempt + 2,
                        )
                        await asyncio.sleep(delay)
                    else:
                        raise ProviderRateLimitError(
                            f"{self.provider_name} rate limit exceeded after "
                            f"{self.max_retries + 1} attempts"
                        ) from e
                else:
                    # Don't retry other 4xx/5xx errors
                    log.error(
                        "llm_http_error",
                        provider=self.provider_name,
                        status_code=status_code,
                    )
                    raise ProviderError(
                        f"{self.provider_name} returned HTTP {status_code}"
                    ) from e

            except httpx.RequestError as e:
                log.error(
                    "llm_connection_error", provider=self.provider_name, error=str(e)
                )
                raise ProviderError(
                    f"{self.provider_name} is unreachable: {e.__class__.__name__}"
                ) from e

            except ValueError as e:
                raise ProviderResponseParseError(
                    f"{self.provider_name} returned a non-JSON body"
                ) from e

        # Unreachable: loop either returns or raises
        assert False, "unreachable"

    def _log_complete(self, latency_ms: float, usage: Dict[str, int]) -> None:
        log.info(
            "llm_call_complete",
            provider=self.provider_name,
            model=self.model,
            latency_ms=round(latency_ms, 2),
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
        )


# =============================================================================
# Anthropic Client
# =============================================================================


class AnthropicClient(LLMClient):
    """Anthropic Claude API client (Messages API)."""

    provider_name = "anthropic"

    def __init__(self, model: str, api_key: Optional[str] = None, **kwargs):
        super().__init__(model, **kwargs)
        self.api_key = api_key or settings.anthropic_api_key
        self.base_url = "https://api.anthropic.com/v1"

        if not self.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY not configured. Set it in .env.")

        log.info("anthropic_client_initialized", model=self.model, timeout=self.timeout)

    async def complete(
        self,
        messages: List[ChatMessage],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        headers = {
            "x-api-key": self.api_key,
            "content-type": "application/json",
            "anthropic-version": "2023-06-01",
        }
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
        }
        if system:
            payload["system"] = system

        data, latency_ms = await self._post_json(
            f"{self.base_url}/messages", payload, headers=headers, timeout=timeout
        )

        try:
            content = "".join(
                block.get("text", "")
                for block in data["content"]
                if block.get("type", "text") == "text"
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ProviderResponseParseError("anthropic reply has no content") from e

        usage = {
            "input_tokens": data.get("usage", {}).get("input_tokens", 0),
            "output_tokens": data.get("usage", {}).get("output_tokens", 0),
        }
        self._log_complete(latency_ms, usage)
        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )


# =============================================================================
# OpenAI-Compatible Clients
# =============================================================================


class OpenAICompatibleClient(LLMClient):
    """
    Base class for OpenAI-compatible chat completion APIs.

    Subclasses supply base_url and api key.
    """

    provider_name = "openai"

    def __init__(self, model: str, base_url: str, api_key: str, **kwargs):
        super().__init__(model, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    async def complete(
        self,
        messages: List[ChatMessage],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        chat = ([{"role": "system", "content": system}] if system else []) + messages
        payload = {
            "model": self.model,
            "messages": chat,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }

        data, latency_ms = await self._post_json(
            f"{self.base_url}/chat/completions", payload, headers=headers, timeout=timeout
        )

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderResponseParseError(
                f"{self.provider_name} reply has no choices"
            ) from e

        usage = {
            "input_tokens": data.get("usage", {}).get("prompt_tokens", 0),
            "output_tokens": data.get("usage", {}).get("completion_tokens", 0),
        }
        self._log_complete(latency_ms, usage)
        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )


class OpenAIClient(OpenAICompatibleClient):
    """OpenAI API client. Base URL: https://api.openai.com/v1"""

    def __init__(self, model: str, api_key: Optional[str] = None, **kwargs):
        api_key = api_key or settings.openai_api_key
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured. Set it in .env.")
        super().__init__(
            model, base_url="https://api.openai.com/v1", api_key=api_key, **kwargs
        )
        log.info("openai_client_initialized", model=self.model, timeout=self.timeout)


# =============================================================================
# Google Client
# =============================================================================


class GoogleClient(LLMClient):
    """Google Gemini client (Generative Language API, generateContent)."""

    provider_name = "google"

    def __init__(self, model: str, api_key: Optional[str] = None, **kwargs):
        super().__init__(model, **kwargs)
        self.api_key = api_key or settings.google_api_key
        self.base_url = "https://generativelanguage.googleapis.com/v1beta"

        if not self.api_key:
            raise ConfigurationError("GOOGLE_API_KEY not configured. Set it in .env.")

        log.info("google_client_initialized", model=self.model, timeout=self.timeout)

    async def complete(
        self,
        messages: List[ChatMessage],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        contents = [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages
        ]
        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": self.temperature if temperature is None else temperature,
                "maxOutputTokens": max_tokens or self.max_tokens,
            },
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}

        data, latency_ms = await self._post_json(
            f"{self.base_url}/models/{self.model}:generateContent",
            payload,
            params={"key": self.api_key},
            timeout=timeout,
        )

        try:
            parts = data["candidates"][0]["content"]["parts"]
            content = "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderResponseParseError("google reply has no candidates") from e

        meta = data.get("usageMetadata", {})
        usage = {
            "input_tokens": meta.get("promptTokenCount", 0),
            "output_tokens": meta.get("candidatesTokenCount", 0),
        }
        self._log_complete(latency_ms, usage)
        return LLMResponse(
            content=content,
            model=self.model,
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )


# =============================================================================
# Ollama Client
# =============================================================================


class OllamaClient(LLMClient):
    """Local Ollama server client (/api/chat, non-streaming)."""

    provider_name = "ollama"

    def __init__(self, model: str, base_url: Optional[str] = None, **kwargs):
        super().__init__(model, **kwargs)
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        log.info(
            "ollama_client_initialized", model=self.model, base_url=self.base_url
        )

    async def complete(
        self,
        messages: List[ChatMessage],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        chat = ([{"role": "system", "content": system}] if system else []) + messages
        payload = {
            "model": self.model,
            "messages": chat,
            "stream": False,
            "options": {
                "temperature": self.temperature if temperature is None else temperature,
                "num_predict": max_tokens or self.max_tokens,
            },
        }

        data, latency_ms = await self._post_json(
            f"{self.base_url}/api/chat", payload, timeout=timeout
        )

        try:
            content = data["message"]["content"]
        except (KeyError, TypeError) as e:
            raise ProviderResponseParseError("ollama reply has no message") from e

        usage = {
            "input_tokens": data.get("prompt_eval_count", 0),
            "output_tokens": data.get("eval_count", 0),
        }
        self._log_complete(latency_ms, usage)
        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )


# =============================================================================
# Client Factory
# =============================================================================


def get_llm_client(ai_config: AIModelConfig) -> LLMClient:
    """
    Factory for the LLM client matching a session's model configuration.

    Args:
        ai_config: Provider, model name and optional sampling overrides

    Returns:
        LLMClient for the configured provider

    Raises:
        ConfigurationError: If the provider's API key is missing
    """
    model = ai_config.model_name or DEFAULT_MODELS[ai_config.provider]
    kwargs: Dict[str, Any] = {
        "temperature": (
            DEFAULT_TEMPERATURE
            if ai_config.temperature is None
            else ai_config.temperature
        ),
        "max_tokens": ai_config.max_tokens or DEFAULT_MAX_TOKENS,
    }

    if ai_config.provider == AIProvider.ANTHROPIC:
        return AnthropicClient(model, **kwargs)
    elif ai_config.provider == AIProvider.OPENAI:
        return OpenAIClient(model, **kwargs)
    elif ai_config.provider == AIProvider.GOOGLE:
        return GoogleClient(model, **kwargs)
    elif ai_config.provider == AIProvider.OLLAMA:
        return OllamaClient(model, **kwargs)
    else:
        raise ConfigurationError(f"Unknown AI provider '{ai_config.provider}'")
