"""Tests for LLM provider clients."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from wda.core.exceptions import (
    ConfigurationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseParseError,
    ProviderTimeoutError,
)
from wda.domain.models.session import AIModelConfig
from wda.llm.client import (
    AnthropicClient,
    GoogleClient,
    LLMResponse,
    OllamaClient,
    OpenAIClient,
    get_llm_client,
)

MESSAGES = [{"role": "user", "content": "Say hello"}]
REQUEST = httpx.Request("POST", "https://example.test")


def mock_http(*bodies):
    """Patch httpx.AsyncClient so post() returns the given JSON bodies in order."""
    responses = []
    for body in bodies:
        response = MagicMock()
        response.json.return_value = body
        response.raise_for_status = MagicMock()
        responses.append(response)
    patcher = patch("httpx.AsyncClient")
    mock_class = patcher.start()
    mock_client = AsyncMock()
    mock_client.post.side_effect = responses
    mock_class.return_value.__aenter__.return_value = mock_client
    return patcher, mock_client


def status_error(code: int) -> httpx.HTTPStatusError:
    return httpx.HTTPStatusError(
        f"HTTP {code}", request=REQUEST, response=httpx.Response(code, request=REQUEST)
    )


@pytest.fixture
def no_sleep():
    with patch("wda.llm.client.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestAnthropicClient:
    def test_init_without_api_key_raises(self):
        with patch("wda.llm.client.settings") as mock_settings:
            mock_settings.anthropic_api_key = None
            with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
                AnthropicClient("claude-3-7-sonnet-latest", timeout=30.0)

    @pytest.mark.asyncio
    async def test_complete_success(self):
        patcher, mock_client = mock_http(
            {
                "content": [{"type": "text", "text": "Hello, world!"}],
                "model": "claude-3-7-sonnet-latest",
                "usage": {"input_tokens": 10, "output_tokens": 5},
            }
        )
        try:
            client = AnthropicClient("claude-3-7-sonnet-latest", api_key="test-key")
            response = await client.complete(MESSAGES, system="Be brief")
        finally:
            patcher.stop()

        payload = mock_client.post.call_args.kwargs["json"]
        headers = mock_client.post.call_args.kwargs["headers"]
        assert isinstance(response, LLMResponse)
        assert response.content == "Hello, world!"
        assert response.usage == {"input_tokens": 10, "output_tokens": 5}
        assert payload["system"] == "Be brief"
        assert payload["messages"] == MESSAGES
        assert headers["x-api-key"] == "test-key"

    @pytest.mark.asyncio
    async def test_malformed_reply(self):
        patcher, _ = mock_http({"unexpected": True})
        try:
            client = AnthropicClient("claude-3-7-sonnet-latest", api_key="test-key")
            with pytest.raises(ProviderResponseParseError):
                await client.complete(MESSAGES)
        finally:
            patcher.stop()


class TestRetries:
    @pytest.mark.asyncio
    async def test_timeout_retried_once(self, no_sleep):
        with patch("httpx.AsyncClient") as mock_class:
            mock_client = AsyncMock()
            ok = MagicMock()
            ok.json.return_value = {"message": {"content": "hi"}}
            mock_client.post.side_effect = [httpx.ReadTimeout("slow"), ok]
            mock_class.return_value.__aenter__.return_value = mock_client

            response = await OllamaClient("llama2").complete(MESSAGES)

        assert response.content == "hi"
        assert mock_client.post.call_count == 2
        no_sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_after_retries(self, no_sleep):
        with patch("httpx.AsyncClient") as mock_class:
            mock_client = AsyncMock()
            mock_client.post.side_effect = httpx.ReadTimeout("slow")
            mock_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(ProviderTimeoutError):
                await OllamaClient("llama2").complete(MESSAGES)

        assert mock_client.post.call_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_after_retries(self, no_sleep):
        with patch("httpx.AsyncClient") as mock_class:
            mock_client = AsyncMock()
            limited = MagicMock()
            limited.raise_for_status.side_effect = status_error(429)
            mock_client.post.return_value = limited
            mock_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(ProviderRateLimitError):
                await OllamaClient("llama2").complete(MESSAGES)

        assert mock_client.post.call_count == 2

    @pytest.mark.asyncio
    async def test_server_error_not_retried(self, no_sleep):
        with patch("httpx.AsyncClient") as mock_class:
            mock_client = AsyncMock()
            failing = MagicMock()
            failing.raise_for_status.side_effect = status_error(500)
            mock_client.post.return_value = failing
            mock_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(ProviderError, match="HTTP 500"):
                await OllamaClient("llama2").complete(MESSAGES)

        assert mock_client.post.call_count == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_error(self):
        with patch("httpx.AsyncClient") as mock_class:
            mock_client = AsyncMock()
            mock_client.post.side_effect = httpx.ConnectError("refused")
            mock_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(ProviderError, match="unreachable"):
                await OllamaClient("llama2").complete(MESSAGES)

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        with patch("httpx.AsyncClient") as mock_class:
            mock_client = AsyncMock()
            garbled = MagicMock()
            garbled.json.side_effect = ValueError("not json")
            mock_client.post.return_value = garbled
            mock_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(ProviderResponseParseError):
                await OllamaClient("llama2").complete(MESSAGES)


class TestProviderPayloads:
    @pytest.mark.asyncio
    async def test_openai_prepends_system_message(self):
        patcher, mock_client = mock_http(
            {
                "choices": [{"message": {"content": "Hi there"}}],
                "usage": {"prompt_tokens": 7, "completion_tokens": 2},
            }
        )
        try:
            client = OpenAIClient("gpt-4o-mini", api_key="sk-test")
            response = await client.complete(MESSAGES, system="Be brief")
        finally:
            patcher.stop()

        payload = mock_client.post.call_args.kwargs["json"]
        assert payload["messages"][0] == {"role": "system", "content": "Be brief"}
        assert response.content == "Hi there"
        assert response.usage == {"input_tokens": 7, "output_tokens": 2}

    @pytest.mark.asyncio
    async def test_google_maps_roles(self):
        patcher, mock_client = mock_http(
            {"candidates": [{"content": {"parts": [{"text": "Hallo"}]}}]}
        )
        try:
            client = GoogleClient("gemini-1.5-flash", api_key="g-key")
            response = await client.complete(
                [
                    {"role": "user", "content": "Hi"},
                    {"role": "assistant", "content": "Hello"},
                    {"role": "user", "content": "Wie geht's?"},
                ],
                system="Antworte auf Deutsch",
            )
        finally:
            patcher.stop()

        kwargs = mock_client.post.call_args.kwargs
        assert [c["role"] for c in kwargs["json"]["contents"]] == ["user", "model", "user"]
        assert kwargs["json"]["systemInstruction"] == {"parts": [{"text": "Antworte auf Deutsch"}]}
        assert kwargs["params"] == {"key": "g-key"}
        assert response.content == "Hallo"

    @pytest.mark.asyncio
    async def test_ollama_options(self):
        patcher, mock_client = mock_http({"message": {"content": "ok"}, "eval_count": 3})
        try:
            client = OllamaClient("llama2", base_url="http://ollama.local:11434/")
            await client.complete(MESSAGES, max_tokens=200, temperature=0.1)
        finally:
            patcher.stop()

        args, kwargs = mock_client.post.call_args
        assert args[0] == "http://ollama.local:11434/api/chat"
        assert kwargs["json"]["stream"] is False
        assert kwargs["json"]["options"] == {"temperature": 0.1, "num_predict": 200}


class TestGetLLMClient:
    def test_ollama_needs_no_key(self):
        client = get_llm_client(AIModelConfig(provider="ollama", model_name="mistral"))

        assert isinstance(client, OllamaClient)
        assert client.model == "mistral"

    def test_sampling_overrides(self):
        with patch("wda.llm.client.settings") as mock_settings:
            mock_settings.anthropic_api_key = "settings-key"
            mock_settings.llm_timeout_seconds = 30.0

            client = get_llm_client(
                AIModelConfig(
                    provider="anthropic",
                    model_name="claude-3-7-sonnet-latest",
                    temperature=0.0,
                    max_tokens=500,
                )
            )

        assert isinstance(client, AnthropicClient)
        assert client.api_key == "settings-key"
        assert client.temperature == 0.0
        assert client.max_tokens == 500

    @pytest.mark.parametrize("provider,env", [("openai", "OPENAI"), ("google", "GOOGLE")])
    def test_missing_key(self, provider, env):
        with patch("wda.llm.client.settings") as mock_settings:
            mock_settings.openai_api_key = None
            mock_settings.google_api_key = None
            mock_settings.llm_timeout_seconds = 30.0

            with pytest.raises(ConfigurationError, match=f"{env}_API_KEY"):
                get_llm_client(AIModelConfig(provider=provider, model_name="m"))
