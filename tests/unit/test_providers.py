"""
Unit tests for provider adapters.

SDK clients are replaced with mocks after construction; no request
ever leaves the process.
"""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from google.genai import errors as genai_errors

from clients.http_factory import HttpClientFactory
from providers.anthropic_adapter import AnthropicProvider
from providers.base import ModelInfo, split_system_messages
from providers.gemini_adapter import GeminiProvider, QuotaExhaustedError
from providers.openai_adapter import OpenAICompatibleProvider


# ---- Helpers ----


class _AsyncIter:
    """Async iterator over a fixed list."""

    def __init__(self, items):
        self._items = list(items)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._items:
            raise StopAsyncIteration
        return self._items.pop(0)


def _openai_chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


async def _collect(stream):
    return [delta async for delta in stream]


@pytest.fixture
def http():
    return HttpClientFactory()


@pytest.mark.unit
class TestSplitSystemMessages:
    def test_folds_system_messages(self):
        system, conversation = split_system_messages(
            [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Hi"},
            ],
            system_prompt="You are a helpful assistant.",
        )
        assert system == "You are a helpful assistant.\n\nBe brief."
        assert conversation == [{"role": "user", "content": "Hi"}]

    def test_no_system(self):
        system, conversation = split_system_messages([{"role": "user", "content": "Hi"}])
        assert system is None
        assert len(conversation) == 1


@pytest.mark.unit
class TestOpenAICompatibleProvider:
    """OpenAI / OpenRouter / Grok adapter."""

    def test_rejects_other_providers(self, http):
        with pytest.raises(ValueError):
            OpenAICompatibleProvider("anthropic", "key", "m", http=http)

    def test_health_check(self, http):
        assert OpenAICompatibleProvider("openai", "sk-123", "gpt-4", http=http).health_check()
        assert not OpenAICompatibleProvider("openai", "sk-123", "", http=http).health_check()

    @pytest.mark.asyncio
    async def test_generate(self, http):
        provider = OpenAICompatibleProvider("openai", "sk-123", "gpt-4", http=http)
        provider.client = MagicMock()
        provider.client.chat.completions.create = AsyncMock(
            return_value=SimpleNamespace(
                choices=[SimpleNamespace(message=SimpleNamespace(content="Hello!"))]
            )
        )

        result = await provider.generate("Hi", system_prompt="Be nice")

        assert result == "Hello!"
        kwargs = provider.client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4"
        assert kwargs["messages"][0] == {"role": "system", "content": "Be nice"}
        assert kwargs["messages"][1] == {"role": "user", "content": "Hi"}

    @pytest.mark.asyncio
    async def test_stream_yields_deltas(self, http):
        provider = OpenAICompatibleProvider("grok", "xai-123", "grok-3", http=http)
        provider.client = MagicMock()
        provider.client.chat.completions.create = AsyncMock(
            return_value=_AsyncIter([
                _openai_chunk("Hel"),
                SimpleNamespace(choices=[]),
                _openai_chunk(None),
                _openai_chunk("lo"),
            ])
        )

        deltas = await _collect(provider.stream([{"role": "user", "content": "Hi"}], system_prompt="sys"))

        assert deltas == ["Hel", "lo"]
        kwargs = provider.client.chat.completions.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}

    @pytest.mark.asyncio
    async def test_list_models_openrouter_uses_names(self, http):
        provider = OpenAICompatibleProvider("openrouter", "sk-or-123", "", http=http)
        provider.client = MagicMock()
        provider.client.models.list = AsyncMock(
            return_value=SimpleNamespace(data=[
                SimpleNamespace(id="openai/gpt-4.1-mini", name="GPT-4.1 Mini"),
                SimpleNamespace(id="meta/llama", name=None),
            ])
        )

        models = await provider.list_models()

        assert models == [
            ModelInfo(id="openai/gpt-4.1-mini", name="GPT-4.1 Mini", provider="openrouter"),
            ModelInfo(id="meta/llama", name="meta/llama", provider="openrouter"),
        ]

    @pytest.mark.asyncio
    async def test_list_models_openai_uses_ids(self, http):
        provider = OpenAICompatibleProvider("openai", "sk-123", "", http=http)
        provider.client = MagicMock()
        provider.client.models.list = AsyncMock(
            return_value=SimpleNamespace(data=[SimpleNamespace(id="gpt-4o", name="ignored")])
        )

        models = await provider.list_models()

        assert models == [ModelInfo(id="gpt-4o", name="gpt-4o", provider="openai")]

    @pytest.mark.asyncio
    async def test_close(self, http):
        provider = OpenAICompatibleProvider("openai", "sk-123", "gpt-4", http=http)
        provider.client = MagicMock()
        provider.client.close = AsyncMock()

        await provider.close()

        provider.client.close.assert_awaited_once()


@pytest.mark.unit
class TestAnthropicProvider:
    """Claude adapter."""

    @pytest.mark.asyncio
    async def test_generate_joins_text_blocks(self, http):
        provider = AnthropicProvider("sk-ant-123", "claude-3-5-haiku-20241022", http=http)
        provider.client = MagicMock()
        provider.client.messages.create = AsyncMock(
            return_value=SimpleNamespace(content=[
                SimpleNamespace(type="text", text="Hello "),
                SimpleNamespace(type="tool_use", text="ignored"),
                SimpleNamespace(type="text", text="there"),
            ])
        )

        result = await provider.generate("Hi", system_prompt="Be nice")

        assert result == "Hello there"
        kwargs = provider.client.messages.create.call_args.kwargs
        assert kwargs["system"] == "Be nice"
        assert kwargs["model"] == "claude-3-5-haiku-20241022"

    @pytest.mark.asyncio
    async def test_generate_without_system(self, http):
        provider = AnthropicProvider("sk-ant-123", "claude-x", http=http)
        provider.client = MagicMock()
        provider.client.messages.create = AsyncMock(
            return_value=SimpleNamespace(content=[SimpleNamespace(type="text", text="ok")])
        )

        await provider.generate("Hi")

        assert "system" not in provider.client.messages.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_stream(self, http):
        provider = AnthropicProvider("sk-ant-123", "claude-x", http=http)
        stream = MagicMock()
        stream.text_stream = _AsyncIter(["a", "b"])
        manager = MagicMock()
        manager.__aenter__ = AsyncMock(return_value=stream)
        manager.__aexit__ = AsyncMock(return_value=False)
        provider.client = MagicMock()
        provider.client.messages.stream = MagicMock(return_value=manager)

        deltas = await _collect(provider.stream([
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "Hi"},
        ]))

        assert deltas == ["a", "b"]
        kwargs = provider.client.messages.stream.call_args.kwargs
        assert kwargs["system"] == "sys"
        assert kwargs["messages"] == [{"role": "user", "content": "Hi"}]

    @pytest.mark.asyncio
    async def test_list_models(self, http):
        provider = AnthropicProvider("sk-ant-123", "", http=http)
        provider.client = MagicMock()
        provider.client.models.list = AsyncMock(
            return_value=SimpleNamespace(data=[
                SimpleNamespace(id="claude-3-opus-20240229", display_name="Claude 3 Opus"),
            ])
        )

        models = await provider.list_models()

        assert models == [ModelInfo(id="claude-3-opus-20240229", name="Claude 3 Opus", provider="anthropic")]


@pytest.mark.unit
class TestGeminiProvider:
    """Gemini adapter."""

    def _provider(self, http):
        provider = GeminiProvider("AIza123456789", "gemini-1.5-flash", http=http)
        provider.client = MagicMock()
        return provider

    @pytest.mark.asyncio
    async def test_generate(self, http):
        provider = self._provider(http)
        provider.client.aio.models.generate_content = AsyncMock(return_value=SimpleNamespace(text="Hi!"))

        result = await provider.generate("Hello", system_prompt="Be nice")

        assert result == "Hi!"
        kwargs = provider.client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-1.5-flash"
        assert kwargs["config"].system_instruction == "Be nice"

    @pytest.mark.asyncio
    async def test_quota_error_mapped(self, http):
        provider = self._provider(http)
        provider.client.aio.models.generate_content = AsyncMock(
            side_effect=genai_errors.ClientError(
                429, {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
            )
        )

        with pytest.raises(QuotaExhaustedError) as exc_info:
            await provider.generate("Hello")

        assert exc_info.value.model == "gemini-1.5-flash"

    @pytest.mark.asyncio
    async def test_other_api_errors_propagate(self, http):
        provider = self._provider(http)
        error = genai_errors.ClientError(
            400, {"error": {"code": 400, "message": "Bad request", "status": "INVALID_ARGUMENT"}}
        )
        provider.client.aio.models.generate_content = AsyncMock(side_effect=error)

        with pytest.raises(genai_errors.ClientError):
            await provider.generate("Hello")

    @pytest.mark.asyncio
    async def test_stream_maps_roles(self, http):
        provider = self._provider(http)
        provider.client.aio.models.generate_content_stream = AsyncMock(
            return_value=_AsyncIter([SimpleNamespace(text="a"), SimpleNamespace(text=None), SimpleNamespace(text="b")])
        )

        deltas = await _collect(provider.stream([
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
            {"role": "user", "content": "More"},
        ]))

        assert deltas == ["a", "b"]
        contents = provider.client.aio.models.generate_content_stream.call_args.kwargs["contents"]
        assert [c["role"] for c in contents] == ["user", "model", "user"]
        assert contents[1]["parts"] == [{"text": "Hello"}]

    @pytest.mark.asyncio
    async def test_list_models_filters_and_prettifies(self, http):
        provider = self._provider(http)
        provider.client.aio.models.list = AsyncMock(
            return_value=_AsyncIter([
                SimpleNamespace(name="models/gemini-1.5-pro", supported_actions=["generateContent", "countTokens"]),
                SimpleNamespace(name="models/text-embedding-004", supported_actions=["embedContent"]),
            ])
        )

        models = await provider.list_models()

        assert models == [ModelInfo(id="gemini-1.5-pro", name="Gemini 1.5 Pro", provider="google")]
