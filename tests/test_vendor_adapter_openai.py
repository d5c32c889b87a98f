"""Unit tests for the chat completions adapter."""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from crm_gateway.adapters import vendor_adapter_openai
from crm_gateway.adapters.vendor_adapter_openai import call_chat_completion, stream_chat_completion
from crm_gateway.infra.error_handler import APIError, RateLimitError
from crm_gateway.services.tool_catalog import get_tool_catalog


def completion(content=None, tool_calls=None):
    message = SimpleNamespace(role="assistant", content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        id="chatcmpl-1",
        model="test-model",
        choices=[SimpleNamespace(index=0, message=message, finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=3, total_tokens=15),
    )


@pytest.fixture
def openai_client(monkeypatch):
    """Replace the lazily created AsyncOpenAI client."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    monkeypatch.setattr(vendor_adapter_openai.chat_client, "_client", client)
    return client


class TestCallChatCompletion:

    @pytest.mark.asyncio
    async def test_tool_calls_converted(self, openai_client):
        tool_call = SimpleNamespace(
            id="call_1",
            type="function",
            function=SimpleNamespace(name="contacts_add-tags", arguments='{"path_contactId": "123"}'),
        )
        openai_client.chat.completions.create.return_value = completion(tool_calls=[tool_call])

        response = await call_chat_completion([{"role": "user", "content": "hi"}], list(get_tool_catalog()))

        message = response["choices"][0]["message"]
        assert message["tool_calls"] == [{
            "id": "call_1",
            "type": "function",
            "function": {"name": "contacts_add-tags", "arguments": '{"path_contactId": "123"}'},
        }]
        assert response["usage"]["total_tokens"] == 15

        params = openai_client.chat.completions.create.call_args.kwargs
        assert params["tool_choice"] == "auto"
        assert len(params["tools"]) == 21

    @pytest.mark.asyncio
    async def test_no_tools_offered(self, openai_client):
        openai_client.chat.completions.create.return_value = completion("Hello")

        response = await call_chat_completion([{"role": "user", "content": "hi"}], None, phase="synthesize")

        assert response["choices"][0]["message"]["content"] == "Hello"
        assert response["choices"][0]["message"]["tool_calls"] is None
        params = openai_client.chat.completions.create.call_args.kwargs
        assert "tools" not in params
        assert "tool_choice" not in params

    @pytest.mark.asyncio
    async def test_rate_limit_wrapped(self, openai_client):
        error = Exception("Too many requests")
        error.status_code = 429
        openai_client.chat.completions.create.side_effect = error

        with pytest.raises(RateLimitError):
            await call_chat_completion([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self, openai_client):
        error = Exception("Internal error")
        error.status_code = 503
        openai_client.chat.completions.create.side_effect = error

        with pytest.raises(APIError) as exc_info:
            await call_chat_completion([{"role": "user", "content": "hi"}])

        assert exc_info.value.retryable is True


class TestStreamChatCompletion:

    @pytest.mark.asyncio
    async def test_fragments_yielded(self, openai_client):
        def chunk(content):
            return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])

        async def stream():
            for item in (chunk("Hel"), SimpleNamespace(choices=[]), chunk(None), chunk("lo")):
                yield item

        openai_client.chat.completions.create.return_value = stream()

        fragments = [fragment async for fragment in stream_chat_completion([{"role": "user", "content": "hi"}])]

        assert fragments == ["Hel", "lo"]
        assert openai_client.chat.completions.create.call_args.kwargs["stream"] is True
