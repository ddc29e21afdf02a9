"""
Unit tests for the Claude API client
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from anthropic import APIConnectionError

from whiteninja.core.config import settings
from whiteninja.core.exceptions import AIServiceError
from whiteninja.utils.claude_client import ClaudeClient


def make_response():
    response = MagicMock()
    response.content = [
        SimpleNamespace(type="thinking", thinking="Lay out the hero first"),
        SimpleNamespace(type="text", text="===FILE_CREATE: index.html===\n"),
        SimpleNamespace(type="text", text="<h1>Hi</h1>\n===END_FILE==="),
    ]
    response.usage = SimpleNamespace(input_tokens=120, output_tokens=80)
    response.model = "claude-test"
    response.stop_reason = "end_turn"
    response.id = "msg_123"
    return response


@pytest.fixture
def claude():
    return ClaudeClient(api_key="test-key", base_url="")


class TestClaudeClient:
    """Test request shaping and error mapping"""

    def test_sdk_retries_disabled(self, claude):
        """Test the SDK makes a single attempt per call"""
        assert claude.async_client.max_retries == 0
        assert claude.model == settings.CLAUDE_MODEL

    @pytest.mark.asyncio
    async def test_generate_collects_text_and_reasoning(self, claude):
        """Test text blocks are joined and thinking blocks kept apart"""
        create = AsyncMock(return_value=make_response())
        with patch.object(claude.async_client.messages, "create", new=create):
            result = await claude.generate("Build a page", system_prompt="You are Nova,")

        assert result["content"] == "===FILE_CREATE: index.html===\n<h1>Hi</h1>\n===END_FILE==="
        assert result["reasoning"] == "Lay out the hero first"
        assert result["total_tokens"] == 200
        assert result["id"] == "msg_123"

        kwargs = create.call_args.kwargs
        assert kwargs["system"] == "You are Nova,"
        assert kwargs["model"] == settings.CLAUDE_MODEL
        assert kwargs["max_tokens"] == settings.CLAUDE_MAX_TOKENS
        assert kwargs["messages"] == [{"role": "user", "content": "Build a page"}]

    @pytest.mark.asyncio
    async def test_generate_appends_prompt_after_history(self, claude):
        """Test earlier turns are sent before the prompt"""
        create = AsyncMock(return_value=make_response())
        history = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]
        with patch.object(claude.async_client.messages, "create", new=create):
            await claude.generate("next", model="claude-other", messages=history)

        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "claude-other"
        assert [m["content"] for m in kwargs["messages"]] == ["hi", "hello", "next"]
        assert len(history) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        httpx.ConnectError("connection refused"),
        APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")),
    ])
    async def test_provider_errors_become_ai_service_errors(self, claude, error):
        """Test transport and SDK failures surface as AIServiceError"""
        with patch.object(claude.async_client.messages, "create", new=AsyncMock(side_effect=error)):
            with pytest.raises(AIServiceError) as exc_info:
                await claude.generate("Build a page")

        assert exc_info.value.__cause__ is error

    @pytest.mark.parametrize("error,retryable", [
        (httpx.ConnectError("refused"), True),
        (httpx.ReadTimeout("slow"), True),
        (ValueError("Overloaded, try later"), True),
        (ValueError("prompt is malformed"), False),
    ])
    def test_is_retryable_error(self, claude, error, retryable):
        assert claude.is_retryable_error(error) is retryable
