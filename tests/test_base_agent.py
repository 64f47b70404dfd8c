"""
Tests for streamed completions: assembly, retry on overload, timeout and
malformed streams
"""
import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import httpx
import openai
import pytest

from siteforge.base_agent import AgentError, BaseAgent


def chunk(content=None, finish_reason=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=SimpleNamespace(content=content), finish_reason=finish_reason)],
        usage=None,
    )


def usage_chunk(prompt_tokens, completion_tokens):
    return SimpleNamespace(
        choices=[],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def status_error(status):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.APIStatusError("overloaded", response=httpx.Response(status, request=request), body=None)


def good_stream():
    return iter([chunk("<html>"), chunk("</html>"), chunk(None, "stop"), usage_chunk(12, 34)])


def make_agent(**kwargs):
    client = Mock()
    return BaseAgent(client, agent_name="Test", **kwargs), client


class TestStreamAssembly:

    @pytest.mark.asyncio
    async def test_chunks_joined_with_usage(self):
        agent, client = make_agent()
        client.chat.completions.create.return_value = good_stream()

        result = await agent._stream_completion("system", "user", max_tokens=100)

        assert result.text == "<html></html>"
        assert result.finish_reason == "stop"
        assert (result.prompt_tokens, result.completion_tokens) == (12, 34)
        assert not result.truncated

    @pytest.mark.asyncio
    async def test_request_parameters(self):
        agent, client = make_agent(model="gpt-4.1", temperature=0.7)
        client.chat.completions.create.return_value = good_stream()

        await agent._stream_completion("system", "user", max_tokens=500, model="gpt-4.1-mini", top_p=0.9)

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4.1-mini"
        assert kwargs["stream"] is True
        assert kwargs["stream_options"] == {"include_usage": True}
        assert kwargs["max_tokens"] == 500
        assert kwargs["temperature"] == 0.7
        assert kwargs["top_p"] == 0.9
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}

    @pytest.mark.asyncio
    async def test_length_finish_marks_truncated(self):
        agent, client = make_agent()
        client.chat.completions.create.return_value = iter([chunk("<html><body>"), chunk(None, "length")])

        result = await agent._stream_completion("s", "u", max_tokens=10)

        assert result.truncated
        assert result.text == "<html><body>"

    @pytest.mark.asyncio
    async def test_missing_finish_reason_is_malformed(self):
        agent, client = make_agent()
        client.chat.completions.create.return_value = iter([chunk("<html>"), chunk("</html>")])

        with pytest.raises(AgentError) as exc_info:
            await agent._stream_completion("s", "u", max_tokens=10)

        assert "finish_reason" in str(exc_info.value)
        assert client.chat.completions.create.call_count == 1


class TestRetry:

    @pytest.mark.asyncio
    async def test_retries_on_503_then_succeeds(self):
        agent, client = make_agent(max_retries=2, retry_backoff=3.0)
        client.chat.completions.create.side_effect = [status_error(503), good_stream()]

        with patch("siteforge.base_agent.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await agent._stream_completion("s", "u", max_tokens=10)

        assert result.text == "<html></html>"
        assert client.chat.completions.create.call_count == 2
        sleep.assert_awaited_once_with(3.0)

    @pytest.mark.asyncio
    async def test_backoff_is_linear_and_bounded(self):
        agent, client = make_agent(max_retries=2, retry_backoff=3.0)
        client.chat.completions.create.side_effect = [status_error(529), status_error(429), status_error(503)]

        with patch("siteforge.base_agent.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(AgentError) as exc_info:
                await agent._stream_completion("s", "u", max_tokens=10)

        assert client.chat.completions.create.call_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [3.0, 6.0]
        assert "503" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_retryable_status_fails_fast(self):
        agent, client = make_agent(max_retries=2)
        client.chat.completions.create.side_effect = [status_error(400)]

        with patch("siteforge.base_agent.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(AgentError):
                await agent._stream_completion("s", "u", max_tokens=10)

        assert client.chat.completions.create.call_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self):
        agent, client = make_agent()
        client.chat.completions.create.side_effect = ValueError("boom")

        with pytest.raises(AgentError) as exc_info:
            await agent._stream_completion("s", "u", max_tokens=10)

        assert "boom" in str(exc_info.value)


class TestTimeout:

    @pytest.mark.asyncio
    async def test_timeout_raises_agent_error(self):
        agent, _ = make_agent(timeout=0.05)
        agent._consume_stream = lambda kwargs: time.sleep(0.5)

        with pytest.raises(AgentError) as exc_info:
            await agent._stream_completion("s", "u", max_tokens=10)

        assert "timeout" in str(exc_info.value).lower()
