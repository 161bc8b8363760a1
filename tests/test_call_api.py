"""Tests for AgentRunner._call_api() over httpx.MockTransport."""

import json

import httpx
import pytest

from deskhand.api.runner import AgentRunner
from deskhand.api.tools import ToolDispatcher
from deskhand.config import Settings
from deskhand.errors import UpstreamError

_MESSAGES = [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]
_TOOLS = [{"type": "bash_20250124", "name": "bash"}]


def _ok(text: str = "hello") -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "content": [{"type": "text", "text": text}],
            "stop_reason": "end_turn",
            "usage": {"input_tokens": 10, "output_tokens": 2},
        },
    )


def _api_error(status: int, error_type: str, message: str, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(
        status,
        json={"type": "error", "error": {"type": error_type, "message": message}},
        headers=headers,
    )


class Recorder:
    """MockTransport handler replaying canned responses and keeping requests."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


async def _runner(recorder: Recorder, **overrides) -> AgentRunner:
    values = {"ANTHROPIC_API_KEY": "test-key", "ANTHROPIC_AUTH_TOKEN": ""}
    values.update(overrides)
    settings = Settings(_env_file=None, **values)
    runner = AgentRunner(settings, ToolDispatcher(), surfaces=None)
    await runner.start(transport=httpx.MockTransport(recorder))
    return runner


class TestRequest:
    @pytest.mark.asyncio
    async def test_headers_and_payload(self):
        recorder = Recorder(_ok())
        runner = await _runner(recorder)
        try:
            response = await runner._call_api(_MESSAGES, _TOOLS)
        finally:
            await runner.close()

        assert response.content == [{"type": "text", "text": "hello"}]
        assert response.stop_reason == "end_turn"
        assert response.usage == {"input_tokens": 10, "output_tokens": 2}

        request = recorder.requests[0]
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == "test-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert request.headers["anthropic-beta"] == "computer-use-2025-01-24"
        payload = json.loads(request.content)
        assert payload["model"] == "claude-opus-4-20250514"
        assert payload["max_tokens"] == 2000
        assert payload["messages"] == _MESSAGES
        assert payload["tools"] == _TOOLS
        assert payload["thinking"] == {"type": "enabled", "budget_tokens": 1024}
        assert "system" not in payload

    @pytest.mark.asyncio
    async def test_bearer_token(self):
        recorder = Recorder(_ok())
        runner = await _runner(recorder, ANTHROPIC_API_KEY="", ANTHROPIC_AUTH_TOKEN="bearer-token")
        try:
            await runner._call_api(_MESSAGES, _TOOLS)
        finally:
            await runner.close()
        headers = recorder.requests[0].headers
        assert headers["authorization"] == "Bearer bearer-token"
        assert "x-api-key" not in headers

    @pytest.mark.asyncio
    async def test_optional_fields(self):
        recorder = Recorder(_ok())
        runner = await _runner(recorder, thinking_budget=0, system_prompt="You operate a Windows desktop.")
        try:
            await runner._call_api(_MESSAGES, None)
        finally:
            await runner.close()
        payload = json.loads(recorder.requests[0].content)
        assert "thinking" not in payload
        assert "tools" not in payload
        assert payload["system"] == "You operate a Windows desktop."


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_once_on_rate_limit(self):
        recorder = Recorder(
            _api_error(429, "rate_limit_error", "slow down", headers={"retry-after": "0"}),
            _ok("second time lucky"),
        )
        runner = await _runner(recorder)
        try:
            response = await runner._call_api(_MESSAGES, _TOOLS)
        finally:
            await runner.close()
        assert len(recorder.requests) == 2
        assert response.content[0]["text"] == "second time lucky"

    @pytest.mark.asyncio
    async def test_gives_up_after_second_failure(self):
        recorder = Recorder(
            _api_error(529, "overloaded_error", "busy", headers={"retry-after": "0"}),
            _api_error(529, "overloaded_error", "still busy", headers={"retry-after": "0"}),
        )
        runner = await _runner(recorder)
        try:
            with pytest.raises(UpstreamError, match="529"):
                await runner._call_api(_MESSAGES, _TOOLS)
        finally:
            await runner.close()
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_auth_error_not_retried(self):
        recorder = Recorder(_api_error(401, "authentication_error", "invalid x-api-key"))
        runner = await _runner(recorder)
        try:
            with pytest.raises(UpstreamError, match="authentication_error - invalid x-api-key"):
                await runner._call_api(_MESSAGES, _TOOLS)
        finally:
            await runner.close()
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_connection_error(self):
        recorder = Recorder(httpx.ConnectError("connection refused"))
        runner = await _runner(recorder)
        try:
            with pytest.raises(UpstreamError, match="HTTP error"):
                await runner._call_api(_MESSAGES, _TOOLS)
        finally:
            await runner.close()
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        recorder = Recorder(httpx.Response(502, text="<html>bad gateway</html>"))
        runner = await _runner(recorder)
        try:
            with pytest.raises(UpstreamError, match="bad gateway"):
                await runner._call_api(_MESSAGES, _TOOLS)
        finally:
            await runner.close()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_uninitialized_call_raises_upstream_error(self):
        settings = Settings(_env_file=None, ANTHROPIC_API_KEY="", ANTHROPIC_AUTH_TOKEN="")
        runner = AgentRunner(settings, ToolDispatcher(), surfaces=None)
        await runner.start()
        with pytest.raises(UpstreamError, match="not initialized"):
            await runner._call_api(_MESSAGES, _TOOLS)

    @pytest.mark.asyncio
    async def test_reinitialize_with_new_key(self):
        settings = Settings(_env_file=None, ANTHROPIC_API_KEY="", ANTHROPIC_AUTH_TOKEN="")
        runner = AgentRunner(settings, ToolDispatcher(), surfaces=None)
        await runner.start()
        assert runner.initialized is False
        try:
            await runner.reinitialize("sk-new")
            assert runner.initialized is True
            assert settings.anthropic_api_key == "sk-new"
        finally:
            await runner.close()
        assert runner.initialized is False
