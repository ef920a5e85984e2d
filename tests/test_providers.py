"""Tests for knock/translate/providers.py.

HTTP traffic is served by ``httpx.MockTransport``; nothing leaves the process.
"""
import asyncio
import json

import httpx
import pytest

from knock.translate.config import ProviderConfig, load_config
from knock.translate.providers import (
    AnthropicClient,
    CredentialMissing,
    EmptyResponse,
    MalformedResponse,
    OllamaClient,
    OpenAIClient,
    ProviderConnectionError,
    ProviderHttpError,
    build_provider,
)


class Recorder:
    """Mock transport handler that replays one canned response."""

    def __init__(self, status_code=200, payload=None, text=None, error=None):
        self.status_code = status_code
        self.payload = payload
        self.text = text
        self.error = error
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def transport(self):
        return httpx.MockTransport(self)

    def body(self, index=0):
        return json.loads(self.requests[index].content)


def send(client, instructions="rules", prompt="<request>q</request>", max_tokens=256, **kwargs):
    async def scenario():
        try:
            return await client.send(instructions, prompt, max_tokens, **kwargs)
        finally:
            await client.aclose()

    return asyncio.run(scenario())


class TestAnthropic:
    def test_missing_credential_fails_before_any_request(self, tmp_path):
        recorder = Recorder(payload={"content": [{"text": "ls"}]})
        config = load_config(
            environ={"KNOCK_PROVIDER": "anthropic"},
            config_path=tmp_path / "absent.yaml",
        )
        client = build_provider(config, transport=recorder.transport)

        with pytest.raises(CredentialMissing):
            send(client)
        assert recorder.requests == []

    def test_wire_format(self):
        recorder = Recorder(payload={"content": [{"type": "text", "text": "du -sh *"}, {"text": "ignored"}]})
        client = AnthropicClient("sk-ant", "claude-test", transport=recorder.transport)

        assert send(client, instructions="SYS", prompt="PROMPT", max_tokens=512, temperature=0.2) == "du -sh *"

        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "sk-ant"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert request.headers["content-type"] == "application/json"
        assert recorder.body() == {
            "model": "claude-test",
            "max_tokens": 512,
            "system": "SYS",
            "messages": [{"role": "user", "content": "PROMPT"}],
            "temperature": 0.2,
        }

    def test_http_error_carries_body(self):
        recorder = Recorder(status_code=401, text='{"error": {"message": "invalid x-api-key"}}')
        client = AnthropicClient("bad", "claude-test", transport=recorder.transport)

        with pytest.raises(ProviderHttpError) as excinfo:
            send(client)
        assert excinfo.value.status_code == 401
        assert "invalid x-api-key" in excinfo.value.body
        assert "invalid x-api-key" in str(excinfo.value)

    def test_empty_content_list(self):
        recorder = Recorder(payload={"content": []})
        client = AnthropicClient("sk-ant", "claude-test", transport=recorder.transport)
        with pytest.raises(EmptyResponse):
            send(client)


class TestOpenAI:
    def test_wire_format_and_aggregated_text(self):
        recorder = Recorder(payload={"output_text": "find . -name '*.log'"})
        client = OpenAIClient("sk-openai", "gpt-test", transport=recorder.transport)

        assert send(client, instructions="SYS", prompt="PROMPT", max_tokens=256) == "find . -name '*.log'"

        request = recorder.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/responses"
        assert request.headers["authorization"] == "Bearer sk-openai"
        assert recorder.body() == {
            "model": "gpt-test",
            "instructions": "SYS",
            "input": "PROMPT",
            "temperature": 0.2,
            "max_output_tokens": 256,
        }

    def test_text_collected_from_output_items(self):
        payload = {
            "output": [
                {"type": "reasoning", "summary": []},
                {
                    "type": "message",
                    "content": [
                        {"type": "output_text", "text": "ps aux"},
                        {"type": "output_text", "text": " | grep node"},
                    ],
                },
            ]
        }
        client = OpenAIClient("sk", "gpt-test", transport=Recorder(payload=payload).transport)
        assert send(client) == "ps aux | grep node"

    def test_no_output_text(self):
        client = OpenAIClient("sk", "gpt-test", transport=Recorder(payload={"output": []}).transport)
        with pytest.raises(EmptyResponse):
            send(client)

    def test_missing_key(self):
        recorder = Recorder(payload={"output_text": "ls"})
        client = OpenAIClient(None, "gpt-test", transport=recorder.transport)
        with pytest.raises(CredentialMissing):
            send(client)
        assert recorder.requests == []

    def test_non_json_body(self):
        client = OpenAIClient("sk", "gpt-test", transport=Recorder(text="<html>oops</html>").transport)
        with pytest.raises(MalformedResponse):
            send(client)

    def test_code_fence_is_stripped(self):
        payload = {"output_text": "```bash\nls -la\n```"}
        client = OpenAIClient("sk", "gpt-test", transport=Recorder(payload=payload).transport)
        assert send(client) == "ls -la"

    @pytest.mark.parametrize(
        "reply",
        [
            "```bash```",
            "```bash\ncd src\n```\nthen\n```bash\nmake\n```",
        ],
    )
    def test_replies_not_wrapped_in_one_fence_are_unchanged(self, reply):
        client = OpenAIClient("sk", "gpt-test", transport=Recorder(payload={"output_text": reply}).transport)
        assert send(client) == reply


class TestOllama:
    def test_wire_format(self):
        recorder = Recorder(payload={"message": {"role": "assistant", "content": "  uptime\n"}})
        client = OllamaClient("llama-test", "http://gpu-box:11434/", transport=recorder.transport)

        assert send(client, instructions="SYS", prompt="PROMPT", max_tokens=512, temperature=0.5) == "uptime"

        assert str(recorder.requests[0].url) == "http://gpu-box:11434/api/chat"
        assert recorder.body() == {
            "model": "llama-test",
            "messages": [
                {"role": "system", "content": "SYS"},
                {"role": "user", "content": "PROMPT"},
            ],
            "stream": False,
            "options": {"temperature": 0.5, "num_predict": 512},
        }

    def test_http_error_hints_at_server(self):
        client = OllamaClient("llama-test", transport=Recorder(status_code=404, text="model not found").transport)
        with pytest.raises(ProviderHttpError) as excinfo:
            send(client)
        assert excinfo.value.status_code == 404
        assert "model not found" in str(excinfo.value)
        assert "ollama serve" in str(excinfo.value)

    def test_connection_refused_hints_at_server(self):
        recorder = Recorder(error=httpx.ConnectError("connection refused"))
        client = OllamaClient("llama-test", transport=recorder.transport)
        with pytest.raises(ProviderConnectionError) as excinfo:
            send(client)
        assert "ollama serve" in str(excinfo.value)

    def test_missing_message(self):
        client = OllamaClient("llama-test", transport=Recorder(payload={"done": True}).transport)
        with pytest.raises(EmptyResponse):
            send(client)


def test_build_provider_dispatch():
    transport = Recorder(payload={}).transport
    clients = [
        build_provider(ProviderConfig("openai", "m", "https://api.openai.com/v1", api_key="k"), transport),
        build_provider(ProviderConfig("anthropic", "m", "https://api.anthropic.com", api_key="k"), transport),
        build_provider(ProviderConfig("ollama", "m", "http://localhost:11434"), transport),
    ]
    assert [type(c) for c in clients] == [OpenAIClient, AnthropicClient, OllamaClient]

    async def close_all():
        for client in clients:
            await client.aclose()

    asyncio.run(close_all())


def test_build_provider_unknown_name():
    with pytest.raises(ValueError):
        build_provider(ProviderConfig("bogus", "m", "http://localhost"))
