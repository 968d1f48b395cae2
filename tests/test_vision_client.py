from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from gui_operate.config import VisionSettings
from gui_operate.errors import (
    ConfigurationError,
    VisionProviderExhaustedError,
    VisionRequestError,
)
from gui_operate.vision.client import VisionProviderClient, WireFormat, select_wire_format


PNG_STUB = b"\x89PNG\r\n\x1a\nstub"


def _settings(**overrides) -> VisionSettings:
    values = {"api_key": "test-key", "backoff_base_s": 0.0, "max_attempts": 3}
    values.update(overrides)
    return VisionSettings(**values)


def _run(settings: VisionSettings, handler, prompt: str = "find it") -> str:
    async def _main() -> str:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = VisionProviderClient(settings, http_client=http_client)
            return await client.complete(PNG_STUB, prompt)

    return asyncio.run(_main())


def _messages_reply(text: str) -> httpx.Response:
    return httpx.Response(200, json={"content": [{"type": "text", "text": text}]})


def test_wire_format_routing() -> None:
    assert select_wire_format(VisionSettings()) is WireFormat.MESSAGES
    assert select_wire_format(VisionSettings(model="gpt-4o")) is WireFormat.CHAT_COMPLETIONS
    assert select_wire_format(VisionSettings(model="google/gemini-2.0-flash")) is WireFormat.CHAT_COMPLETIONS
    assert (
        select_wire_format(VisionSettings(base_url="https://openrouter.ai/api/"))
        is WireFormat.CHAT_COMPLETIONS
    )
    assert select_wire_format(VisionSettings(openai_api_key="sk-x")) is WireFormat.RESPONSES_STREAM
    assert (
        select_wire_format(VisionSettings(openai_api_key="sk-x", wire="messages"))
        is WireFormat.MESSAGES
    )


def test_messages_request_shape() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _messages_reply("answer")

    assert _run(_settings(), handler) == "answer"

    request = seen[0]
    assert str(request.url) == "https://api.anthropic.com/v1/messages"
    assert request.headers["x-api-key"] == "test-key"
    assert request.headers["anthropic-version"] == "2023-06-01"
    body = json.loads(request.content)
    image, text = body["messages"][0]["content"]
    assert image["source"]["media_type"] == "image/png"
    assert text == {"type": "text", "text": "find it"}


def test_base_url_with_v1_suffix_is_not_doubled() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return _messages_reply("ok")

    _run(_settings(base_url="https://proxy.example/v1/"), handler)

    assert seen == ["https://proxy.example/v1/messages"]


def test_openrouter_chat_request_carries_title_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"content": "chat answer"}}]})

    settings = _settings(
        base_url="https://openrouter.ai/api",
        app_title="gui-tests",
        app_url="https://example.test",
    )

    assert _run(settings, handler) == "chat answer"
    request = seen[0]
    assert str(request.url) == "https://openrouter.ai/api/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer test-key"
    assert request.headers["x-title"] == "gui-tests"
    assert request.headers["http-referer"] == "https://example.test"
    content = json.loads(request.content)["messages"][0]["content"]
    assert content[0]["image_url"]["url"].startswith("data:image/png;base64,")


def test_transient_status_is_retried() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(500, text="boom")
        return _messages_reply("recovered")

    assert _run(_settings(), handler) == "recovered"
    assert calls["n"] == 2


def test_client_error_is_not_retried() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(400, json={"error": "bad image"})

    with pytest.raises(VisionRequestError) as excinfo:
        _run(_settings(), handler)

    assert excinfo.value.status_code == 400
    assert calls["n"] == 1


def test_exhausted_retries_raise_with_last_error() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(503, text="unavailable")

    with pytest.raises(VisionProviderExhaustedError) as excinfo:
        _run(_settings(), handler)

    assert calls["n"] == 3
    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.last_error, httpx.HTTPStatusError)


def test_empty_completion_is_retried() -> None:
    replies = iter([_messages_reply("  "), _messages_reply("second")])

    assert _run(_settings(), lambda request: next(replies)) == "second"


def test_missing_key_fails_before_any_request() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return _messages_reply("never")

    with pytest.raises(ConfigurationError):
        _run(VisionSettings(backoff_base_s=0.0), handler)

    assert calls["n"] == 0


def _sse(*payloads: dict) -> str:
    return "".join(
        f"event: {payload['type']}\ndata: {json.dumps(payload)}\n\n" for payload in payloads
    )


def test_responses_stream_is_reconstructed() -> None:
    seen: list[httpx.Request] = []
    body = _sse(
        {"type": "response.output_text.delta", "item_id": "a", "content_index": 0, "delta": "Hello"},
        {"type": "response.output_text.delta", "item_id": "a", "content_index": 0, "delta": " world"},
        {"type": "response.completed", "response": {"output": []}},
    )

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    settings = _settings(api_key=None, openai_api_key="sk-openai", openai_model="gpt-4.1")

    assert _run(settings, handler) == "Hello world"
    request = seen[0]
    assert str(request.url) == "https://api.openai.com/v1/responses"
    assert request.headers["authorization"] == "Bearer sk-openai"
    payload = json.loads(request.content)
    assert payload["stream"] is True
    assert payload["model"] == "gpt-4.1"
    assert payload["input"][0]["content"][1]["type"] == "input_image"


def test_stream_error_event_is_retried_then_exhausted() -> None:
    calls = {"n": 0}
    body = _sse({"type": "error", "error": {"message": "overloaded"}})

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    settings = _settings(openai_api_key="sk-openai", max_attempts=2)

    with pytest.raises(VisionProviderExhaustedError, match="overloaded"):
        _run(settings, handler)
    assert calls["n"] == 2
