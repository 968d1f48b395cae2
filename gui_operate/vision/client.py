"""Provider-agnostic vision completion client (three wire formats)."""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from ..config import VisionSettings
from ..errors import (
    ConfigurationError,
    VisionProviderExhaustedError,
    VisionRequestError,
    VisionTransientError,
)
from ..logging_utils import get_logger
from ..resilience import RetryPolicy, is_retryable_exception, is_retryable_http_status, retry_async
from .sse import StreamReconstructor, iter_sse_events


DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
_OPENAI_COMPATIBLE_MODEL_HINTS = ("gemini", "gpt-", "openai/")


class WireFormat(str, Enum):
    CHAT_COMPLETIONS = "chat_completions"
    MESSAGES = "messages"
    RESPONSES_STREAM = "responses_stream"


def is_openrouter(settings: VisionSettings) -> bool:
    return bool(settings.base_url and "openrouter" in settings.base_url.lower())


def select_wire_format(settings: VisionSettings) -> WireFormat:
    """Route to a wire format from configuration.

    An explicit ``wire`` wins; an OpenAI key or base URL selects the
    streaming Responses API; OpenAI-compatible model names or an OpenRouter
    base URL select chat completions; everything else uses messages.
    """

    if settings.wire != "auto":
        return WireFormat(settings.wire)
    if settings.openai_api_key or settings.openai_base_url:
        return WireFormat.RESPONSES_STREAM
    model = settings.model.lower()
    if any(hint in model for hint in _OPENAI_COMPATIBLE_MODEL_HINTS) or is_openrouter(settings):
        return WireFormat.CHAT_COMPLETIONS
    return WireFormat.MESSAGES


def _endpoint(base_url: str, path: str) -> str:
    base = base_url.rstrip("/")
    if base.endswith("/v1"):
        return f"{base}{path}"
    return f"{base}/v1{path}"


def _media_type(image: bytes) -> str:
    if image[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if image[:4] == b"RIFF" and image[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"


@dataclass(frozen=True)
class _PreparedRequest:
    wire: WireFormat
    url: str
    headers: dict[str, str]
    payload: dict[str, Any]
    model: str


class VisionProviderClient:
    """Send one image plus a prompt to the configured provider and return text.

    Transient failures (transport errors, timeouts, 408/409/425/429/5xx,
    stream error events, empty streams) are retried with exponential
    backoff; other 4xx responses fail immediately.
    """

    def __init__(
        self,
        settings: VisionSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._http_client = http_client
        self._log = get_logger("vision.client")

    @property
    def wire_format(self) -> WireFormat:
        return select_wire_format(self._settings)

    async def complete(
        self,
        image: bytes,
        prompt: str,
        max_tokens: int | None = None,
        *,
        label: str | None = None,
    ) -> str:
        request = self._prepare(image, prompt, max_tokens or self._settings.max_tokens)
        tag = f"[{label}]" if label else ""
        policy = RetryPolicy(
            max_attempts=self._settings.max_attempts,
            base_delay_s=self._settings.backoff_base_s,
            max_delay_s=max(self._settings.backoff_base_s * 4, self._settings.backoff_base_s),
            attempt_timeout_s=self._settings.timeout_s,
        )
        attempts = 0

        async def _attempt() -> str:
            nonlocal attempts
            attempts += 1
            start = time.monotonic()
            self._log.info(
                "Vision request{} attempt {}/{} via {} (model={})",
                tag,
                attempts,
                policy.max_attempts,
                request.wire.value,
                request.model,
            )
            text = await self._send(request)
            self._log.info(
                "Vision response{} received: {} chars in {:.0f}ms",
                tag,
                len(text),
                (time.monotonic() - start) * 1000,
            )
            self._log.debug("Vision response{} text: {}", tag, text)
            return text

        def _on_retry(attempt: int, exc: Exception, delay: float) -> None:
            self._log.warning(
                "Vision request{} attempt {}/{} failed: {}; retrying in {:.1f}s",
                tag,
                attempt,
                policy.max_attempts,
                str(exc) or type(exc).__name__,
                delay,
            )

        try:
            return await retry_async(
                _attempt,
                policy=policy,
                is_retryable=is_retryable_exception,
                on_retry=_on_retry,
            )
        except VisionRequestError:
            raise
        except Exception as exc:
            if not is_retryable_exception(exc):
                raise
            self._log.error("Vision request{} failed after {} attempts: {}", tag, attempts, exc)
            raise VisionProviderExhaustedError(attempts, exc) from exc

    def _prepare(self, image: bytes, prompt: str, max_tokens: int) -> _PreparedRequest:
        wire = select_wire_format(self._settings)
        if wire is WireFormat.MESSAGES:
            return self._prepare_messages(image, prompt, max_tokens)
        if wire is WireFormat.CHAT_COMPLETIONS:
            return self._prepare_chat(image, prompt, max_tokens)
        return self._prepare_responses(image, prompt, max_tokens)

    def _prepare_messages(self, image: bytes, prompt: str, max_tokens: int) -> _PreparedRequest:
        settings = self._settings
        if not settings.api_key:
            raise ConfigurationError(
                "API key not configured. Set ANTHROPIC_API_KEY or ANTHROPIC_AUTH_TOKEN."
            )
        payload = {
            "model": settings.model,
            "max_tokens": max_tokens,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": _media_type(image),
                                "data": base64.b64encode(image).decode("ascii"),
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        }
        headers = {
            "Content-Type": "application/json",
            "x-api-key": settings.api_key,
            "anthropic-version": settings.anthropic_version,
        }
        url = _endpoint(settings.base_url or DEFAULT_ANTHROPIC_BASE_URL, "/messages")
        return _PreparedRequest(WireFormat.MESSAGES, url, headers, payload, settings.model)

    def _prepare_chat(self, image: bytes, prompt: str, max_tokens: int) -> _PreparedRequest:
        settings = self._settings
        api_key = settings.api_key or settings.openai_api_key
        if not api_key:
            raise ConfigurationError(
                "API key not configured. Set ANTHROPIC_AUTH_TOKEN (OpenRouter) or OPENAI_API_KEY."
            )
        base_url = settings.base_url or settings.openai_base_url or DEFAULT_OPENAI_BASE_URL
        encoded = base64.b64encode(image).decode("ascii")
        payload = {
            "model": settings.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{_media_type(image)};base64,{encoded}"},
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
            "max_tokens": max_tokens,
        }
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"}
        if is_openrouter(settings):
            headers["X-Title"] = settings.app_title
            if settings.app_url:
                headers["HTTP-Referer"] = settings.app_url
        url = _endpoint(base_url, "/chat/completions")
        return _PreparedRequest(WireFormat.CHAT_COMPLETIONS, url, headers, payload, settings.model)

    def _prepare_responses(self, image: bytes, prompt: str, max_tokens: int) -> _PreparedRequest:
        settings = self._settings
        api_key = settings.openai_api_key or settings.api_key
        if not api_key:
            raise ConfigurationError("API key not configured. Set OPENAI_API_KEY.")
        model = settings.openai_model or settings.model
        encoded = base64.b64encode(image).decode("ascii")
        payload = {
            "model": model,
            "stream": True,
            "max_output_tokens": max_tokens,
            "input": [
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": prompt},
                        {
                            "type": "input_image",
                            "image_url": f"data:{_media_type(image)};base64,{encoded}",
                        },
                    ],
                }
            ],
        }
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "Authorization": f"Bearer {api_key}",
        }
        url = _endpoint(settings.openai_base_url or DEFAULT_OPENAI_BASE_URL, "/responses")
        return _PreparedRequest(WireFormat.RESPONSES_STREAM, url, headers, payload, model)

    async def _send(self, request: _PreparedRequest) -> str:
        if self._http_client is not None:
            return await self._send_with(self._http_client, request)
        async with httpx.AsyncClient(timeout=self._settings.timeout_s) as client:
            return await self._send_with(client, request)

    async def _send_with(self, client: httpx.AsyncClient, request: _PreparedRequest) -> str:
        if request.wire is WireFormat.RESPONSES_STREAM:
            return await self._send_stream(client, request)
        response = await client.post(request.url, json=request.payload, headers=request.headers)
        self._check_status(response)
        try:
            data = response.json()
        except ValueError as exc:
            raise VisionTransientError(f"Provider returned non-JSON body: {exc}") from exc
        if not isinstance(data, dict):
            raise VisionTransientError("Provider returned an unexpected response shape")
        if request.wire is WireFormat.MESSAGES:
            text = _messages_text(data)
        else:
            text = _chat_text(data)
        if not text.strip():
            raise VisionTransientError("Provider returned an empty completion")
        return text

    async def _send_stream(self, client: httpx.AsyncClient, request: _PreparedRequest) -> str:
        reconstructor = StreamReconstructor()
        async with client.stream(
            "POST", request.url, json=request.payload, headers=request.headers
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                self._check_status(response)
            buffer: list[str] = []
            async for line in response.aiter_lines():
                buffer.append(line)
                if line == "":
                    for event in iter_sse_events(buffer):
                        reconstructor.feed(event)
                    buffer = []
            for event in iter_sse_events(buffer):
                reconstructor.feed(event)
        text = reconstructor.text()
        self._log.debug(
            "Reconstructed {} chars from {} events across {} channel(s)",
            len(text),
            reconstructor.event_count,
            reconstructor.channel_count,
        )
        if not text:
            raise VisionTransientError("Streaming response produced no text")
        return text

    def _check_status(self, response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        if is_retryable_http_status(response.status_code):
            response.raise_for_status()
        body = response.text[:500]
        raise VisionRequestError(
            f"Provider rejected request: {response.status_code} {response.reason_phrase} - {body}",
            status_code=response.status_code,
        )


def _messages_text(data: dict[str, Any]) -> str:
    blocks = data.get("content") or []
    return "".join(
        block.get("text", "")
        for block in blocks
        if isinstance(block, dict) and block.get("type") == "text"
    )


def _chat_text(data: dict[str, Any]) -> str:
    choices = data.get("choices") or []
    if not choices:
        return ""
    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, list):
        return "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    return content or ""
