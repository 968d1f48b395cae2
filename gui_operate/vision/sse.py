"""Server-Sent-Events parsing and multi-channel text reconstruction."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from ..errors import VisionTransientError
from ..logging_utils import get_logger


MIN_ECHO = 4
MIN_OVERLAP = 8

_CJK = "\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uff00-\uffef"
# Three or more consecutive doubled CJK characters ("你你好好吗吗").
_CJK_ECHO_RE = re.compile(rf"(?:([{_CJK}])\1){{3,}}")
_CJK_PAIR_RE = re.compile(rf"([{_CJK}])\1")

_log = get_logger("vision.sse")


@dataclass(frozen=True, slots=True)
class SseEvent:
    event: str
    data: str


def iter_sse_events(lines: Iterable[str]) -> Iterator[SseEvent]:
    """Group raw SSE lines into ``event:``/``data:`` blocks."""

    event_name = ""
    data_lines: list[str] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if data_lines or event_name:
                yield SseEvent(event_name or "message", "\n".join(data_lines))
            event_name = ""
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event_name = value
        elif field == "data":
            data_lines.append(value)
    if data_lines or event_name:
        yield SseEvent(event_name or "message", "\n".join(data_lines))


def parse_sse_text(body: str) -> list[SseEvent]:
    return list(iter_sse_events(body.splitlines()))


def merge_delta(current: str, delta: str) -> str:
    """Merge one streamed fragment into a channel's accumulated text.

    Recognized shapes, in order: a cumulative snapshot that extends the
    text (at any length), a repeated tail (echo), a fragment overlapping
    the tail, and a plain incremental fragment. Only tails of at least
    MIN_ECHO characters count as echoes.
    """

    if not delta:
        return current
    if not current:
        return delta
    if len(delta) > len(current) and delta.startswith(current):
        return delta
    if len(delta) >= MIN_ECHO and current.endswith(delta):
        return current
    max_overlap = min(len(current), len(delta) - 1)
    for size in range(max_overlap, MIN_OVERLAP - 1, -1):
        if current.endswith(delta[:size]):
            return current + delta[size:]
    return current + delta


def collapse_channels(texts: Iterable[str]) -> str:
    """Drop channels whose text is contained in a longer one; join the rest."""

    ordered = [text for text in texts if text]
    kept: list[str] = []
    for index, text in enumerate(ordered):
        dominated = any(
            (other != text and text in other) or (other == text and other_index < index)
            for other_index, other in enumerate(ordered)
            if other_index != index
        )
        if not dominated:
            kept.append(text)
    return "\n".join(kept)


def clean_cjk_echo(text: str) -> str:
    return _CJK_ECHO_RE.sub(lambda match: _CJK_PAIR_RE.sub(r"\1", match.group(0)), text)


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
            elif isinstance(part, str):
                parts.append(part)
        return "".join(parts)
    return ""


class StreamReconstructor:
    """Rebuild final text from interleaved streaming delta channels.

    Channels are keyed by ``item_id``/``output_index`` plus
    ``content_index`` for Responses-style events and ``choice:<index>``
    for chat-completions chunks. Provider ``error`` events raise
    :class:`VisionTransientError`.
    """

    def __init__(self) -> None:
        self._channels: dict[str, str] = {}
        self._completed_text = ""
        self.event_count = 0

    def feed(self, event: SseEvent) -> None:
        self.event_count += 1
        data = event.data.strip()
        if not data or data == "[DONE]":
            return
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            _log.debug("Skipping non-JSON SSE data for event {}", event.event)
            return
        if not isinstance(payload, dict):
            return
        kind = str(payload.get("type") or event.event or "")
        if event.event == "error" or kind in {"error", "response.failed"}:
            raise VisionTransientError(f"Provider stream error: {self._error_message(payload)}")

        if isinstance(payload.get("choices"), list):
            for choice in payload["choices"]:
                if not isinstance(choice, dict):
                    continue
                key = f"choice:{choice.get('index', 0)}"
                delta = choice.get("delta") or {}
                if isinstance(delta, dict):
                    self._apply(key, _content_text(delta.get("content")))
                message = choice.get("message") or {}
                if isinstance(message, dict) and message.get("content"):
                    self._snapshot(key, _content_text(message.get("content")))
            return

        if kind.endswith(".delta") and isinstance(payload.get("delta"), str):
            self._apply(self._channel_key(payload), payload["delta"])
        elif kind.endswith(".done") and isinstance(payload.get("text"), str):
            self._snapshot(self._channel_key(payload), payload["text"])
        elif kind == "response.completed":
            self._completed_text = self._response_output_text(payload.get("response") or {})

    def text(self) -> str:
        merged = collapse_channels(self._channels.values())
        if not merged.strip():
            merged = self._completed_text
        return clean_cjk_echo(merged).strip()

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    def _apply(self, key: str, delta: str) -> None:
        if delta:
            self._channels[key] = merge_delta(self._channels.get(key, ""), delta)

    def _snapshot(self, key: str, text: str) -> None:
        if text:
            self._channels[key] = text

    @staticmethod
    def _channel_key(payload: dict[str, Any]) -> str:
        item = payload.get("item_id")
        if item is None:
            item = payload.get("output_index", "default")
        return f"{item}:{payload.get('content_index', 0)}"

    @staticmethod
    def _error_message(payload: dict[str, Any]) -> str:
        error = payload.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        response = payload.get("response")
        if isinstance(response, dict) and isinstance(response.get("error"), dict):
            return str(response["error"].get("message") or response["error"])
        return str(payload.get("message") or error or "unknown error")

    @staticmethod
    def _response_output_text(response: dict[str, Any]) -> str:
        parts: list[str] = []
        for item in response.get("output") or []:
            if isinstance(item, dict):
                parts.append(_content_text(item.get("content")))
        return "\n".join(part for part in parts if part)


def reconstruct_text(events: Iterable[SseEvent]) -> str:
    reconstructor = StreamReconstructor()
    for event in events:
        reconstructor.feed(event)
    return reconstructor.text()
