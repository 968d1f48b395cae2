"""Deterministic dock/taskbar shortcut tried before the vision locator."""

from __future__ import annotations

import asyncio
import re
import subprocess
import sys
from dataclasses import dataclass
from typing import Protocol

from ..capture.base import Region
from ..display.transform import CoordinateTransformer, round_half_up
from ..display.types import GlobalPoint
from ..logging_utils import get_logger
from .locator import LocateOutcome, LocateResult, LocateState


DOCK_KEYWORDS = ("dock", "taskbar", "task bar", "任务栏", "程序坞")

DEFAULT_ALIASES: dict[str, tuple[str, ...]] = {
    "google chrome": ("chrome", "谷歌浏览器"),
    "visual studio code": ("vscode", "vs code", "code"),
    "system settings": ("settings", "system preferences", "系统设置", "设置"),
    "terminal": ("终端",),
    "finder": ("访达",),
    "safari": ("safari浏览器",),
    "wechat": ("微信",),
    "mail": ("邮件",),
    "trash": ("废纸篓", "bin"),
}

_DOCK_SCRIPT = """
tell application "System Events"
    tell process "Dock"
        set out to ""
        repeat with e in UI elements of list 1
            set p to position of e
            set s to size of e
            set out to out & (name of e) & tab & (item 1 of p) & tab & (item 2 of p) & tab & (item 1 of s) & tab & (item 2 of s) & linefeed
        end repeat
        return out
    end tell
end tell
"""


@dataclass(frozen=True, slots=True)
class DockItem:
    """A dock entry with its frame in global logical pixels."""

    name: str
    x: int
    y: int
    width: int
    height: int

    @property
    def center(self) -> GlobalPoint:
        return GlobalPoint(round_half_up(self.x + self.width / 2), round_half_up(self.y + self.height / 2))


class DockItemSource(Protocol):
    def items(self) -> list[DockItem]:
        ...


def parse_dock_items(output: str) -> list[DockItem]:
    items: list[DockItem] = []
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) != 5 or not parts[0].strip() or parts[0] == "missing value":
            continue
        try:
            x, y, width, height = (int(float(part)) for part in parts[1:])
        except ValueError:
            continue
        items.append(DockItem(parts[0].strip(), x, y, width, height))
    return items


class MacDockSource:
    """Read dock items through System Events accessibility (macOS only)."""

    def __init__(self, timeout_s: float = 5.0) -> None:
        self._timeout_s = timeout_s

    def items(self) -> list[DockItem]:
        if sys.platform != "darwin":
            return []
        result = subprocess.run(
            ["osascript", "-e", _DOCK_SCRIPT],
            capture_output=True,
            text=True,
            timeout=self._timeout_s,
            check=False,
        )
        if result.returncode != 0:
            raise RuntimeError(f"Dock query failed: {result.stderr.strip()[:200]}")
        return parse_dock_items(result.stdout)


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text.lower()).strip()


def _mentions(haystack: str, needle: str) -> bool:
    if not needle:
        return False
    if needle.isascii():
        return re.search(rf"(?<![a-z0-9]){re.escape(needle)}(?![a-z0-9])", haystack) is not None
    return needle in haystack


class DockLocator:
    """Match dock item names (and aliases) mentioned in a dock/taskbar description."""

    name = "dock"

    def __init__(
        self,
        source: DockItemSource,
        transformer: CoordinateTransformer,
        *,
        aliases: dict[str, tuple[str, ...]] | None = None,
    ) -> None:
        self._source = source
        self._transformer = transformer
        self._aliases = {
            _normalize(name): tuple(_normalize(alias) for alias in values)
            for name, values in (aliases or DEFAULT_ALIASES).items()
        }
        self._log = get_logger("vision.dock")

    def supports(self, description: str) -> bool:
        text = _normalize(description)
        return any(keyword in text for keyword in DOCK_KEYWORDS)

    def match(self, description: str, items: list[DockItem]) -> DockItem | None:
        text = _normalize(description)
        best: tuple[int, DockItem] | None = None
        for item in items:
            name = _normalize(item.name)
            terms = (name, *self._aliases.get(name, ()))
            hits = [term for term in terms if _mentions(text, term)]
            if not hits:
                continue
            score = max(len(term) for term in hits)
            if best is None or score > best[0]:
                best = (score, item)
        return best[1] if best else None

    async def locate(
        self, description: str, display_index: int | None = None, region: Region | None = None
    ) -> LocateResult | None:
        try:
            items = await asyncio.to_thread(self._source.items)
        except (OSError, RuntimeError, subprocess.TimeoutExpired) as exc:
            self._log.warning("Dock items unavailable, falling back to vision: {}", exc)
            return None
        item = self.match(description, items)
        if item is None:
            return None
        index, point = self._transformer.global_to_local(item.center)
        self._log.info(
            "Matched dock item '{}' for '{}' at local ({}, {}) on display {}",
            item.name,
            description,
            point.x,
            point.y,
            index,
        )
        return LocateResult(
            outcome=LocateOutcome.LOCATED,
            description=description,
            display_index=index,
            point=point,
            confidence=100.0,
            source="dock",
            trace=(LocateState.IDLE, LocateState.DECIDED),
        )
