"""Screen capture collaborator interface and the short-lived reuse cache."""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from ..logging_utils import get_logger


@dataclass(frozen=True, slots=True)
class Region:
    """Display-local logical rectangle."""

    x: int
    y: int
    width: int
    height: int

    def as_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True, slots=True)
class CapturedImage:
    """PNG bytes plus their size in device pixels."""

    png_bytes: bytes
    width: int
    height: int
    display_index: int
    region: Region | None = None
    captured_at: float = 0.0


class ScreenCapturer(Protocol):
    def capture(self, display_index: int, region: Region | None = None) -> CapturedImage:
        ...


class CachedCapturer:
    """Reuse a capture of the same display/region for ``ttl_s`` seconds."""

    def __init__(
        self,
        inner: ScreenCapturer,
        *,
        ttl_s: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._inner = inner
        self._ttl_s = ttl_s
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: dict[tuple[int, Region | None], tuple[float, CapturedImage]] = {}
        self._log = get_logger("capture.cache")

    def capture(self, display_index: int, region: Region | None = None) -> CapturedImage:
        key = (display_index, region)
        now = self._clock()
        with self._lock:
            hit = self._cache.get(key)
            if hit is not None and now - hit[0] < self._ttl_s:
                self._log.debug("Reusing capture of display {} ({:.2f}s old)", display_index, now - hit[0])
                return hit[1]
        image = self._inner.capture(display_index, region)
        with self._lock:
            self._cache[key] = (now, image)
        return image

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()


async def capture_async(
    capturer: ScreenCapturer,
    display_index: int,
    region: Region | None = None,
    *,
    timeout_s: float = 15.0,
) -> CapturedImage:
    """Run a blocking capture in a worker thread under a hard timeout."""

    return await asyncio.wait_for(
        asyncio.to_thread(capturer.capture, display_index, region),
        timeout=timeout_s,
    )
