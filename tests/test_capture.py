from __future__ import annotations

import asyncio

from conftest import FakeCapturer, png_bytes
from gui_operate.capture.annotate import PillowAnnotator, mark_point
from gui_operate.capture.base import CachedCapturer, Region, capture_async
from gui_operate.capture.mss_capture import image_size
from gui_operate.history.annotation import build_markers
from gui_operate.history.models import ClickHistoryEntry


def test_cached_capturer_reuses_recent_capture() -> None:
    now = [0.0]
    inner = FakeCapturer(200, 100)
    cached = CachedCapturer(inner, ttl_s=1.0, clock=lambda: now[0])

    first = cached.capture(0)
    assert cached.capture(0) is first
    cached.capture(0, Region(0, 0, 10, 10))
    assert len(inner.calls) == 2

    now[0] = 1.5
    assert cached.capture(0) is not first
    assert len(inner.calls) == 3


def test_cached_capturer_invalidate_forces_new_capture() -> None:
    inner = FakeCapturer(200, 100)
    cached = CachedCapturer(inner, ttl_s=60.0)

    cached.capture(1)
    cached.invalidate()
    cached.capture(1)

    assert inner.calls == [(1, None), (1, None)]


def test_capture_async_returns_image() -> None:
    image = asyncio.run(capture_async(FakeCapturer(64, 32), 0, timeout_s=1.0))

    assert (image.width, image.height) == (64, 32)
    assert image_size(image.png_bytes) == (64, 32)


def test_pillow_annotator_keeps_image_size() -> None:
    entry = ClickHistoryEntry(index=1, display_index=0, x=50, y=40, timestamp=1, operation="single")
    markers = build_markers([entry], scale_factor=1.0, image_width=320, image_height=200)
    source = png_bytes(320, 200)

    annotated = PillowAnnotator().annotate(source, markers)

    assert annotated != source
    assert image_size(annotated) == (320, 200)


def test_mark_point_draws_on_copy() -> None:
    source = png_bytes(120, 80)

    marked = mark_point(source, (60, 40), (40, 30, 80, 50))

    assert marked != source
    assert image_size(marked) == (120, 80)
