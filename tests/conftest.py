from __future__ import annotations

import asyncio
import io
import sys
from pathlib import Path

import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gui_operate.capture.base import CapturedImage, Region  # noqa: E402
from gui_operate.display.topology import normalize_topology  # noqa: E402
from gui_operate.display.transform import CoordinateTransformer  # noqa: E402
from gui_operate.display.types import RawDisplay  # noqa: E402


class StaticSource:
    def __init__(self, displays, name: str = "static") -> None:
        self.name = name
        self._displays = list(displays)
        self.calls = 0

    def query(self):
        self.calls += 1
        return list(self._displays)


class FailingSource:
    def __init__(self, name: str = "failing") -> None:
        self.name = name
        self.calls = 0

    def query(self):
        self.calls += 1
        raise RuntimeError("display query failed")


def png_bytes(width: int, height: int, color=(40, 40, 40)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeCapturer:
    def __init__(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.calls: list[tuple[int, Region | None]] = []

    def capture(self, display_index: int, region: Region | None = None) -> CapturedImage:
        self.calls.append((display_index, region))
        return CapturedImage(
            png_bytes=png_bytes(self.width, self.height),
            width=self.width,
            height=self.height,
            display_index=display_index,
            region=region,
        )


def single_display(width: int = 1920, height: int = 1080, scale: float = 1.0) -> RawDisplay:
    return RawDisplay(
        index=0,
        name="Main",
        is_main=True,
        width=width,
        height=height,
        origin_x=0,
        origin_y=0,
        scale_factor=scale,
    )


def make_transformer(*raw: RawDisplay) -> CoordinateTransformer:
    topology = normalize_topology(list(raw) or [single_display()], source="test")
    return CoordinateTransformer(lambda: topology)


@pytest.fixture(autouse=True)
def _inline_to_thread(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _to_thread(func, *args, **kwargs):
        return func(*args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", _to_thread)


@pytest.fixture(autouse=True)
def _isolated_data_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("GUI_OPERATE_DATA_DIR", str(tmp_path / "data"))
    for name in (
        "ANTHROPIC_API_KEY",
        "ANTHROPIC_AUTH_TOKEN",
        "ANTHROPIC_BASE_URL",
        "CLAUDE_MODEL",
        "ANTHROPIC_DEFAULT_SONNET_MODEL",
        "OPENAI_API_KEY",
        "OPENAI_BASE_URL",
        "OPENAI_MODEL",
        "GUI_OPERATE_VISION_WIRE",
        "GUI_OPERATE_CONFIG",
        "GUI_OPERATE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
