"""Screen capture implementations (mss + Pillow, macOS screencapture)."""

from __future__ import annotations

import io
import subprocess
import tempfile
import time
from pathlib import Path

from PIL import Image

from ..display.transform import CoordinateTransformer
from ..display.types import LocalPoint
from ..logging_utils import get_logger
from .base import CapturedImage, Region


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def image_size(png_bytes: bytes) -> tuple[int, int]:
    with Image.open(io.BytesIO(png_bytes)) as image:
        return image.size


class MssCapturer:
    """Cross-platform capture of one monitor (or a region of it) with mss.

    Monitor order follows mss enumeration, which matches the topology
    indices produced by the mss and Windows sources.
    """

    def __init__(self, transformer: CoordinateTransformer) -> None:
        self._transformer = transformer
        self._log = get_logger("capture.mss")

    def capture(self, display_index: int, region: Region | None = None) -> CapturedImage:
        import mss

        display = self._transformer.display(display_index)
        with mss.mss() as sct:
            monitors = sct.monitors[1:]
            if display.index >= len(monitors):
                raise RuntimeError(
                    f"mss reports {len(monitors)} monitor(s); display {display.index} unavailable"
                )
            monitor = dict(monitors[display.index])
            # mss monitor units may be device pixels; derive the ratio to logical.
            unit = monitor["width"] / display.width if display.width else 1.0
            if region is not None:
                monitor = {
                    "left": monitor["left"] + round(region.x * unit),
                    "top": monitor["top"] + round(region.y * unit),
                    "width": max(1, round(region.width * unit)),
                    "height": max(1, round(region.height * unit)),
                }
            shot = sct.grab(monitor)
            image = Image.frombytes("RGB", shot.size, shot.bgra, "raw", "BGRX")
        self._log.debug(
            "Captured display {} region={} size={}x{}",
            display.index,
            region,
            image.width,
            image.height,
        )
        return CapturedImage(
            png_bytes=encode_png(image),
            width=image.width,
            height=image.height,
            display_index=display.index,
            region=region,
            captured_at=time.time(),
        )


class ScreencaptureCapturer:
    """macOS ``screencapture`` capture at native (Retina) resolution."""

    def __init__(self, transformer: CoordinateTransformer, *, timeout_s: float = 15.0) -> None:
        self._transformer = transformer
        self._timeout_s = timeout_s
        self._log = get_logger("capture.screencapture")

    def capture(self, display_index: int, region: Region | None = None) -> CapturedImage:
        display = self._transformer.display(display_index)
        with tempfile.TemporaryDirectory(prefix="gui_operate_") as tmp:
            path = Path(tmp) / "capture.png"
            argv = ["screencapture", "-C", "-x", "-D", str(display.index + 1)]
            if region is not None:
                origin = self._transformer.to_global(LocalPoint(region.x, region.y), display.index)
                argv += ["-R", f"{origin.x},{origin.y},{region.width},{region.height}"]
            argv.append(str(path))
            result = subprocess.run(
                argv, capture_output=True, text=True, timeout=self._timeout_s, check=False
            )
            if result.returncode != 0 or not path.exists():
                raise RuntimeError(
                    f"screencapture failed ({result.returncode}): {result.stderr.strip()[:200]}"
                )
            png_bytes = path.read_bytes()
        width, height = image_size(png_bytes)
        return CapturedImage(
            png_bytes=png_bytes,
            width=width,
            height=height,
            display_index=display.index,
            region=region,
            captured_at=time.time(),
        )
