"""Screen capture and screenshot annotation collaborators."""

import sys

from ..display.transform import CoordinateTransformer
from .annotate import Annotator, PillowAnnotator, mark_point
from .base import CachedCapturer, CapturedImage, Region, ScreenCapturer, capture_async
from .mss_capture import MssCapturer, ScreencaptureCapturer


def default_capturer(transformer: CoordinateTransformer, *, timeout_s: float = 15.0) -> ScreenCapturer:
    if sys.platform == "darwin":
        return ScreencaptureCapturer(transformer, timeout_s=timeout_s)
    return MssCapturer(transformer)


__all__ = [
    "Annotator",
    "CachedCapturer",
    "CapturedImage",
    "MssCapturer",
    "PillowAnnotator",
    "Region",
    "ScreenCapturer",
    "ScreencaptureCapturer",
    "capture_async",
    "default_capturer",
    "mark_point",
]
