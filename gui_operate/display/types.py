"""Display geometry and point-space datatypes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


OriginFrame = Literal["bottom_left", "top_left"]


@dataclass(frozen=True, slots=True)
class RawDisplay:
    """Per-display geometry exactly as a platform source reports it."""

    index: int
    name: str
    is_main: bool
    width: int
    height: int
    origin_x: int
    origin_y: int
    scale_factor: float = 1.0
    origin_frame: OriginFrame = "top_left"


@dataclass(frozen=True, slots=True)
class Display:
    index: int
    name: str
    is_main: bool
    width: int
    height: int
    origin_x: int
    origin_y: int
    scale_factor: float

    def contains_global(self, x: float, y: float) -> bool:
        return (
            self.origin_x <= x < self.origin_x + self.width
            and self.origin_y <= y < self.origin_y + self.height
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "index": self.index,
            "name": self.name,
            "is_main": self.is_main,
            "width": self.width,
            "height": self.height,
            "origin_x": self.origin_x,
            "origin_y": self.origin_y,
            "scale_factor": self.scale_factor,
        }


@dataclass(frozen=True, slots=True)
class DisplayTopology:
    displays: tuple[Display, ...]
    total_width: int
    total_height: int
    main_display_index: int
    source: str = "unknown"
    native_frame: OriginFrame = "top_left"
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def get(self, index: int) -> Display | None:
        for display in self.displays:
            if display.index == index:
                return display
        return None

    @property
    def main(self) -> Display:
        return self.get(self.main_display_index) or self.displays[0]

    def as_dict(self) -> dict[str, object]:
        return {
            "displays": [display.as_dict() for display in self.displays],
            "total_width": self.total_width,
            "total_height": self.total_height,
            "main_display_index": self.main_display_index,
            "source": self.source,
        }


@dataclass(frozen=True, slots=True)
class NormalizedPoint:
    """Display-relative point in the 0-1000 space used for storage."""

    xn: int
    yn: int


@dataclass(frozen=True, slots=True)
class LocalPoint:
    """Display-relative logical pixels (what automation commands take)."""

    x: int
    y: int


@dataclass(frozen=True, slots=True)
class GlobalPoint:
    """Logical pixels in the canonical top-left multi-display frame."""

    x: int
    y: int


@dataclass(frozen=True, slots=True)
class NativePoint:
    """Platform-native pixels, only used at the input-injection boundary."""

    x: int
    y: int
