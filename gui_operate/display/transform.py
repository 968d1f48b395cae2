"""Conversions between normalized, local, global and native point spaces."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Literal

from ..logging_utils import get_logger
from .types import Display, DisplayTopology, GlobalPoint, LocalPoint, NativePoint, NormalizedPoint


NORMALIZED_MAX = 1000

CoordinateMode = Literal["absolute", "normalized", "auto"]
TopologyProvider = Callable[[], DisplayTopology]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True, slots=True)
class ResolvedCoordinates:
    point: LocalPoint
    display_index: int
    interpreted_as: Literal["absolute", "normalized"]
    clamped: bool = False


class CoordinateTransformer:
    """Pure point-space conversions over the current cached topology.

    No method raises on out-of-range input: points are clamped, and an
    unknown display index falls back to display 0.
    """

    def __init__(self, topology_provider: TopologyProvider) -> None:
        self._topology_provider = topology_provider
        self._log = get_logger("display.transform")

    @property
    def topology(self) -> DisplayTopology:
        return self._topology_provider()

    def display(self, display_index: int) -> Display:
        topology = self.topology
        display = topology.get(display_index)
        if display is not None:
            return display
        fallback = topology.get(0) or topology.displays[0]
        self._log.warning(
            "Display index {} not found (available 0-{}); falling back to display {}",
            display_index,
            len(topology.displays) - 1,
            fallback.index,
        )
        return fallback

    def to_global(self, local: LocalPoint, display_index: int = 0) -> GlobalPoint:
        display = self.display(display_index)
        if not (0 <= local.x < display.width and 0 <= local.y < display.height):
            self._log.warning(
                "Coordinates ({}, {}) may be outside display {} bounds ({}x{})",
                local.x,
                local.y,
                display.index,
                display.width,
                display.height,
            )
        point = GlobalPoint(display.origin_x + local.x, display.origin_y + local.y)
        self._log.debug(
            "Local ({}, {}) + origin ({}, {}) = global ({}, {})",
            local.x,
            local.y,
            display.origin_x,
            display.origin_y,
            point.x,
            point.y,
        )
        return point

    def global_to_local(self, point: GlobalPoint) -> tuple[int, LocalPoint]:
        """Find the display containing ``point``; the main display if none does."""

        topology = self.topology
        display = next(
            (item for item in topology.displays if item.contains_global(point.x, point.y)),
            topology.main,
        )
        return display.index, LocalPoint(point.x - display.origin_x, point.y - display.origin_y)

    def normalized_to_local(self, xn: float, yn: float, display_index: int = 0) -> LocalPoint:
        display = self.display(display_index)
        xn_c = _clamp(xn, 0, NORMALIZED_MAX)
        yn_c = _clamp(yn, 0, NORMALIZED_MAX)
        x = round_half_up(xn_c / NORMALIZED_MAX * display.width)
        y = round_half_up(yn_c / NORMALIZED_MAX * display.height)
        if display.width > 0:
            x = int(_clamp(x, 0, display.width - 1))
        if display.height > 0:
            y = int(_clamp(y, 0, display.height - 1))
        self._log.debug(
            "Normalized ({}, {}) -> clamped ({}, {}) -> local ({}, {}) on display {} ({}x{})",
            xn,
            yn,
            xn_c,
            yn_c,
            x,
            y,
            display.index,
            display.width,
            display.height,
        )
        return LocalPoint(x, y)

    def local_to_normalized(self, local: LocalPoint, display_index: int = 0) -> NormalizedPoint:
        display = self.display(display_index)
        xn = round_half_up(local.x / display.width * NORMALIZED_MAX) if display.width > 0 else 0
        yn = round_half_up(local.y / display.height * NORMALIZED_MAX) if display.height > 0 else 0
        return NormalizedPoint(
            int(_clamp(xn, 0, NORMALIZED_MAX)),
            int(_clamp(yn, 0, NORMALIZED_MAX)),
        )

    def resolve_click_coordinates(
        self,
        x: float,
        y: float,
        display_index: int = 0,
        mode: CoordinateMode = "auto",
    ) -> ResolvedCoordinates:
        """Interpret caller coordinates as a local point on ``display_index``.

        ``auto`` treats the input as local pixels, but reinterprets it as
        normalized when it falls outside the display and both components
        lie within [0, 1000].
        """

        display = self.display(display_index)
        if mode == "normalized":
            return ResolvedCoordinates(
                self.normalized_to_local(x, y, display.index), display.index, "normalized"
            )
        inside = 0 <= x < display.width and 0 <= y < display.height
        if mode == "auto" and not inside:
            if 0 <= x <= NORMALIZED_MAX and 0 <= y <= NORMALIZED_MAX:
                self._log.info(
                    "Coordinates ({}, {}) fall outside display {} ({}x{}); treating as normalized",
                    x,
                    y,
                    display.index,
                    display.width,
                    display.height,
                )
                return ResolvedCoordinates(
                    self.normalized_to_local(x, y, display.index), display.index, "normalized"
                )
        lx = round_half_up(x)
        ly = round_half_up(y)
        cx = int(_clamp(lx, 0, max(display.width - 1, 0)))
        cy = int(_clamp(ly, 0, max(display.height - 1, 0)))
        clamped = (cx, cy) != (lx, ly)
        if clamped:
            self._log.warning(
                "Coordinates ({}, {}) clamped to ({}, {}) on display {}",
                x,
                y,
                cx,
                cy,
                display.index,
            )
        return ResolvedCoordinates(LocalPoint(cx, cy), display.index, "absolute", clamped)

    def to_native(self, point: GlobalPoint) -> NativePoint:
        topology = self.topology
        if topology.native_frame == "bottom_left":
            return NativePoint(point.x, topology.main.height - point.y)
        return NativePoint(point.x, point.y)

    def from_native(self, point: NativePoint) -> GlobalPoint:
        topology = self.topology
        if topology.native_frame == "bottom_left":
            return GlobalPoint(point.x, topology.main.height - point.y)
        return GlobalPoint(point.x, point.y)
