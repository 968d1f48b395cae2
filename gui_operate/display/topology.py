"""Display topology normalization and TTL caching."""

from __future__ import annotations

import threading
import time
from typing import Callable, Sequence

from ..logging_utils import get_logger
from .sources import TopologySource
from .types import Display, DisplayTopology, RawDisplay


DEFAULT_TTL_S = 5.0


def synthesize_default_topology(width: int = 1920, height: int = 1080) -> DisplayTopology:
    display = Display(
        index=0,
        name="Main Display",
        is_main=True,
        width=width,
        height=height,
        origin_x=0,
        origin_y=0,
        scale_factor=1.0,
    )
    return DisplayTopology(
        displays=(display,),
        total_width=width,
        total_height=height,
        main_display_index=0,
        source="synthesized",
        warnings=("no display source returned data; using a synthesized main display",),
    )


def normalize_topology(raw: Sequence[RawDisplay], *, source: str = "unknown") -> DisplayTopology:
    """Convert raw per-display geometry into the canonical top-left frame.

    The main display always sits at (0, 0). Bottom-left (device frame)
    origins are flipped with ``main_height - (origin_y + height)``.
    ``total_height`` is the tallest single display, not the stacked sum.
    """

    if not raw:
        raise ValueError("normalize_topology requires at least one display")
    log = get_logger("display.topology")
    ordered = sorted(raw, key=lambda item: item.index)
    main_raw = next((item for item in ordered if item.is_main), ordered[0])
    main_height = main_raw.height

    displays: list[Display] = []
    for dense_index, item in enumerate(ordered):
        is_main = item is main_raw
        if is_main:
            origin_x, origin_y = 0, 0
        elif item.origin_frame == "bottom_left":
            origin_x = item.origin_x - main_raw.origin_x
            origin_y = main_height - (item.origin_y + item.height)
        else:
            origin_x = item.origin_x - main_raw.origin_x
            origin_y = item.origin_y - main_raw.origin_y
        scale = item.scale_factor if item.scale_factor and item.scale_factor >= 1.0 else 1.0
        displays.append(
            Display(
                index=dense_index,
                name=item.name or f"Display {dense_index + 1}",
                is_main=is_main,
                width=max(0, int(item.width)),
                height=max(0, int(item.height)),
                origin_x=int(origin_x),
                origin_y=int(origin_y),
                scale_factor=float(scale),
            )
        )
        log.debug(
            "Display {} ({}): reported origin=({}, {}) frame={} -> canonical origin=({}, {}) size={}x{} scale={}",
            dense_index,
            "main" if is_main else "secondary",
            item.origin_x,
            item.origin_y,
            item.origin_frame,
            origin_x,
            origin_y,
            item.width,
            item.height,
            scale,
        )

    total_width = max(display.origin_x + display.width for display in displays)
    total_height = max(display.height for display in displays)
    main_index = next(display.index for display in displays if display.is_main)
    return DisplayTopology(
        displays=tuple(displays),
        total_width=total_width,
        total_height=total_height,
        main_display_index=main_index,
        source=source,
        native_frame=main_raw.origin_frame,
    )


class TopologyCache:
    """Query display sources in order and cache the normalized result.

    Readers always see a complete topology: refresh builds a new immutable
    object and swaps the reference under the lock.
    """

    def __init__(
        self,
        sources: Sequence[TopologySource],
        *,
        ttl_s: float = DEFAULT_TTL_S,
        fallback_size: tuple[int, int] = (1920, 1080),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sources = list(sources)
        self._ttl_s = ttl_s
        self._fallback_size = fallback_size
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: DisplayTopology | None = None
        self._cached_at = 0.0
        self._log = get_logger("display.topology")

    def get(self, *, force_refresh: bool = False) -> DisplayTopology:
        now = self._clock()
        cached = self._cached
        if not force_refresh and cached is not None and now - self._cached_at < self._ttl_s:
            return cached
        with self._lock:
            if (
                not force_refresh
                and self._cached is not None
                and now - self._cached_at < self._ttl_s
            ):
                return self._cached
            topology = self._query()
            self._cached = topology
            self._cached_at = now
            return topology

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None
            self._cached_at = 0.0

    def _query(self) -> DisplayTopology:
        for source in self._sources:
            try:
                raw = source.query()
            except Exception as exc:
                self._log.warning("Display source {} failed: {}", source.name, exc)
                continue
            if not raw:
                self._log.warning("Display source {} returned no displays", source.name)
                continue
            topology = normalize_topology(raw, source=source.name)
            self._log.info(
                "Display topology from {}: {} display(s), total {}x{}",
                source.name,
                len(topology.displays),
                topology.total_width,
                topology.total_height,
            )
            return topology
        self._log.warning("All display sources failed; synthesizing default display")
        return synthesize_default_topology(*self._fallback_size)
