"""Choose which historical clicks to overlay on a screenshot."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from ..display.transform import NORMALIZED_MAX, round_half_up
from ..logging_utils import get_logger
from .models import AppContext, ClickHistoryEntry


DEFAULT_MAX_MARKERS = 10
DEFAULT_MIN_PIXEL_SEPARATION = 50.0

_log = get_logger("history.annotation")


@dataclass(frozen=True, slots=True)
class Marker:
    """A numbered overlay marker in screenshot (device) pixels."""

    rank: int
    pixel_x: int
    pixel_y: int
    norm_x: int
    norm_y: int
    entry: ClickHistoryEntry

    @property
    def label(self) -> str:
        return f"#{self.rank}"

    @property
    def norm_label(self) -> str:
        return f"[{self.norm_y},{self.norm_x}]"


def select_annotation_set(
    context: AppContext,
    display_index: int,
    *,
    scale_factor: float = 1.0,
    max_markers: int = DEFAULT_MAX_MARKERS,
    min_pixel_separation: float = DEFAULT_MIN_PIXEL_SEPARATION,
) -> list[ClickHistoryEntry]:
    """Return the ranked, visually separated subset of clicks for one display.

    Rank 0 is always the most recent click. The rest are ordered by
    ``success_count * 2 + count`` and then recency, and accepted greedily
    unless they land closer than ``min_pixel_separation`` device pixels to
    an already accepted click.
    """

    candidates = context.for_display(display_index)
    if not candidates or max_markers <= 0:
        return []
    most_recent = max(candidates, key=lambda entry: entry.timestamp)
    remaining = sorted(
        (entry for entry in candidates if entry is not most_recent),
        key=lambda entry: (-entry.score, -entry.timestamp),
    )
    selected = [most_recent]
    for entry in remaining:
        if len(selected) >= max_markers:
            break
        too_close = any(
            math.hypot(
                (entry.x - other.x) * scale_factor, (entry.y - other.y) * scale_factor
            )
            < min_pixel_separation
            for other in selected
        )
        if not too_close:
            selected.append(entry)
    _log.debug(
        "Selected {} of {} clicks for display {} (max {}, min separation {}px)",
        len(selected),
        len(candidates),
        display_index,
        max_markers,
        min_pixel_separation,
    )
    return selected


def build_markers(
    entries: Sequence[ClickHistoryEntry],
    *,
    scale_factor: float,
    image_width: int,
    image_height: int,
    offset_x: int = 0,
    offset_y: int = 0,
) -> list[Marker]:
    """Project selected clicks into screenshot pixels.

    ``offset_x``/``offset_y`` are the logical origin of a region capture;
    clicks that fall outside the captured image are dropped.
    """

    markers: list[Marker] = []
    for rank, entry in enumerate(entries):
        pixel_x = int((entry.x - offset_x) * scale_factor)
        pixel_y = int((entry.y - offset_y) * scale_factor)
        if not (0 <= pixel_x < image_width and 0 <= pixel_y < image_height):
            continue
        markers.append(
            Marker(
                rank=rank,
                pixel_x=pixel_x,
                pixel_y=pixel_y,
                norm_x=round_half_up(pixel_x / image_width * NORMALIZED_MAX),
                norm_y=round_half_up(pixel_y / image_height * NORMALIZED_MAX),
                entry=entry,
            )
        )
    return markers


def describe_markers(markers: Sequence[Marker]) -> str:
    if not markers:
        return "No previous clicks recorded."
    lines = [
        f"  {marker.label}: {marker.norm_label.replace(',', ', ')} "
        f"(logical: {marker.entry.x}, {marker.entry.y}) - {marker.entry.operation}"
        for marker in markers
    ]
    return (
        "Previous clicks on this display (normalized to 0-1000, sorted by frequency):\n"
        + "\n".join(lines)
    )
