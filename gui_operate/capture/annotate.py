"""Screenshot overlays: history markers and located-point debug marks."""

from __future__ import annotations

import io
from typing import Protocol, Sequence

from PIL import Image, ImageDraw, ImageFont

from ..history.annotation import Marker
from .mss_capture import encode_png


_FONT_CANDIDATES = (
    "/System/Library/Fonts/Helvetica.ttc",
    "/System/Library/Fonts/SFNSDisplay.ttf",
    "DejaVuSans.ttf",
    "arial.ttf",
)

_MARKER_FILL = (255, 255, 0, 60)
_MARKER_OUTLINE = (255, 200, 0, 255)
_CROSS = (255, 0, 0, 255)
_LABEL_BG = (0, 0, 0, 180)


class Annotator(Protocol):
    def annotate(self, png_bytes: bytes, markers: Sequence[Marker]) -> bytes:
        ...


def _load_font(size: int) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    for candidate in _FONT_CANDIDATES:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    return ImageFont.load_default()


class PillowAnnotator:
    """Draw numbered yellow history markers with their normalized labels."""

    def __init__(self, *, radius: int = 20, cross_size: int = 12) -> None:
        self._radius = radius
        self._cross_size = cross_size
        self._font = _load_font(32)
        self._small_font = _load_font(20)

    def annotate(self, png_bytes: bytes, markers: Sequence[Marker]) -> bytes:
        with Image.open(io.BytesIO(png_bytes)) as source:
            base = source.convert("RGBA")
        overlay = Image.new("RGBA", base.size, (255, 255, 255, 0))
        draw = ImageDraw.Draw(overlay)
        for marker in markers:
            self._draw_marker(draw, marker, base.width)
        composed = Image.alpha_composite(base, overlay).convert("RGB")
        return encode_png(composed)

    def _draw_marker(self, draw: ImageDraw.ImageDraw, marker: Marker, image_width: int) -> None:
        x, y = marker.pixel_x, marker.pixel_y
        r = self._radius
        c = self._cross_size
        draw.ellipse([(x - r, y - r), (x + r, y + r)], fill=_MARKER_FILL, outline=_MARKER_OUTLINE, width=3)
        draw.line([(x - c, y), (x + c, y)], fill=_CROSS, width=2)
        draw.line([(x, y - c), (x, y + c)], fill=_CROSS, width=2)
        draw.ellipse([(x - 3, y - 3), (x + 3, y + 3)], fill=_CROSS)

        num_box = draw.textbbox((0, 0), marker.label, font=self._font)
        coord_box = draw.textbbox((0, 0), marker.norm_label, font=self._small_font)
        num_w, num_h = num_box[2] - num_box[0], num_box[3] - num_box[1]
        coord_w, coord_h = coord_box[2] - coord_box[0], coord_box[3] - coord_box[1]
        box_w = max(num_w, coord_w)
        box_h = num_h + coord_h + 4

        label_x = x + r + 8
        label_y = y - r - box_h - 8
        if label_x + box_w + 10 > image_width:
            label_x = x - r - box_w - 18
        if label_y < 0:
            label_y = y + r + 8
        pad = 4
        draw.rectangle(
            [(label_x - pad, label_y - pad), (label_x + box_w + pad, label_y + box_h + pad)],
            fill=_LABEL_BG,
            outline=_MARKER_OUTLINE,
            width=2,
        )
        draw.text((label_x, label_y), marker.label, fill=(255, 255, 0, 255), font=self._font)
        draw.text(
            (label_x, label_y + num_h + 2),
            marker.norm_label,
            fill=(255, 255, 255, 255),
            font=self._small_font,
        )


def mark_point(
    png_bytes: bytes,
    point: tuple[int, int],
    bounding_box: tuple[int, int, int, int] | None = None,
) -> bytes:
    """Return a copy of ``png_bytes`` with the located point (and box) drawn.

    ``point`` and ``bounding_box`` (left, top, right, bottom) are image pixels.
    """

    with Image.open(io.BytesIO(png_bytes)) as source:
        image = source.convert("RGB")
    draw = ImageDraw.Draw(image)
    if bounding_box is not None:
        draw.rectangle(list(bounding_box), outline="green", width=2)
    x, y = point
    draw.ellipse([x - 20, y - 20, x + 20, y + 20], outline="red", width=3)
    draw.line([x - 30, y, x + 30, y], fill="red", width=2)
    draw.line([x, y - 30, x, y + 30], fill="red", width=2)
    draw.ellipse([x - 2, y - 2, x + 2, y + 2], fill="red")
    return encode_png(image)
