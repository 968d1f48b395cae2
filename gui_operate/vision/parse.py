"""Parse grounding and verification answers from vision models."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..display.transform import NORMALIZED_MAX, round_half_up
from ..errors import VisionParseError


_BRACE_RE = re.compile(r"\{[\s\S]*\}")
_FENCE_RE = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", re.IGNORECASE)
_JUDGMENT_RE = re.compile(
    r"\*\*Operation Success Judgment:\*\*[\s\S]*?Status:\s*\[?\s*(SUCCESS|FAILURE)", re.IGNORECASE
)


class GroundingPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    box_2d: list[float] = Field(..., description="[ymin, xmin, ymax, xmax] in 0-1000 space.")
    confidence: float = Field(0.0)

    @field_validator("box_2d", mode="before")
    @classmethod
    def _validate_box(cls, value: Any) -> list[float]:
        if not isinstance(value, (list, tuple)) or len(value) != 4:
            raise ValueError("box_2d must be a 4-element array [ymin, xmin, ymax, xmax]")
        try:
            return [float(item) for item in value]
        except (TypeError, ValueError) as exc:
            raise ValueError("box_2d values must be numbers") from exc

    @field_validator("confidence", mode="before")
    @classmethod
    def _validate_confidence(cls, value: Any) -> float:
        if value is None:
            return 0.0
        return float(value)


@dataclass(frozen=True, slots=True)
class PixelBox:
    left: int
    top: int
    right: int
    bottom: int

    @property
    def center(self) -> tuple[int, int]:
        return round_half_up((self.left + self.right) / 2), round_half_up((self.top + self.bottom) / 2)

    def as_tuple(self) -> tuple[int, int, int, int]:
        return self.left, self.top, self.right, self.bottom

    def as_dict(self) -> dict[str, int]:
        return {"left": self.left, "top": self.top, "right": self.right, "bottom": self.bottom}


def _candidates(text: str) -> list[str]:
    found: list[str] = []
    match = _BRACE_RE.search(text)
    if match:
        found.append(match.group(0))
    for fenced in _FENCE_RE.findall(text):
        if fenced not in found:
            found.append(fenced)
    return found


def parse_grounding_response(text: str) -> GroundingPayload:
    """Extract ``{"box_2d": [...], "confidence": n}`` from a model answer.

    The widest ``{...}`` span is tried first, then fenced code blocks. Any
    failure raises :class:`VisionParseError`; nothing is defaulted.
    """

    candidates = _candidates(text or "")
    if not candidates:
        raise VisionParseError("No JSON found in vision response")
    errors: list[str] = []
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as exc:
            errors.append(f"invalid JSON: {exc}")
            continue
        if not isinstance(data, dict):
            errors.append("JSON is not an object")
            continue
        try:
            return GroundingPayload.model_validate(data)
        except ValidationError as exc:
            errors.append(f"invalid payload: {exc.errors()[0].get('msg', exc)}")
    raise VisionParseError(
        f"Failed to parse vision response ({'; '.join(errors)}): {text[:300]}"
    )


def normalized_box_to_pixels(box: list[float], image_width: int, image_height: int) -> PixelBox:
    ymin, xmin, ymax, xmax = box
    left = round_half_up(xmin / NORMALIZED_MAX * image_width)
    top = round_half_up(ymin / NORMALIZED_MAX * image_height)
    right = round_half_up(xmax / NORMALIZED_MAX * image_width)
    bottom = round_half_up(ymax / NORMALIZED_MAX * image_height)
    return PixelBox(min(left, right), min(top, bottom), max(left, right), max(top, bottom))


def parse_operation_success(text: str) -> bool | None:
    """Return the SUCCESS/FAILURE judgment, or None when the block is missing."""

    match = _JUDGMENT_RE.search(text or "")
    if not match:
        return None
    return match.group(1).upper() == "SUCCESS"
