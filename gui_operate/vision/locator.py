"""Vision grounding pipeline: capture, annotate, ask, parse, convert, decide."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol, Sequence

from ..capture.annotate import Annotator, mark_point
from ..capture.base import CapturedImage, Region, ScreenCapturer, capture_async
from ..display.transform import CoordinateTransformer, round_half_up
from ..display.types import Display, LocalPoint
from ..errors import ConfigurationError, VisionParseError, VisionProviderError
from ..history.annotation import build_markers, describe_markers, select_annotation_set
from ..history.models import AppContext
from ..logging_utils import get_logger
from .client import VisionProviderClient
from .parse import PixelBox, normalized_box_to_pixels, parse_grounding_response, parse_operation_success
from .prompts import build_grounding_prompt, build_verify_prompt


class LocateState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    ANNOTATING = "annotating"
    REQUESTING = "requesting"
    PARSING = "parsing"
    CONVERTING = "converting"
    DECIDED = "decided"


class LocateOutcome(str, Enum):
    LOCATED = "located"
    LOW_CONFIDENCE = "low_confidence"
    FAILED = "failed"


@dataclass(frozen=True)
class LocateResult:
    outcome: LocateOutcome
    description: str
    display_index: int
    point: LocalPoint | None = None
    confidence: float = 0.0
    bounding_box: PixelBox | None = None
    error: str | None = None
    source: str = "vision"
    trace: tuple[LocateState, ...] = ()
    history_info: str | None = None
    debug_image: Path | None = None

    @property
    def located(self) -> bool:
        return self.outcome is LocateOutcome.LOCATED

    def as_dict(self) -> dict[str, object]:
        return {
            "outcome": self.outcome.value,
            "description": self.description,
            "display_index": self.display_index,
            "x": self.point.x if self.point else None,
            "y": self.point.y if self.point else None,
            "confidence": self.confidence,
            "bounding_box": self.bounding_box.as_dict() if self.bounding_box else None,
            "error": self.error,
            "source": self.source,
            "trace": [state.value for state in self.trace],
            "history_info": self.history_info,
            "debug_image": str(self.debug_image) if self.debug_image else None,
        }


@dataclass(frozen=True)
class VerificationResult:
    question: str
    answer: str
    operation_success: bool | None
    display_index: int

    def as_dict(self) -> dict[str, object]:
        return {
            "question": self.question,
            "answer": self.answer,
            "operation_success": self.operation_success,
            "display_index": self.display_index,
        }


class Locator(Protocol):
    name: str

    def supports(self, description: str) -> bool:
        ...

    async def locate(
        self, description: str, display_index: int | None = None, region: Region | None = None
    ) -> LocateResult | None:
        ...


@dataclass
class _Run:
    description: str
    display: Display
    trace: list[LocateState] = field(default_factory=lambda: [LocateState.IDLE])

    def enter(self, state: LocateState) -> None:
        self.trace.append(state)

    def result(self, outcome: LocateOutcome, **kwargs) -> LocateResult:
        if self.trace[-1] is not LocateState.DECIDED:
            self.trace.append(LocateState.DECIDED)
        return LocateResult(
            outcome=outcome,
            description=self.description,
            display_index=self.display.index,
            trace=tuple(self.trace),
            **kwargs,
        )


class VisionLocator:
    """Locate a described element on screen with a vision model.

    Low confidence is a normal negative outcome; transport, provider and
    parse failures produce a FAILED result carrying the error text, while
    configuration errors propagate.
    """

    name = "vision"

    def __init__(
        self,
        *,
        transformer: CoordinateTransformer,
        capturer: ScreenCapturer,
        client: VisionProviderClient,
        annotator: Annotator | None = None,
        history: Callable[[], AppContext | None] = lambda: None,
        confidence_threshold: float = 50.0,
        max_markers: int = 10,
        min_pixel_separation: float = 50.0,
        capture_timeout_s: float = 15.0,
        debug_dir: Path | None = None,
    ) -> None:
        self._transformer = transformer
        self._capturer = capturer
        self._client = client
        self._annotator = annotator
        self._history = history
        self._threshold = confidence_threshold
        self._max_markers = max_markers
        self._min_separation = min_pixel_separation
        self._capture_timeout_s = capture_timeout_s
        self._debug_dir = debug_dir
        self._log = get_logger("vision.locator")

    def supports(self, description: str) -> bool:
        return True

    def _target_display(self, display_index: int | None) -> Display:
        if display_index is None:
            return self._transformer.topology.main
        return self._transformer.display(display_index)

    async def locate(
        self, description: str, display_index: int | None = None, region: Region | None = None
    ) -> LocateResult:
        run = _Run(description, self._target_display(display_index))
        display = run.display

        run.enter(LocateState.CAPTURING)
        try:
            captured = await capture_async(
                self._capturer, display.index, region, timeout_s=self._capture_timeout_s
            )
        except ConfigurationError:
            raise
        except Exception as exc:
            self._log.warning("Capture of display {} failed: {}", display.index, exc)
            return run.result(LocateOutcome.FAILED, error=f"Screen capture failed: {exc}")

        run.enter(LocateState.ANNOTATING)
        image, history_info = await self._annotate(captured, display, region)

        run.enter(LocateState.REQUESTING)
        prompt = build_grounding_prompt(description, history_info)
        try:
            answer = await self._client.complete(image, prompt, label="locate")
        except ConfigurationError:
            raise
        except VisionProviderError as exc:
            self._log.warning("Vision request for '{}' failed: {}", description, exc)
            return run.result(LocateOutcome.FAILED, error=str(exc), history_info=history_info)

        run.enter(LocateState.PARSING)
        try:
            payload = parse_grounding_response(answer)
        except VisionParseError as exc:
            self._log.warning("Could not parse vision answer for '{}': {}", description, exc)
            return run.result(LocateOutcome.FAILED, error=str(exc), history_info=history_info)

        run.enter(LocateState.CONVERTING)
        box = normalized_box_to_pixels(payload.box_2d, captured.width, captured.height)
        point = self._to_local(box, display, region)
        debug_image = self._save_debug_image(captured, box)
        self._log.info(
            "Located '{}' on display {}: box={} pixel_center={} local=({}, {}) confidence={}",
            description,
            display.index,
            box.as_tuple(),
            box.center,
            point.x,
            point.y,
            payload.confidence,
        )

        run.enter(LocateState.DECIDED)
        outcome = (
            LocateOutcome.LOCATED
            if payload.confidence >= self._threshold
            else LocateOutcome.LOW_CONFIDENCE
        )
        if outcome is LocateOutcome.LOW_CONFIDENCE:
            self._log.info(
                "Confidence {} below threshold {} for '{}'",
                payload.confidence,
                self._threshold,
                description,
            )
        return run.result(
            outcome,
            point=point,
            confidence=payload.confidence,
            bounding_box=box,
            history_info=history_info,
            debug_image=debug_image,
        )

    async def verify(self, question: str, display_index: int | None = None) -> VerificationResult:
        display = self._target_display(display_index)
        captured = await capture_async(
            self._capturer, display.index, None, timeout_s=self._capture_timeout_s
        )
        answer = await self._client.complete(
            captured.png_bytes, build_verify_prompt(question), label="verify"
        )
        success = parse_operation_success(answer)
        if success is None:
            self._log.warning("Could not parse operation success judgment from response")
        return VerificationResult(
            question=question,
            answer=answer,
            operation_success=success,
            display_index=display.index,
        )

    async def _annotate(
        self, captured: CapturedImage, display: Display, region: Region | None
    ) -> tuple[bytes, str | None]:
        context = self._history()
        if context is None or self._annotator is None:
            return captured.png_bytes, None
        entries = select_annotation_set(
            context,
            display.index,
            scale_factor=display.scale_factor,
            max_markers=self._max_markers,
            min_pixel_separation=self._min_separation,
        )
        markers = build_markers(
            entries,
            scale_factor=display.scale_factor,
            image_width=captured.width,
            image_height=captured.height,
            offset_x=region.x if region else 0,
            offset_y=region.y if region else 0,
        )
        if not markers:
            return captured.png_bytes, None
        try:
            annotated = await asyncio.to_thread(self._annotator.annotate, captured.png_bytes, markers)
        except Exception as exc:
            self._log.warning("Failed to annotate screenshot, sending it unannotated: {}", exc)
            return captured.png_bytes, None
        return annotated, describe_markers(markers)

    def _to_local(self, box: PixelBox, display: Display, region: Region | None) -> LocalPoint:
        scale = display.scale_factor or 1.0
        center_x, center_y = box.center
        x = round_half_up(center_x / scale) + (region.x if region else 0)
        y = round_half_up(center_y / scale) + (region.y if region else 0)
        x = max(0, min(max(display.width - 1, 0), x))
        y = max(0, min(max(display.height - 1, 0), y))
        return LocalPoint(x, y)

    def _save_debug_image(self, captured: CapturedImage, box: PixelBox) -> Path | None:
        if self._debug_dir is None:
            return None
        path = self._debug_dir / f"locate_{int(time.time() * 1000)}_marked.png"
        try:
            marked = mark_point(captured.png_bytes, box.center, box.as_tuple())
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(marked)
        except OSError as exc:
            self._log.warning("Could not save marked screenshot: {}", exc)
            return None
        return path


class LocatorChain:
    """Try specialised locators before falling through to the next one."""

    def __init__(self, locators: Sequence[Locator]) -> None:
        self._locators = list(locators)
        self._log = get_logger("vision.chain")

    async def locate(
        self, description: str, display_index: int | None = None, region: Region | None = None
    ) -> LocateResult:
        for locator in self._locators:
            if not locator.supports(description):
                continue
            result = await locator.locate(description, display_index, region)
            if result is not None:
                return result
            self._log.debug("Locator {} found no match for '{}'", locator.name, description)
        return LocateResult(
            outcome=LocateOutcome.FAILED,
            description=description,
            display_index=display_index or 0,
            error="No locator could handle the description",
            source="chain",
            trace=(LocateState.IDLE, LocateState.DECIDED),
        )
