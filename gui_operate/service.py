"""Service facade wiring topology, history, capture and vision together."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

import httpx

from .capture import (
    Annotator,
    CachedCapturer,
    CapturedImage,
    PillowAnnotator,
    Region,
    ScreenCapturer,
    capture_async,
    default_capturer,
)
from .config import AppConfig
from .display.sources import TopologySource, default_sources
from .display.topology import TopologyCache
from .display.transform import CoordinateMode, CoordinateTransformer, ResolvedCoordinates
from .display.types import GlobalPoint, LocalPoint
from .errors import ConfigurationError
from .history.annotation import build_markers, describe_markers, select_annotation_set
from .history.models import AppContext, AppInitResult, ClickHistoryEntry
from .history.store import ClickHistoryStore
from .logging_utils import get_logger
from .vision.client import VisionProviderClient
from .vision.dock import DockItemSource, DockLocator, MacDockSource
from .vision.locator import LocateResult, LocatorChain, VerificationResult, VisionLocator


class InputInjector(Protocol):
    """Performs the actual OS input; receives display-local logical points."""

    def click(self, point: LocalPoint, display_index: int, operation: str) -> None:
        ...


@dataclass(frozen=True)
class ClickResult:
    clicked: bool
    display_index: int
    point: LocalPoint | None = None
    global_point: GlobalPoint | None = None
    entry: ClickHistoryEntry | None = None
    locate: LocateResult | None = None
    resolved: ResolvedCoordinates | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "clicked": self.clicked,
            "display_index": self.display_index,
            "x": self.point.x if self.point else None,
            "y": self.point.y if self.point else None,
            "global": [self.global_point.x, self.global_point.y] if self.global_point else None,
            "history_entry": self.entry.as_dict() if self.entry else None,
            "locate": self.locate.as_dict() if self.locate else None,
            "interpreted_as": self.resolved.interpreted_as if self.resolved else None,
        }


@dataclass(frozen=True)
class ScreenshotResult:
    image: CapturedImage
    png_bytes: bytes
    annotated: bool
    history_info: str | None = None


class GuiOperateService:
    """One session: a single active application plus the shared collaborators."""

    def __init__(
        self,
        config: AppConfig,
        *,
        topology_sources: list[TopologySource] | None = None,
        capturer: ScreenCapturer | None = None,
        annotator: Annotator | None = None,
        injector: InputInjector | None = None,
        dock_source: DockItemSource | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._log = get_logger("service")
        self.topology = TopologyCache(
            topology_sources
            if topology_sources is not None
            else default_sources(config.display.query_timeout_s),
            ttl_s=config.display.cache_ttl_s,
            fallback_size=(config.display.fallback_width, config.display.fallback_height),
        )
        self.transformer = CoordinateTransformer(self.topology.get)
        self.history = ClickHistoryStore(
            config.history.data_dir,
            self.transformer,
            lock_timeout_s=config.history.lock_timeout_s,
        )
        inner = capturer or default_capturer(self.transformer, timeout_s=config.capture.timeout_s)
        self.capturer = CachedCapturer(inner, ttl_s=config.capture.reuse_ttl_s)
        self.annotator = annotator if annotator is not None else PillowAnnotator()
        self.client = VisionProviderClient(config.vision, http_client=http_client)
        self._injector = injector
        self._context: AppContext | None = None
        self.vision_locator = VisionLocator(
            transformer=self.transformer,
            capturer=self.capturer,
            client=self.client,
            annotator=self.annotator,
            history=lambda: self._context,
            confidence_threshold=config.vision.confidence_threshold,
            max_markers=config.history.max_markers,
            min_pixel_separation=config.history.min_pixel_separation,
            capture_timeout_s=config.capture.timeout_s,
            debug_dir=config.capture.output_dir,
        )
        dock = DockLocator(dock_source or MacDockSource(), self.transformer)
        self.locators = LocatorChain([dock, self.vision_locator])

    @property
    def context(self) -> AppContext | None:
        return self._context

    def init_app(self, app_name: str) -> AppInitResult:
        self._context, result = self.history.init_app(app_name)
        return result

    def clear_history(self) -> bool:
        if self._context is None:
            return False
        return self.history.clear(self._context)

    async def locate(
        self, description: str, display_index: int | None = None, region: Region | None = None
    ) -> LocateResult:
        return await self.locators.locate(description, display_index, region)

    async def click(
        self,
        description: str,
        display_index: int | None = None,
        *,
        operation: str = "single",
    ) -> ClickResult:
        """Locate ``description`` and click it; nothing is clicked unless LOCATED."""

        result = await self.locate(description, display_index)
        if not result.located or result.point is None:
            self._log.info(
                "Not clicking '{}': {} ({})",
                description,
                result.outcome.value,
                result.error or f"confidence {result.confidence}",
            )
            return ClickResult(clicked=False, display_index=result.display_index, locate=result)
        click = await self._perform_click(result.point, result.display_index, operation)
        return ClickResult(
            clicked=True,
            display_index=click.display_index,
            point=click.point,
            global_point=click.global_point,
            entry=click.entry,
            locate=result,
        )

    async def click_at(
        self,
        x: float,
        y: float,
        display_index: int = 0,
        *,
        mode: CoordinateMode = "auto",
        operation: str = "single",
    ) -> ClickResult:
        resolved = self.transformer.resolve_click_coordinates(x, y, display_index, mode)
        click = await self._perform_click(resolved.point, resolved.display_index, operation)
        return ClickResult(
            clicked=True,
            display_index=click.display_index,
            point=click.point,
            global_point=click.global_point,
            entry=click.entry,
            resolved=resolved,
        )

    async def verify(self, question: str, display_index: int | None = None) -> VerificationResult:
        result = await self.vision_locator.verify(question, display_index)
        if result.operation_success and self._context is not None:
            self.history.record_outcome(self._context, True)
        return result

    async def screenshot(
        self,
        display_index: int | None = None,
        region: Region | None = None,
        *,
        annotate: bool = True,
    ) -> ScreenshotResult:
        display = (
            self.transformer.topology.main
            if display_index is None
            else self.transformer.display(display_index)
        )
        image = await capture_async(
            self.capturer, display.index, region, timeout_s=self._config.capture.timeout_s
        )
        if not annotate or self._context is None:
            return ScreenshotResult(image, image.png_bytes, False)
        entries = select_annotation_set(
            self._context,
            display.index,
            scale_factor=display.scale_factor,
            max_markers=self._config.history.max_markers,
            min_pixel_separation=self._config.history.min_pixel_separation,
        )
        markers = build_markers(
            entries,
            scale_factor=display.scale_factor,
            image_width=image.width,
            image_height=image.height,
            offset_x=region.x if region else 0,
            offset_y=region.y if region else 0,
        )
        info = describe_markers(markers)
        if not markers:
            return ScreenshotResult(image, image.png_bytes, False, info)
        try:
            png = await asyncio.to_thread(self.annotator.annotate, image.png_bytes, markers)
        except Exception as exc:
            self._log.warning("Failed to annotate screenshot: {}", exc)
            return ScreenshotResult(image, image.png_bytes, False, info)
        return ScreenshotResult(image, png, True, info)

    async def _perform_click(
        self, point: LocalPoint, display_index: int, operation: str
    ) -> ClickResult:
        if self._injector is None:
            raise ConfigurationError("No input injector configured; cannot click")
        global_point = self.transformer.to_global(point, display_index)
        await asyncio.to_thread(self._injector.click, point, display_index, operation)
        self.capturer.invalidate()
        entry = None
        if self._context is not None:
            entry = self.history.record_click(
                self._context, point.x, point.y, display_index, operation
            )
        else:
            self._log.debug("No app initialized; click not recorded")
        self._log.info(
            "Performed {} click at ({}, {}) on display {} (global: {}, {})",
            operation,
            point.x,
            point.y,
            display_index,
            global_point.x,
            global_point.y,
        )
        return ClickResult(
            clicked=True,
            display_index=display_index,
            point=point,
            global_point=global_point,
            entry=entry,
        )
