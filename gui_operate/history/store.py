"""Per-application click ledger persisted as JSON under ``gui_apps/``."""

from __future__ import annotations

import json
import os
import re
import time
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from ..display.transform import CoordinateTransformer
from ..display.types import LocalPoint
from ..fs_utils import atomic_write_text, file_lock, safe_unlink
from ..logging_utils import get_logger
from .models import AppClickHistory, AppContext, AppInitResult, ClickHistoryEntry, StoredClickEntry


HISTORY_FILENAME = "click_history.json"
GUIDE_FILENAME = "guide.md"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9]")


def sanitize_app_name(app_name: str) -> str:
    return _UNSAFE_CHARS.sub("_", app_name).lower()


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


class ClickHistoryStore:
    """Load, merge and persist click history for one active app at a time.

    Stored entries carry normalized coordinates so a ledger survives display
    reconfiguration; local coordinates are re-derived from the current
    topology on every load.
    """

    def __init__(
        self,
        data_dir: Path,
        transformer: CoordinateTransformer,
        *,
        lock_timeout_s: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._apps_dir = Path(data_dir) / "gui_apps"
        self._transformer = transformer
        self._lock_timeout_s = lock_timeout_s
        self._clock = clock
        self._log = get_logger("history.store")

    @property
    def apps_dir(self) -> Path:
        return self._apps_dir

    def app_directory(self, app_name: str) -> Path:
        return self._apps_dir / sanitize_app_name(app_name)

    def history_path(self, app_name: str) -> Path:
        return self.app_directory(app_name) / HISTORY_FILENAME

    def list_apps(self) -> list[str]:
        if not self._apps_dir.exists():
            return []
        return sorted(entry.name for entry in self._apps_dir.iterdir() if entry.is_dir())

    def init_app(self, app_name: str) -> tuple[AppContext, AppInitResult]:
        """Switch to ``app_name``: load its ledger and optional ``guide.md``."""

        app_dir = self.app_directory(app_name)
        is_new = not self.history_path(app_name).exists()
        context = self.load(app_name)
        guide_path = app_dir / GUIDE_FILENAME
        guide: str | None = None
        try:
            guide = guide_path.read_text(encoding="utf-8")
            self._log.info("Loaded guide.md for app '{}' ({} chars)", app_name, len(guide))
        except FileNotFoundError:
            guide = None
        except OSError as exc:
            self._log.warning("Failed to read guide.md for app '{}': {}", app_name, exc)
        self._log.info(
            "Initialized app '{}' with {} existing clicks (new: {})",
            app_name,
            len(context.clicks),
            is_new,
        )
        result = AppInitResult(
            app_name=app_name,
            click_count=len(context.clicks),
            is_new=is_new,
            app_directory=app_dir,
            guide_path=guide_path,
            guide=guide,
        )
        return context, result

    def load(self, app_name: str) -> AppContext:
        context = AppContext(app_name=app_name)
        stored = self._read_ledger(app_name)
        if stored is None:
            self._log.info("No existing history for app '{}', starting fresh", app_name)
            return context
        topology = self._transformer.topology
        for item in stored.clicks:
            if topology.get(item.display_index) is None:
                self._log.warning(
                    "Display {} not found, skipping click #{}", item.display_index, item.index
                )
                continue
            local = self._transformer.normalized_to_local(
                item.x_normalized, item.y_normalized, item.display_index
            )
            context.clicks.append(
                ClickHistoryEntry(
                    index=item.index,
                    display_index=item.display_index,
                    x=local.x,
                    y=local.y,
                    timestamp=item.timestamp,
                    operation=item.operation,
                    count=item.count,
                    success_count=item.success_count,
                    normalized=(item.x_normalized, item.y_normalized),
                )
            )
        context.counter = max([stored.counter, *(entry.index for entry in context.clicks)])
        self._log.info("Loaded {} clicks for app '{}'", len(context.clicks), app_name)
        return context

    def record_click(
        self,
        context: AppContext,
        x: int,
        y: int,
        display_index: int,
        operation: str,
    ) -> ClickHistoryEntry:
        now = _now_ms(self._clock)
        entry = next(
            (
                item
                for item in context.clicks
                if item.x == x and item.y == y and item.display_index == display_index
            ),
            None,
        )
        target: tuple[int, int] | None = None
        if entry is None:
            point = self._transformer.local_to_normalized(LocalPoint(x, y), display_index)
            target = (point.xn, point.yn)
            entry = next(
                (
                    item
                    for item in context.clicks
                    if item.display_index == display_index and self._ledger_key(item) == target
                ),
                None,
            )
        if entry is not None:
            entry.count += 1
            entry.timestamp = now
            entry.operation = operation
            self._log.info(
                "Updated click #{} at ({}, {}) on display {}, count: {}",
                entry.index,
                entry.x,
                entry.y,
                display_index,
                entry.count,
            )
        else:
            context.counter += 1
            entry = ClickHistoryEntry(
                index=context.counter,
                display_index=display_index,
                x=x,
                y=y,
                timestamp=now,
                operation=operation,
                normalized=target,
            )
            context.clicks.append(entry)
            self._log.info(
                "Added click #{} at ({}, {}) on display {}", entry.index, x, y, display_index
            )
        context.last_click = entry
        self._persist(context.app_name, entry, increment_count=True)
        return entry

    def record_outcome(self, context: AppContext, successful: bool) -> ClickHistoryEntry | None:
        entry = context.last_click
        if not successful or entry is None:
            return None
        entry.success_count += 1
        self._log.info(
            "Click #{} verified successful, success count: {}", entry.index, entry.success_count
        )
        self._persist(context.app_name, entry, increment_count=False)
        return entry

    def clear(self, context: AppContext) -> bool:
        """Empty ``context`` and delete its ledger; returns whether a file was removed."""

        context.clicks.clear()
        context.counter = 0
        context.last_click = None
        path = self.history_path(context.app_name)
        with file_lock(self._lock_path(path), timeout_s=self._lock_timeout_s):
            removed = safe_unlink(path)
        self._log.info(
            "Cleared click history for app '{}'{}",
            context.app_name,
            "" if removed else " (no ledger on disk)",
        )
        return removed

    def _ledger_key(self, entry: ClickHistoryEntry) -> tuple[int, int]:
        if entry.normalized is None:
            point = self._transformer.local_to_normalized(
                LocalPoint(entry.x, entry.y), entry.display_index
            )
            entry.normalized = (point.xn, point.yn)
        return entry.normalized

    def _lock_path(self, path: Path) -> Path:
        return path.with_name(path.name + ".lock")

    def _read_ledger(self, app_name: str) -> AppClickHistory | None:
        path = self.history_path(app_name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return AppClickHistory.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            backup = path.with_name(path.name + ".corrupt")
            self._log.warning(
                "Click history for '{}' is unreadable ({}); moving it to {}",
                app_name,
                exc,
                backup,
            )
            os.replace(path, backup)
            return None

    def _persist(self, app_name: str, entry: ClickHistoryEntry, *, increment_count: bool) -> bool:
        display = self._transformer.topology.get(entry.display_index)
        if display is None:
            self._log.warning("Display {} not found, skipping save", entry.display_index)
            return False
        xn, yn = self._ledger_key(entry)
        path = self.history_path(app_name)
        try:
            with file_lock(self._lock_path(path), timeout_s=self._lock_timeout_s):
                ledger = self._read_ledger(app_name) or AppClickHistory(app_name=app_name)
                stored = next(
                    (
                        item
                        for item in ledger.clicks
                        if item.display_index == entry.display_index
                        and (item.x_normalized, item.y_normalized) == (xn, yn)
                    ),
                    None,
                )
                if stored is not None:
                    if increment_count:
                        stored.count += 1
                    stored.timestamp = entry.timestamp
                    stored.operation = entry.operation
                    stored.success_count = entry.success_count
                else:
                    ledger.clicks.append(
                        StoredClickEntry(
                            index=entry.index,
                            x_normalized=xn,
                            y_normalized=yn,
                            display_index=entry.display_index,
                            display_width=display.width,
                            display_height=display.height,
                            timestamp=entry.timestamp,
                            operation=entry.operation,
                            count=entry.count,
                            success_count=entry.success_count,
                        )
                    )
                    ledger.counter = max(ledger.counter, entry.index)
                ledger.last_updated = _now_ms(self._clock)
                atomic_write_text(path, ledger.to_json())
        except (OSError, TimeoutError) as exc:
            self._log.error("Failed to persist click #{} for '{}': {}", entry.index, app_name, exc)
            return False
        self._log.debug(
            "Saved click #{} at normalized ({}, {}) for '{}'",
            entry.index,
            xn,
            yn,
            app_name,
        )
        return True
