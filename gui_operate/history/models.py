"""Click history records: on-disk ledger models and in-memory session state."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class StoredClickEntry(BaseModel):
    """One ledger entry as persisted; the point is kept in 0-1000 space."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    index: int
    x_normalized: int = Field(..., ge=0, le=1000)
    y_normalized: int = Field(..., ge=0, le=1000)
    display_index: int = Field(0, alias="displayIndex")
    display_width: int = Field(0, alias="displayWidth")
    display_height: int = Field(0, alias="displayHeight")
    timestamp: int = Field(0, description="Milliseconds since the epoch.")
    operation: str = "single"
    count: int = Field(1, ge=0)
    success_count: int = Field(0, ge=0, alias="successCount")


class AppClickHistory(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    app_name: str = Field(..., alias="appName")
    last_updated: int = Field(0, alias="lastUpdated")
    clicks: list[StoredClickEntry] = Field(default_factory=list)
    counter: int = Field(0, ge=0)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


@dataclass(slots=True)
class ClickHistoryEntry:
    """A click in the active session, re-derived as local logical pixels."""

    index: int
    display_index: int
    x: int
    y: int
    timestamp: int
    operation: str
    count: int = 1
    success_count: int = 0
    # Ledger key (x_normalized, y_normalized) this entry is stored under.
    normalized: tuple[int, int] | None = None

    @property
    def score(self) -> int:
        return self.success_count * 2 + self.count

    def as_dict(self) -> dict[str, object]:
        return {
            "index": self.index,
            "display_index": self.display_index,
            "x": self.x,
            "y": self.y,
            "timestamp": self.timestamp,
            "operation": self.operation,
            "count": self.count,
            "success_count": self.success_count,
        }


@dataclass(slots=True)
class AppContext:
    """The single active application's in-memory ledger."""

    app_name: str
    clicks: list[ClickHistoryEntry] = field(default_factory=list)
    counter: int = 0
    last_click: ClickHistoryEntry | None = None

    def for_display(self, display_index: int) -> list[ClickHistoryEntry]:
        return [entry for entry in self.clicks if entry.display_index == display_index]


@dataclass(frozen=True, slots=True)
class AppInitResult:
    app_name: str
    click_count: int
    is_new: bool
    app_directory: Path
    guide_path: Path
    guide: str | None = None

    @property
    def has_guide(self) -> bool:
        return self.guide is not None

    def as_dict(self) -> dict[str, object]:
        return {
            "app_name": self.app_name,
            "click_count": self.click_count,
            "is_new": self.is_new,
            "app_directory": str(self.app_directory),
            "has_guide": self.has_guide,
            "guide_path": str(self.guide_path),
            "guide": self.guide,
        }
