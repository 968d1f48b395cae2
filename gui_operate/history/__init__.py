"""Per-application click history."""

from .annotation import Marker, build_markers, describe_markers, select_annotation_set
from .models import AppClickHistory, AppContext, AppInitResult, ClickHistoryEntry, StoredClickEntry
from .store import ClickHistoryStore, sanitize_app_name

__all__ = [
    "AppClickHistory",
    "AppContext",
    "AppInitResult",
    "ClickHistoryEntry",
    "ClickHistoryStore",
    "Marker",
    "StoredClickEntry",
    "build_markers",
    "describe_markers",
    "sanitize_app_name",
    "select_annotation_set",
]
