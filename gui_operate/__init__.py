"""Natural-language GUI operation: coordinates, click history and vision grounding."""

from __future__ import annotations

from .config import AppConfig, load_config
from .logging_utils import configure_logging
from .service import ClickResult, GuiOperateService, InputInjector

__all__ = [
    "AppConfig",
    "ClickResult",
    "GuiOperateService",
    "InputInjector",
    "configure_logging",
    "load_config",
]
