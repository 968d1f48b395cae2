"""Structured logging configuration built on top of loguru."""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger


_SECRET_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(?i)bearer\s+[A-Za-z0-9._+/=-]{8,}"), "Bearer [REDACTED]"),
    (re.compile(r"(?i)(api[_-]?key|x-api-key)\s*[:=]\s*[A-Za-z0-9._+/=-]{6,}"), "[REDACTED]"),
    (re.compile(r"(?i)(auth[_-]?token|token)\s*[:=]\s*[A-Za-z0-9._+/=-]{6,}"), "[REDACTED]"),
    (re.compile(r"sk-[A-Za-z0-9_-]{8,}"), "[REDACTED]"),
]


def default_log_dir() -> Path:
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA")
        if base:
            return Path(base) / "gui_operate" / "logs"
        return Path.home() / "AppData" / "Local" / "gui_operate" / "logs"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Logs" / "gui_operate"
    state_home = os.environ.get("XDG_STATE_HOME")
    if state_home:
        return Path(state_home) / "gui_operate" / "logs"
    return Path.home() / ".local" / "state" / "gui_operate" / "logs"


def redact_text(text: str) -> str:
    redacted = text
    for pattern, replacement in _SECRET_PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


def _redact_record(record: dict[str, Any]) -> None:
    record["message"] = redact_text(record["message"])


def configure_logging(log_dir: Path | str | None = None, level: str = "INFO") -> None:
    """Configure Loguru sinks for console and optional file output.

    Pass ``log_dir=None`` to log to the console only. File logging failures
    (read-only home, sandboxed runners) downgrade to console-only output.
    """

    logger.remove()
    logger.configure(extra={"component": "app"}, patcher=_redact_record)

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "pid={process} | thread={thread.name} | "
        "<cyan>{extra[component]}</cyan> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>"
    )

    logger.add(
        sys.stderr,
        format=log_format,
        colorize=False,
        level=level,
    )

    if log_dir is None:
        return

    path = Path(log_dir)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning("File logging disabled; cannot create {}: {}", path, exc)
        return
    logger.add(
        path / "gui_operate.log",
        rotation="1 day",
        retention="14 days",
        compression="gz",
        level=level,
        backtrace=False,
        diagnose=False,
        format=log_format,
    )


def get_logger(name: Optional[str] = None):
    """Return a child logger with contextualized name."""

    if name:
        return logger.bind(component=name)
    return logger
