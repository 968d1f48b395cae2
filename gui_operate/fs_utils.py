"""Filesystem helpers for click ledger writes: atomic replace and a lock file."""

from __future__ import annotations

import os
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


def _sync_directory(directory: Path) -> None:
    # Directory handles cannot be opened for fsync on Windows.
    if os.name == "nt":
        return
    fd = os.open(str(directory), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def safe_unlink(path: Path, retries: int = 5, backoff_s: float = 0.05) -> bool:
    """Remove ``path``; returns False when it did not exist.

    A file still held open by another process (PermissionError on Windows)
    is retried with exponential backoff before giving up.
    """

    delay = backoff_s
    for attempt in range(1, retries + 1):
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except PermissionError:
            if attempt == retries:
                raise
            time.sleep(delay)
            delay *= 2
        else:
            return True
    return False


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` beside ``path`` and swap it in with a same-directory rename."""

    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.parent / f".{path.name}.{uuid.uuid4().hex}.partial"
    try:
        with staging.open("w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(staging, path)
    except BaseException:
        staging.unlink(missing_ok=True)
        raise
    _sync_directory(path.parent)


@contextmanager
def file_lock(path: Path, timeout_s: float = 10.0, poll_interval_s: float = 0.05) -> Iterator[None]:
    """Hold an exclusive lock file at ``path`` for the duration of the block.

    The lock file records the holder's pid. Raises TimeoutError when the
    file cannot be created within ``timeout_s``.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    deadline = time.monotonic() + timeout_s
    while True:
        try:
            fd = os.open(str(path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Timed out after {timeout_s}s waiting for lock {path}") from None
            time.sleep(poll_interval_s)
            continue
        break
    try:
        os.write(fd, str(os.getpid()).encode("ascii"))
    finally:
        os.close(fd)
    try:
        yield None
    finally:
        path.unlink(missing_ok=True)
