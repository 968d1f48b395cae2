"""Platform-specific raw display geometry sources."""

from __future__ import annotations

import ctypes
import json
import re
import subprocess
import sys
from typing import Protocol, Sequence

from ..logging_utils import get_logger
from .types import RawDisplay


class TopologySource(Protocol):
    name: str

    def query(self) -> list[RawDisplay]:
        ...


_APPKIT_SCRIPT = """
use framework "AppKit"
use scripting additions

set displayList to ""
set screenCount to (current application's NSScreen's screens()'s |count|())
repeat with i from 1 to screenCount
    set theScreen to (current application's NSScreen's screens()'s objectAtIndex:(i - 1))
    set theFrame to theScreen's frame()
    set isMain to (theScreen's isEqual:(current application's NSScreen's mainScreen())) as boolean
    set originX to (current application's NSMinX(theFrame)) as integer
    set originY to (current application's NSMinY(theFrame)) as integer
    set screenWidth to (current application's NSWidth(theFrame)) as integer
    set screenHeight to (current application's NSHeight(theFrame)) as integer
    set scaleFactor to (theScreen's backingScaleFactor()) as real
    set displayInfo to "index:" & (i - 1) & ",name:Display " & i & ",isMain:" & isMain & ",width:" & screenWidth & ",height:" & screenHeight & ",originX:" & originX & ",originY:" & originY & ",scaleFactor:" & scaleFactor
    if displayList is "" then
        set displayList to displayInfo
    else
        set displayList to displayList & "|" & displayInfo
    end if
end repeat
return displayList
"""


def _run(argv: Sequence[str], timeout_s: float) -> str:
    result = subprocess.run(
        list(argv),
        capture_output=True,
        text=True,
        timeout=timeout_s,
        check=False,
    )
    if result.returncode != 0:
        raise RuntimeError(
            f"{argv[0]} exited with {result.returncode}: {result.stderr.strip()[:200]}"
        )
    return result.stdout


def _to_int(value: str | None, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except ValueError:
        return default


def _to_float(value: str | None, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value.replace(",", "."))
    except ValueError:
        return default


def parse_appkit_output(output: str) -> list[RawDisplay]:
    """Parse ``key:value,...|key:value,...`` records emitted by the AppKit script."""

    displays: list[RawDisplay] = []
    for record in output.strip().split("|"):
        if not record.strip():
            continue
        props: dict[str, str] = {}
        for pair in record.split(","):
            key, sep, value = pair.partition(":")
            if sep:
                props[key.strip()] = value.strip()
        # Locales with a decimal comma split the scale factor; rejoin the tail.
        scale_match = re.search(r"scaleFactor:([0-9]+(?:[.,][0-9]+)?)", record)
        displays.append(
            RawDisplay(
                index=_to_int(props.get("index"), len(displays)),
                name=props.get("name") or f"Display {len(displays) + 1}",
                is_main=props.get("isMain") == "true",
                width=_to_int(props.get("width"), 1920),
                height=_to_int(props.get("height"), 1080),
                origin_x=_to_int(props.get("originX"), 0),
                origin_y=_to_int(props.get("originY"), 0),
                scale_factor=_to_float(scale_match.group(1) if scale_match else None, 1.0),
                origin_frame="bottom_left",
            )
        )
    return displays


class MacAppKitSource:
    """Accurate macOS geometry from NSScreen frames (bottom-left device frame)."""

    name = "macos_appkit"

    def __init__(self, timeout_s: float = 10.0) -> None:
        self._timeout_s = timeout_s

    def query(self) -> list[RawDisplay]:
        output = _run(["osascript", "-e", _APPKIT_SCRIPT], self._timeout_s)
        if not output.strip():
            raise RuntimeError("No display information returned from AppleScript")
        return parse_appkit_output(output)


_RESOLUTION_RE = re.compile(r"(\d+)\s*x\s*(\d+)")


def parse_system_profiler(payload: dict) -> list[RawDisplay]:
    displays: list[RawDisplay] = []
    for gpu in payload.get("SPDisplaysDataType") or []:
        for entry in gpu.get("spdisplays_ndrvs") or []:
            resolution = str(entry.get("_spdisplays_resolution", ""))
            match = _RESOLUTION_RE.search(resolution)
            index = len(displays)
            displays.append(
                RawDisplay(
                    index=index,
                    name=entry.get("_name") or f"Display {index + 1}",
                    is_main=entry.get("spdisplays_main") == "spdisplays_yes",
                    width=int(match.group(1)) if match else 1920,
                    height=int(match.group(2)) if match else 1080,
                    # system_profiler reports no arrangement.
                    origin_x=0,
                    origin_y=0,
                    scale_factor=2.0 if "Retina" in resolution else 1.0,
                    origin_frame="bottom_left",
                )
            )
    return displays


class MacSystemProfilerSource:
    """Coarse macOS fallback: sizes and main flag only, no origins."""

    name = "macos_system_profiler"

    def __init__(self, timeout_s: float = 10.0) -> None:
        self._timeout_s = timeout_s

    def query(self) -> list[RawDisplay]:
        output = _run(["system_profiler", "SPDisplaysDataType", "-json"], self._timeout_s)
        return parse_system_profiler(json.loads(output))


class _RECT(ctypes.Structure):
    _fields_ = [
        ("left", ctypes.c_long),
        ("top", ctypes.c_long),
        ("right", ctypes.c_long),
        ("bottom", ctypes.c_long),
    ]


class _MONITORINFO(ctypes.Structure):
    _fields_ = [
        ("cbSize", ctypes.c_uint),
        ("rcMonitor", _RECT),
        ("rcWork", _RECT),
        ("dwFlags", ctypes.c_uint),
    ]


_MONITORINFOF_PRIMARY = 0x1
_MDT_EFFECTIVE_DPI = 0


class WindowsMonitorSource:
    """Windows geometry via EnumDisplayMonitors and per-monitor DPI.

    Monitor rectangles are physical pixels once the process is per-monitor
    DPI aware; they are divided by the DPI scale to obtain logical pixels.
    """

    name = "windows_monitors"

    def __init__(self) -> None:
        self._log = get_logger("display.windows")

    def query(self) -> list[RawDisplay]:
        if sys.platform != "win32":
            raise RuntimeError("Windows monitor enumeration requires win32")
        user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        try:
            ctypes.windll.shcore.SetProcessDpiAwareness(2)  # type: ignore[attr-defined]
        except (AttributeError, OSError) as exc:
            self._log.debug("SetProcessDpiAwareness unavailable: {}", exc)

        monitors: list[tuple[_RECT, bool, float]] = []
        enum_proc = ctypes.WINFUNCTYPE(  # type: ignore[attr-defined]
            ctypes.c_int, ctypes.c_void_p, ctypes.c_void_p, ctypes.POINTER(_RECT), ctypes.c_long
        )

        def _callback(hmonitor, _hdc, _rect_ptr, _data):
            info = _MONITORINFO()
            info.cbSize = ctypes.sizeof(_MONITORINFO)
            if user32.GetMonitorInfoW(hmonitor, ctypes.byref(info)):
                monitors.append(
                    (
                        info.rcMonitor,
                        bool(info.dwFlags & _MONITORINFOF_PRIMARY),
                        self._monitor_scale(hmonitor),
                    )
                )
            return 1

        user32.EnumDisplayMonitors(None, None, enum_proc(_callback), 0)
        displays: list[RawDisplay] = []
        for index, (rect, is_primary, scale) in enumerate(monitors):
            displays.append(
                RawDisplay(
                    index=index,
                    name=f"Display {index + 1}",
                    is_main=is_primary,
                    width=round((rect.right - rect.left) / scale),
                    height=round((rect.bottom - rect.top) / scale),
                    origin_x=round(rect.left / scale),
                    origin_y=round(rect.top / scale),
                    scale_factor=scale,
                    origin_frame="top_left",
                )
            )
        return displays

    def _monitor_scale(self, hmonitor) -> float:
        dpi_x = ctypes.c_uint()
        dpi_y = ctypes.c_uint()
        try:
            result = ctypes.windll.shcore.GetDpiForMonitor(  # type: ignore[attr-defined]
                hmonitor, _MDT_EFFECTIVE_DPI, ctypes.byref(dpi_x), ctypes.byref(dpi_y)
            )
        except (AttributeError, OSError) as exc:
            self._log.debug("GetDpiForMonitor unavailable: {}", exc)
            return 1.0
        if result != 0 or dpi_x.value == 0:
            return 1.0
        return max(1.0, dpi_x.value / 96.0)


class MssSource:
    """Cross-platform coarse source from mss monitor rectangles (top-left frame)."""

    name = "mss"

    def query(self) -> list[RawDisplay]:
        import mss

        with mss.mss() as sct:
            monitors = list(sct.monitors[1:])
        displays: list[RawDisplay] = []
        for index, monitor in enumerate(monitors):
            displays.append(
                RawDisplay(
                    index=index,
                    name=f"Display {index + 1}",
                    is_main=monitor["left"] == 0 and monitor["top"] == 0,
                    width=int(monitor["width"]),
                    height=int(monitor["height"]),
                    origin_x=int(monitor["left"]),
                    origin_y=int(monitor["top"]),
                    scale_factor=1.0,
                    origin_frame="top_left",
                )
            )
        return displays


def default_sources(timeout_s: float = 10.0) -> list[TopologySource]:
    if sys.platform == "darwin":
        return [MacAppKitSource(timeout_s), MacSystemProfilerSource(timeout_s), MssSource()]
    if sys.platform == "win32":
        return [WindowsMonitorSource(), MssSource()]
    return [MssSource()]
