from __future__ import annotations

import asyncio

from conftest import make_transformer, single_display
from gui_operate.display.types import LocalPoint, RawDisplay
from gui_operate.vision.dock import DockItem, DockLocator, parse_dock_items
from gui_operate.vision.locator import LocateOutcome, LocateResult, LocatorChain


class StaticDock:
    def __init__(self, items) -> None:
        self._items = list(items)

    def items(self):
        return list(self._items)


class BrokenDock:
    def items(self):
        raise RuntimeError("accessibility access denied")


DOCK = [
    DockItem("Finder", 100, 1040, 60, 40),
    DockItem("Google Chrome", 170, 1040, 60, 40),
    DockItem("Visual Studio Code", 240, 1040, 60, 40),
    DockItem("WeChat", 310, 1040, 60, 40),
]


def _dock(items=DOCK, transformer=None) -> DockLocator:
    return DockLocator(StaticDock(items), transformer or make_transformer(single_display()))


def test_parse_dock_items_skips_malformed_lines() -> None:
    output = "Finder\t100\t1040\t60\t40\nmissing value\t1\t2\t3\t4\nBroken\tx\t1\t2\t3\nTrash\t1800.0\t1040\t60\t40\n"

    items = parse_dock_items(output)

    assert [item.name for item in items] == ["Finder", "Trash"]
    assert items[1].x == 1800


def test_supports_only_dock_descriptions() -> None:
    locator = _dock()

    assert locator.supports("Chrome icon in the Dock")
    assert locator.supports("任务栏上的微信")
    assert not locator.supports("the OK button")


def test_match_uses_aliases_and_word_boundaries() -> None:
    locator = _dock()

    assert locator.match("chrome in the dock", DOCK).name == "Google Chrome"
    assert locator.match("VS Code icon in the dock", DOCK).name == "Visual Studio Code"
    assert locator.match("点击程序坞中的微信", DOCK).name == "WeChat"
    assert locator.match("barcode scanner in the dock", DOCK) is None


def test_locate_returns_item_center() -> None:
    result = asyncio.run(_dock().locate("Finder in the dock"))

    assert result.outcome is LocateOutcome.LOCATED
    assert result.source == "dock"
    assert result.confidence == 100.0
    assert result.display_index == 0
    assert result.point == LocalPoint(130, 1060)


def test_locate_maps_item_to_its_display() -> None:
    right = RawDisplay(
        index=1, name="Right", is_main=False, width=1920, height=1080, origin_x=1920, origin_y=0
    )
    transformer = make_transformer(single_display(), right)
    items = [DockItem("Finder", 2000, 1040, 60, 40)]

    result = asyncio.run(_dock(items, transformer).locate("Finder in the dock"))

    assert result.display_index == 1
    assert result.point == LocalPoint(110, 1060)


def test_locate_without_match_or_source_returns_none() -> None:
    assert asyncio.run(_dock().locate("Photoshop in the dock")) is None
    broken = DockLocator(BrokenDock(), make_transformer(single_display()))
    assert asyncio.run(broken.locate("Finder in the dock")) is None


def test_chain_falls_back_when_dock_has_no_match() -> None:
    class Fallback:
        name = "vision"

        def supports(self, description):
            return True

        async def locate(self, description, display_index=None, region=None):
            return LocateResult(LocateOutcome.LOW_CONFIDENCE, description, 0)

    result = asyncio.run(LocatorChain([_dock(), Fallback()]).locate("Photoshop in the dock"))

    assert result.outcome is LocateOutcome.LOW_CONFIDENCE
