from __future__ import annotations

import pytest

from conftest import FailingSource, StaticSource, single_display
from gui_operate.display.sources import parse_appkit_output, parse_system_profiler
from gui_operate.display.topology import (
    TopologyCache,
    normalize_topology,
    synthesize_default_topology,
)
from gui_operate.display.types import RawDisplay


def _secondary(**overrides) -> RawDisplay:
    values = dict(
        index=1,
        name="External",
        is_main=False,
        width=1920,
        height=1080,
        origin_x=1920,
        origin_y=0,
        scale_factor=1.0,
        origin_frame="top_left",
    )
    values.update(overrides)
    return RawDisplay(**values)


def test_stacked_bottom_left_display_is_flipped_above_main() -> None:
    main = RawDisplay(
        index=0,
        name="Built-in",
        is_main=True,
        width=1920,
        height=1080,
        origin_x=0,
        origin_y=0,
        scale_factor=2.0,
        origin_frame="bottom_left",
    )
    portrait = _secondary(width=1080, height=1920, origin_x=0, origin_y=1080, origin_frame="bottom_left")

    topology = normalize_topology([main, portrait], source="macos_appkit")

    assert topology.displays[0].origin_x == 0
    assert topology.displays[0].origin_y == 0
    assert topology.displays[1].origin_y == -1920
    assert topology.total_height == 1920
    assert topology.total_width == 1920
    assert topology.native_frame == "bottom_left"
    assert topology.main_display_index == 0


def test_bottom_left_display_below_main_gets_positive_origin() -> None:
    main = single_display()
    main = RawDisplay(**{**_fields(main), "origin_frame": "bottom_left"})
    below = _secondary(origin_x=0, origin_y=-1080, origin_frame="bottom_left")

    topology = normalize_topology([main, below])

    assert topology.displays[1].origin_y == 1080


def test_top_left_origins_are_shifted_relative_to_main() -> None:
    main = RawDisplay(
        index=0,
        name="Main",
        is_main=True,
        width=1920,
        height=1080,
        origin_x=100,
        origin_y=50,
    )
    right = _secondary(origin_x=2020, origin_y=50)

    topology = normalize_topology([main, right], source="windows_monitors")

    assert (topology.displays[1].origin_x, topology.displays[1].origin_y) == (1920, 0)
    assert topology.total_width == 3840
    assert topology.native_frame == "top_left"


def test_main_display_need_not_be_first() -> None:
    left = _secondary(index=0, origin_x=-1920, origin_y=0)
    main = RawDisplay(
        index=1, name="Main", is_main=True, width=2560, height=1440, origin_x=0, origin_y=0
    )

    topology = normalize_topology([main, left])

    assert [display.index for display in topology.displays] == [0, 1]
    assert topology.main_display_index == 1
    assert topology.main.width == 2560
    assert topology.displays[0].origin_x == -1920


def test_indices_are_made_dense_and_scale_is_clamped() -> None:
    main = RawDisplay(
        index=3, name="", is_main=True, width=800, height=600, origin_x=0, origin_y=0, scale_factor=0.5
    )
    other = _secondary(index=7, origin_x=800)

    topology = normalize_topology([other, main])

    assert [display.index for display in topology.displays] == [0, 1]
    assert topology.displays[0].scale_factor == 1.0
    assert topology.displays[0].name == "Display 1"


def test_normalize_requires_a_display() -> None:
    with pytest.raises(ValueError):
        normalize_topology([])


def test_synthesized_default_is_single_main_display() -> None:
    topology = synthesize_default_topology()

    assert len(topology.displays) == 1
    assert topology.main.width == 1920
    assert topology.main.height == 1080
    assert topology.source == "synthesized"
    assert topology.warnings


def test_cache_falls_through_failing_sources() -> None:
    failing = FailingSource()
    empty = StaticSource([], name="empty")
    good = StaticSource([single_display(2560, 1440)], name="good")
    cache = TopologyCache([failing, empty, good])

    topology = cache.get()

    assert topology.source == "good"
    assert topology.main.width == 2560
    assert (failing.calls, empty.calls, good.calls) == (1, 1, 1)


def test_cache_synthesizes_when_every_source_fails() -> None:
    cache = TopologyCache([FailingSource(), FailingSource("other")], fallback_size=(1280, 800))

    topology = cache.get()

    assert topology.source == "synthesized"
    assert (topology.main.width, topology.main.height) == (1280, 800)


def test_cache_respects_ttl_and_forced_refresh() -> None:
    now = [100.0]
    source = StaticSource([single_display()])
    cache = TopologyCache([source], ttl_s=5.0, clock=lambda: now[0])

    first = cache.get()
    now[0] += 4.9
    assert cache.get() is first
    assert source.calls == 1

    now[0] += 0.2
    cache.get()
    assert source.calls == 2

    cache.get(force_refresh=True)
    assert source.calls == 3

    cache.invalidate()
    cache.get()
    assert source.calls == 4


def test_parse_appkit_output_handles_decimal_comma_scale() -> None:
    output = (
        "index:0,name:Display 1,isMain:true,width:1512,height:982,originX:0,originY:0,scaleFactor:2,0"
        "|index:1,name:Display 2,isMain:false,width:1920,height:1080,originX:-1920,originY:100,scaleFactor:1.5\n"
    )

    displays = parse_appkit_output(output)

    assert len(displays) == 2
    assert displays[0].is_main is True
    assert displays[0].scale_factor == 2.0
    assert displays[1].scale_factor == 1.5
    assert displays[1].origin_x == -1920
    assert all(display.origin_frame == "bottom_left" for display in displays)


def test_parse_system_profiler_reads_sizes_and_retina() -> None:
    payload = {
        "SPDisplaysDataType": [
            {
                "spdisplays_ndrvs": [
                    {
                        "_name": "Built-in Retina Display",
                        "_spdisplays_resolution": "3024 x 1964 Retina",
                        "spdisplays_main": "spdisplays_yes",
                    },
                    {"_name": "DELL U2720Q", "_spdisplays_resolution": "2560 x 1440 @ 60.00Hz"},
                ]
            }
        ]
    }

    displays = parse_system_profiler(payload)

    assert [(d.width, d.height) for d in displays] == [(3024, 1964), (2560, 1440)]
    assert displays[0].scale_factor == 2.0
    assert displays[0].is_main is True
    assert displays[1].is_main is False


def _fields(display: RawDisplay) -> dict:
    return {
        "index": display.index,
        "name": display.name,
        "is_main": display.is_main,
        "width": display.width,
        "height": display.height,
        "origin_x": display.origin_x,
        "origin_y": display.origin_y,
        "scale_factor": display.scale_factor,
        "origin_frame": display.origin_frame,
    }
