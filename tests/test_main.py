from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import FakeCapturer, StaticSource, single_display
from gui_operate import main as cli


@pytest.fixture(autouse=True)
def _static_displays(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "gui_operate.service.default_sources",
        lambda timeout_s=10.0: [StaticSource([single_display()], name="static")],
    )
    monkeypatch.setattr(
        "gui_operate.service.default_capturer",
        lambda transformer, timeout_s=15.0: FakeCapturer(1920, 1080),
    )


def _out(capsys) -> dict:
    return json.loads(capsys.readouterr().out)


def test_topology_command(capsys) -> None:
    assert cli.run(["topology"]) == 0

    payload = _out(capsys)
    assert payload["source"] == "static"
    assert payload["total_width"] == 1920
    assert payload["displays"][0]["is_main"] is True


def test_resolve_normalized(capsys) -> None:
    assert cli.run(["resolve", "500", "500", "--mode", "normalized"]) == 0

    payload = _out(capsys)
    assert payload["interpreted_as"] == "normalized"
    assert payload["local"] == [960, 540]
    assert payload["global"] == [960, 540]
    assert payload["normalized"] == [500, 500]


def test_resolve_out_of_bounds_is_clamped(capsys) -> None:
    assert cli.run(["resolve", "5000", "-20"]) == 0

    payload = _out(capsys)
    assert payload["clamped"] is True
    assert payload["local"] == [1919, 0]


def test_history_show_and_apps(capsys) -> None:
    assert cli.run(["history", "show", "Notes"]) == 0
    shown = _out(capsys)
    assert shown["app_name"] == "Notes"
    assert shown["is_new"] is True
    assert shown["clicks"] == []

    assert cli.run(["history", "apps"]) == 0
    assert _out(capsys) == {"apps": []}


def test_history_clear(capsys) -> None:
    assert cli.run(["history", "clear", "Notes"]) == 0

    assert _out(capsys) == {"app": "Notes", "cleared": True, "file_removed": False}


def test_invalid_config_exits_with_error(tmp_path: Path, capsys) -> None:
    config = tmp_path / "config.yml"
    config.write_text("- not\n- a mapping\n", encoding="utf-8")

    assert cli.run(["--config", str(config), "topology"]) == 2
    assert "must contain a YAML mapping" in capsys.readouterr().err


def test_locate_without_api_key_exits_with_error(capsys) -> None:
    assert cli.run(["locate", "Save button"]) == 2
