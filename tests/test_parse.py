from __future__ import annotations

import pytest

from gui_operate.errors import VisionParseError
from gui_operate.vision.parse import (
    PixelBox,
    normalized_box_to_pixels,
    parse_grounding_response,
    parse_operation_success,
)


def test_parse_plain_json() -> None:
    payload = parse_grounding_response('{"box_2d": [100, 200, 300, 400], "confidence": 87}')

    assert payload.box_2d == [100.0, 200.0, 300.0, 400.0]
    assert payload.confidence == 87.0


def test_parse_json_surrounded_by_prose() -> None:
    text = 'Sure! The button is here: {"box_2d": [1, 2, 3, 4], "confidence": "65"} Hope that helps.'

    assert parse_grounding_response(text).confidence == 65.0


def test_parse_fenced_block() -> None:
    text = '```json\n{"box_2d": [10, 20, 30, 40]}\n```'

    payload = parse_grounding_response(text)

    assert payload.box_2d == [10.0, 20.0, 30.0, 40.0]
    assert payload.confidence == 0.0


@pytest.mark.parametrize(
    "text",
    [
        "I could not find that element.",
        '{"box_2d": [1, 2, 3]}',
        '{"confidence": 90}',
        '{"box_2d": [1, 2, "a", 4]}',
        "{broken json",
    ],
)
def test_invalid_answers_raise(text: str) -> None:
    with pytest.raises(VisionParseError):
        parse_grounding_response(text)


def test_normalized_box_to_pixels() -> None:
    box = normalized_box_to_pixels([100, 200, 300, 400], 1000, 500)

    assert box == PixelBox(left=200, top=50, right=400, bottom=150)
    assert box.center == (300, 100)


def test_inverted_box_is_reordered() -> None:
    box = normalized_box_to_pixels([300, 400, 100, 200], 1000, 1000)

    assert box.as_tuple() == (200, 100, 400, 300)


def test_center_rounds_half_up() -> None:
    assert PixelBox(0, 0, 3, 5).center == (2, 3)


def test_parse_operation_success() -> None:
    success = "Looks fine.\n\n**Operation Success Judgment:**\n- Status: SUCCESS\n- Reason: dialog opened"
    failure = "**Operation Success Judgment:**\n- Status: [FAILURE]\n- Reason: nothing happened"

    assert parse_operation_success(success) is True
    assert parse_operation_success(failure) is False
    assert parse_operation_success("no judgment here") is None
