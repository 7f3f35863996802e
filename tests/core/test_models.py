"""Tests for Turn option bookkeeping and model validation."""

import pytest
from pydantic import ValidationError

from tavern_play.models import AutoReply, FlowDelta, Option, Session, Turn


def _turn(*contents, selected=0):
    return Turn(
        session_id="s1",
        options=[Option(content=c) for c in contents],
        selected_option_index=selected,
    )


def test_turn_requires_an_option():
    with pytest.raises(ValidationError):
        Turn(session_id="s1", options=[])


def test_selected_index_must_be_in_range():
    with pytest.raises(ValidationError):
        _turn("a", selected=1)


def test_accessors_follow_selection():
    turn = _turn("first", "second", selected=1)
    assert turn.content == "second"
    turn.set_content("edited")
    assert turn.options[1].content == "edited"
    assert turn.options[0].content == "first"


def test_add_option_selects_it():
    turn = _turn("first")
    turn.add_option(Option(content="second"))
    assert turn.selected_option_index == 1
    assert turn.content == "second"


def test_prev_next_clamp():
    turn = _turn("a", "b", "c")
    turn.prev_option()
    assert turn.selected_option_index == 0
    turn.next_option()
    turn.next_option()
    turn.next_option()
    assert turn.selected_option_index == 2


def test_asset_ids():
    turn = Turn(session_id="s1", options=[Option(asset_id="img1"), Option()])
    assert turn.asset_ids() == ["img1"]


def test_turn_json_roundtrip_keeps_options():
    turn = _turn("a", "b", selected=1)
    turn.set_translation("fr", "b-fr")
    loaded = Turn.model_validate_json(turn.model_dump_json())
    assert loaded == turn


def test_session_defaults():
    session = Session(title="Night")
    assert session.auto_reply == AutoReply.OFF
    assert session.turn_ids == []
    assert session.flow_id is None


def test_flow_delta_data_store_absent_by_default():
    assert FlowDelta(content="x").data_store is None
