"""Tests for written (non-generated) messages."""

import pytest

from tavern_play.messages import (
    add_scenario_message,
    add_user_message,
    create_message,
    delete_message,
    edit_message,
)
from tavern_play.models import Option
from tavern_play.storage import NotFoundError


def test_user_message_uses_persona_name(storage, session):
    turn = add_user_message(storage, session.id, "Hello there")
    assert turn.character_name == "Rowan"
    assert storage.get_session(session.id).turn_ids == [turn.id]


def test_user_message_without_persona(storage, cards):
    session = storage.create_session("Solo")
    turn = add_user_message(storage, session.id, "Anyone?")
    assert turn.character_card_id is None
    assert turn.character_name == "User"


def test_missing_card_falls_back_to_default_name(storage, session):
    turn = create_message(storage, session.id, "Hi", character_card_id="ghost",
                          default_character_name="Stranger")
    assert turn.character_name == "Stranger"


def test_scenario_message_has_no_character(storage, session):
    turn = add_scenario_message(storage, session.id, "Rain lashes the windows.")
    saved = storage.get_turn(turn.id)
    assert saved.character_card_id is None
    assert saved.character_name is None
    assert saved.content == "Rain lashes the windows."


def test_written_messages_inherit_data_store(storage, session, add_turn):
    add_turn(session, "Earlier", data_store=[("weather", "rain")])
    turn = add_user_message(storage, session.id, "Still raining?")
    assert [(f.name, f.value) for f in turn.data_store] == [("weather", "rain")]


def test_edit_message_changes_selected_option(storage, session, add_turn):
    turn = add_turn(session, "old", character_card_id="alice")
    turn.add_option(Option(content="second"))
    storage.save_turn(turn)

    edit_message(storage, turn.id, "rewritten")

    saved = storage.get_turn(turn.id)
    assert [o.content for o in saved.options] == ["old", "rewritten"]


def test_delete_message_removes_turn_and_assets(storage, session, add_turn):
    keep = add_turn(session, "keep")
    turn = add_turn(session, "with picture")
    asset_id = storage.save_asset(b"png")
    turn.selected_option.asset_id = asset_id
    storage.save_turn(turn)

    delete_message(storage, session.id, turn.id)

    assert storage.get_session(session.id).turn_ids == [keep.id]
    assert storage.get_turn_optional(turn.id) is None
    assert not storage.has_asset(asset_id)


def test_delete_unknown_message(storage, session):
    with pytest.raises(NotFoundError):
        delete_message(storage, session.id, "nope")
