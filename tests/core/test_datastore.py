"""Tests for data-store conversion, schema initialisation and inheritance."""

import pytest

from tavern_play.datastore import (
    as_mapping,
    convert_value,
    encode_value,
    inherit_data_store,
    initialize_from_schema,
    upsert_field,
)
from tavern_play.models import DataStoreField, DataStoreSchemaField
from tavern_play.storage import NotFoundError


# ── convert_value ────────────────────────────────────────


@pytest.mark.parametrize("raw", ["", "undefined", "null"])
def test_convert_missing_markers(raw):
    assert convert_value(raw, "string") is None
    assert convert_value(raw, "number") is None


def test_convert_number():
    assert convert_value("3.5", "number") == 3.5
    assert convert_value("abc", "number") is None
    assert convert_value("nan", "number") is None


def test_convert_integer_takes_leading_digits():
    assert convert_value("42", "integer") == 42
    assert convert_value("7 apples", "integer") == 7
    assert convert_value("-3", "integer") == -3
    assert convert_value("apples", "integer") is None


def test_convert_boolean():
    assert convert_value("true", "boolean") is True
    assert convert_value("Yes", "boolean") is True
    assert convert_value("1", "boolean") is True
    assert convert_value("no", "boolean") is False


def test_convert_string_unchanged():
    assert convert_value(" spaced ", "string") == " spaced "


def test_encode_value():
    assert encode_value(True) == "true"
    assert encode_value(3.0) == "3"
    assert encode_value(2.5) == "2.5"
    assert encode_value("x") == "x"


# ── Field helpers ────────────────────────────────────────


def test_upsert_replaces_in_place():
    fields = [DataStoreField(name="a", value="1"), DataStoreField(name="b", value="2")]
    upsert_field(fields, "a", "integer", "5")
    upsert_field(fields, "c", "string", "new")
    assert [(f.name, f.type, f.value) for f in fields] == [
        ("a", "integer", "5"),
        ("b", "string", "2"),
        ("c", "string", "new"),
    ]


def test_as_mapping_converts_types():
    fields = [
        DataStoreField(name="hp", type="integer", value="10"),
        DataStoreField(name="angry", type="boolean", value="false"),
    ]
    assert as_mapping(fields) == {"hp": 10, "angry": False}


def test_initialize_from_schema_renders_and_skips_existing():
    fields = [DataStoreField(name="hp", type="integer", value="3")]
    schema = [
        DataStoreSchemaField(name="hp", type="integer", initial_value="100"),
        DataStoreSchemaField(name="place", initial_value="{{char.name}}'s inn"),
        DataStoreSchemaField(name="gold", type="number", initial_value="lots"),
    ]
    initialize_from_schema(fields, schema, {"char": {"name": "Bob"}})
    assert [(f.name, f.value) for f in fields] == [
        ("hp", "3"),
        ("place", "Bob's inn"),
        ("gold", "0"),
    ]


# ── Inheritance ──────────────────────────────────────────


def test_inherits_most_recent_non_empty(storage, session, add_turn):
    add_turn(session, "Turn 1", data_store=[("a", "1")])
    add_turn(session, "Turn 2")
    inherited = inherit_data_store(storage, session)
    assert [(f.name, f.value) for f in inherited] == [("a", "1")]


def test_later_store_wins(storage, session, add_turn):
    add_turn(session, "Turn 1", data_store=[("a", "1")])
    add_turn(session, "Turn 2", data_store=[("a", "2")])
    assert inherit_data_store(storage, session)[0].value == "2"


def test_regeneration_excludes_target_and_later(storage, session, add_turn):
    add_turn(session, "Turn 1", data_store=[("a", "1")])
    target = add_turn(session, "Turn 2", data_store=[("a", "2")])
    add_turn(session, "Turn 3", data_store=[("a", "3")])

    inherited = inherit_data_store(storage, session, regenerate_turn_id=target.id)
    assert [(f.name, f.value) for f in inherited] == [("a", "1")]


def test_regenerating_first_turn_starts_empty(storage, session, add_turn):
    first = add_turn(session, "Turn 1", data_store=[("a", "1")])
    assert inherit_data_store(storage, session, regenerate_turn_id=first.id) == []


def test_empty_session_starts_empty(storage, session):
    assert inherit_data_store(storage, session) == []


def test_inherited_store_is_a_copy(storage, session, add_turn):
    source = add_turn(session, "Turn 1", data_store=[("a", "1")])
    inherited = inherit_data_store(storage, session)
    inherited[0].value = "changed"
    inherited.append(DataStoreField(name="b"))

    again = inherit_data_store(storage, session)
    assert [(f.name, f.value) for f in again] == [("a", "1")]
    assert storage.get_turn(source.id).data_store[0].value == "1"


def test_unreadable_turn_is_skipped(storage, session, add_turn):
    add_turn(session, "Turn 1", data_store=[("a", "1")])
    broken = add_turn(session, "Turn 2", data_store=[("a", "2")])
    (storage.base_path / "turns" / f"{broken.id}.json").write_text("{not json")

    inherited = inherit_data_store(storage, session)
    assert [(f.name, f.value) for f in inherited] == [("a", "1")]


def test_missing_turn_is_skipped(storage, session, add_turn):
    add_turn(session, "Turn 1", data_store=[("a", "1")])
    session.turn_ids.append("ghost")
    assert inherit_data_store(storage, session)[0].value == "1"


def test_unknown_regeneration_target(storage, session, add_turn):
    add_turn(session, "Turn 1", data_store=[("a", "1")])
    with pytest.raises(NotFoundError):
        inherit_data_store(storage, session, regenerate_turn_id="elsewhere")
