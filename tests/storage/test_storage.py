"""Tests for JSON file storage of sessions, turns, cards, flows and assets."""

import pytest

from tavern_play.models import Card, Flow, FlowAgent, Option, Turn
from tavern_play.storage import NotFoundError, Storage


def test_creates_layout(tmp_path):
    Storage(tmp_path / "data")
    for sub in ("sessions", "turns", "flows", "assets"):
        assert (tmp_path / "data" / sub).is_dir()


# ── Sessions ─────────────────────────────────────────────


def test_session_roundtrip(storage):
    session = storage.create_session(
        "Night", flow_id="f", ai_character_card_ids=["a"], user_character_card_id="u"
    )
    loaded = storage.get_session(session.id)
    assert loaded == session
    assert storage.list_sessions() == [session]


def test_missing_session(storage):
    with pytest.raises(NotFoundError) as exc:
        storage.get_session("nope")
    assert exc.value.kind == "session"


# ── Turns ────────────────────────────────────────────────


def test_add_turn_appends_in_order(storage, session):
    first = Turn(session_id=session.id, options=[Option(content="1")])
    second = Turn(session_id=session.id, options=[Option(content="2")])
    storage.add_turn(session.id, first)
    storage.add_turn(session.id, second)

    assert storage.get_session(session.id).turn_ids == [first.id, second.id]
    assert [t.content for t in storage.get_turns(session.id)] == ["1", "2"]


def test_get_turns_skips_missing(storage, session, add_turn):
    kept = add_turn(session, "kept")
    gone = add_turn(session, "gone")
    (storage.base_path / "turns" / f"{gone.id}.json").unlink()
    assert [t.id for t in storage.get_turns(session.id)] == [kept.id]


def test_get_turn_optional(storage):
    assert storage.get_turn_optional("nope") is None
    with pytest.raises(NotFoundError):
        storage.get_turn("nope")


def test_delete_turn(storage, session, add_turn):
    first = add_turn(session, "first")
    second = add_turn(session, "second")
    storage.delete_turn(session.id, first.id)
    assert storage.get_session(session.id).turn_ids == [second.id]
    assert not (storage.base_path / "turns" / f"{first.id}.json").exists()


def test_delete_turn_not_in_session(storage, session):
    with pytest.raises(NotFoundError):
        storage.delete_turn(session.id, "elsewhere")


# ── Cards ────────────────────────────────────────────────


def test_cards_upsert(storage):
    storage.save_card(Card(id="c1", name="Alice"))
    storage.save_card(Card(id="c1", name="Alicia"))
    storage.save_card(Card(id="c2", name="Bob"))
    assert [c.name for c in storage.get_cards()] == ["Alicia", "Bob"]
    assert storage.get_character_name("c2") == "Bob"


def test_unknown_card(storage):
    assert storage.get_cards() == []
    with pytest.raises(NotFoundError):
        storage.get_character_name("ghost")


# ── Flows and assets ─────────────────────────────────────


def test_flow_roundtrip(storage):
    flow = Flow(id="f1", agents=[FlowAgent(key="narrator", prompt="{{history}}")])
    storage.save_flow(flow)
    assert storage.get_flow("f1") == flow
    with pytest.raises(NotFoundError):
        storage.get_flow("f2")


def test_assets(storage):
    asset_id = storage.save_asset(b"\x89PNG")
    assert storage.has_asset(asset_id)
    storage.delete_asset(asset_id)
    assert not storage.has_asset(asset_id)
    storage.delete_asset(asset_id)  # already gone
