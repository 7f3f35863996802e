import asyncio

import pytest

from tavern_play.models import Card, DataStoreField, FlowDelta, Option, Turn
from tavern_play.storage import Storage


class ScriptedExecutor:
    """Flow executor that replays canned deltas.

    error            raised after the deltas are exhausted
    wait_for_cancel  after the deltas, park until the token fires; `paused`
                     is set once parked so tests can call stop_generate()
    on_start         called with the request before the first delta
    """

    def __init__(self, deltas=(), error=None, wait_for_cancel=False, on_start=None):
        self.deltas = [d if isinstance(d, FlowDelta) else FlowDelta(**d) for d in deltas]
        self.error = error
        self.wait_for_cancel = wait_for_cancel
        self.on_start = on_start
        self.requests = []
        self.paused = asyncio.Event()
        self.log = []  # ("start"|"end", character_card_id)

    async def execute(self, request):
        self.requests.append(request)
        self.log.append(("start", request.character_card_id))
        if self.on_start is not None:
            self.on_start(request)
        try:
            for delta in self.deltas:
                request.token.raise_if_cancelled()
                yield delta
                await asyncio.sleep(0)
            if self.wait_for_cancel:
                self.paused.set()
                await request.token.wait()
                request.token.raise_if_cancelled()
            if self.error is not None:
                raise self.error
        finally:
            self.log.append(("end", request.character_card_id))


@pytest.fixture
def make_executor():
    return ScriptedExecutor


@pytest.fixture
def storage(tmp_path):
    """Fresh JSON storage per test."""
    return Storage(tmp_path / "data")


@pytest.fixture
def cards(storage):
    """Two AI characters and a user persona card."""
    alice = Card(id="alice", name="Alice", description="A curious bard.")
    bob = Card(id="bob", name="Bob", description="A grumpy innkeeper.")
    user = Card(id="user", name="Rowan")
    for card in (alice, bob, user):
        storage.save_card(card)
    return {"alice": alice, "bob": bob, "user": user}


@pytest.fixture
def session(storage, cards):
    return storage.create_session(
        "Tavern night",
        flow_id="flow-1",
        ai_character_card_ids=["alice", "bob"],
        user_character_card_id="user",
    )


@pytest.fixture
def add_turn(storage):
    """Append a persisted turn: add_turn(session, content, data_store=[("a", "1")])."""

    def _add(session, content, data_store=(), character_card_id=None, character_name=None):
        fields = [
            DataStoreField(name=name, type="string", value=value)
            for name, value in data_store
        ]
        turn = Turn(
            session_id=session.id,
            character_card_id=character_card_id,
            character_name=character_name,
            options=[Option(content=content, data_store=fields)],
        )
        storage.add_turn(session.id, turn)
        session.turn_ids.append(turn.id)
        return turn

    return _add
