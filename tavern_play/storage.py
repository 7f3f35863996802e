"""JSON file storage.

All state is stored in flat JSON files under a configurable base directory.
There is no database or ORM; reads and writes go through plain helper
methods that load and dump pydantic models.

Directory layout:

    {base}/
      sessions/
        {session_id}.json    ← Session (ordered turn ids, roster, policy)
      turns/
        {turn_id}.json       ← Turn with all its options
      flows/
        {flow_id}.json       ← Flow definition for the reference executor
      assets/
        {asset_id}           ← generated media referenced by an option
      cards.json             ← list of character Card objects
      config.json            ← settings (see tavern_play.config)

The orchestrator consumes three narrow contracts from this class:
Turn Store (get_turn / save_turn / delete_turn), Session Store
(get_session / save_session) and Character Lookup (get_character_name).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from tavern_play.models import Card, Flow, Session, Turn, new_id

logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """Raised when a requested record does not exist."""

    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} {record_id!r} not found")
        self.kind = kind
        self.record_id = record_id


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        for sub in ("sessions", "turns", "flows", "assets"):
            (base_path / sub).mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _session_file(self, session_id: str) -> Path:
        return self._base / "sessions" / f"{session_id}.json"

    def _turn_file(self, turn_id: str) -> Path:
        return self._base / "turns" / f"{turn_id}.json"

    def _flow_file(self, flow_id: str) -> Path:
        return self._base / "flows" / f"{flow_id}.json"

    def _asset_file(self, asset_id: str) -> Path:
        return self._base / "assets" / asset_id

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        title: str = "",
        *,
        flow_id: str | None = None,
        ai_character_card_ids: list[str] | None = None,
        user_character_card_id: str | None = None,
    ) -> Session:
        session = Session(
            title=title,
            flow_id=flow_id,
            ai_character_card_ids=list(ai_character_card_ids or []),
            user_character_card_id=user_character_card_id,
        )
        self.save_session(session)
        return session

    def get_session(self, session_id: str) -> Session:
        path = self._session_file(session_id)
        if not path.is_file():
            raise NotFoundError("session", session_id)
        return Session.model_validate_json(path.read_text())

    def save_session(self, session: Session) -> None:
        self._session_file(session.id).write_text(session.model_dump_json(indent=2))

    def list_sessions(self) -> list[Session]:
        return [
            Session.model_validate_json(p.read_text())
            for p in sorted((self._base / "sessions").glob("*.json"))
        ]

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def get_turn(self, turn_id: str) -> Turn:
        path = self._turn_file(turn_id)
        if not path.is_file():
            raise NotFoundError("turn", turn_id)
        return Turn.model_validate_json(path.read_text())

    def get_turn_optional(self, turn_id: str) -> Turn | None:
        try:
            return self.get_turn(turn_id)
        except NotFoundError:
            return None

    def save_turn(self, turn: Turn) -> None:
        self._turn_file(turn.id).write_text(turn.model_dump_json(indent=2))

    def get_turns(self, session_id: str) -> list[Turn]:
        """All turns of a session in conversation order. Missing files are skipped."""
        turns = []
        for turn_id in self.get_session(session_id).turn_ids:
            turn = self.get_turn_optional(turn_id)
            if turn is None:
                logger.warning("Session %s references missing turn %s", session_id, turn_id)
                continue
            turns.append(turn)
        return turns

    def add_turn(self, session_id: str, turn: Turn) -> Session:
        """Save the turn and append it to the end of the session's sequence."""
        session = self.get_session(session_id)
        self.save_turn(turn)
        session.turn_ids.append(turn.id)
        self.save_session(session)
        return session

    def delete_turn(self, session_id: str, turn_id: str) -> Session:
        """Remove a turn from its session and delete the turn and its assets."""
        session = self.get_session(session_id)
        if turn_id not in session.turn_ids:
            raise NotFoundError("turn", turn_id)
        session.turn_ids.remove(turn_id)
        self.save_session(session)

        turn = self.get_turn_optional(turn_id)
        if turn is not None:
            for asset_id in turn.asset_ids():
                self.delete_asset(asset_id)
        self._turn_file(turn_id).unlink(missing_ok=True)
        return session

    # ------------------------------------------------------------------
    # Cards (character lookup)
    # ------------------------------------------------------------------

    def get_cards(self) -> list[Card]:
        path = self._base / "cards.json"
        if not path.exists():
            return []
        return [Card.model_validate(c) for c in self._read_json(path)]

    def save_card(self, card: Card) -> None:
        """Upsert a card by id."""
        cards = self.get_cards()
        for i, c in enumerate(cards):
            if c.id == card.id:
                cards[i] = card
                break
        else:
            cards.append(card)
        self._write_json(self._base / "cards.json", [c.model_dump() for c in cards])

    def get_card(self, card_id: str) -> Card:
        for card in self.get_cards():
            if card.id == card_id:
                return card
        raise NotFoundError("card", card_id)

    def get_character_name(self, card_id: str) -> str:
        return self.get_card(card_id).name

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    def save_flow(self, flow: Flow) -> None:
        self._flow_file(flow.id).write_text(flow.model_dump_json(indent=2))

    def get_flow(self, flow_id: str) -> Flow:
        path = self._flow_file(flow_id)
        if not path.is_file():
            raise NotFoundError("flow", flow_id)
        return Flow.model_validate_json(path.read_text())

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def save_asset(self, data: bytes) -> str:
        asset_id = new_id()
        self._asset_file(asset_id).write_bytes(data)
        return asset_id

    def has_asset(self, asset_id: str) -> bool:
        return self._asset_file(asset_id).is_file()

    def delete_asset(self, asset_id: str) -> None:
        self._asset_file(asset_id).unlink(missing_ok=True)
