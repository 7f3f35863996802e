"""User, scenario and edited messages: turns that are written, not generated."""

from __future__ import annotations

import logging
from typing import Any

from tavern_play.datastore import inherit_data_store
from tavern_play.models import Option, Session, Turn
from tavern_play.storage import NotFoundError, Storage

logger = logging.getLogger(__name__)


def create_message(
    storage: Storage,
    session_id: str,
    content: str,
    character_card_id: str | None = None,
    default_character_name: str | None = None,
    variables: dict[str, Any] | None = None,
) -> Turn:
    """Build (but do not save) a turn holding `content`.

    The option starts from a copy of the session's current data store so
    state carries across written messages too.
    """
    session = storage.get_session(session_id)
    data_store = inherit_data_store(storage, session)

    character_name = default_character_name
    if character_card_id:
        try:
            character_name = storage.get_character_name(character_card_id) or character_name
        except NotFoundError:
            logger.warning("Card %s not found, using %r", character_card_id, character_name)

    option = Option(content=content, variables=dict(variables or {}), data_store=data_store)
    return Turn(
        session_id=session_id,
        character_card_id=character_card_id,
        character_name=character_name,
        options=[option],
    )


def add_message(storage: Storage, session_id: str, turn: Turn) -> Session:
    return storage.add_turn(session_id, turn)


def add_user_message(storage: Storage, session_id: str, content: str) -> Turn:
    session = storage.get_session(session_id)
    turn = create_message(
        storage, session_id, content,
        character_card_id=session.user_character_card_id,
        default_character_name="User",
    )
    add_message(storage, session_id, turn)
    return turn


def add_scenario_message(storage: Storage, session_id: str, text: str) -> Turn:
    """Append narration that belongs to no character."""
    turn = create_message(storage, session_id, text)
    add_message(storage, session_id, turn)
    return turn


def edit_message(storage: Storage, turn_id: str, content: str) -> Turn:
    turn = storage.get_turn(turn_id)
    turn.set_content(content)
    storage.save_turn(turn)
    return turn


def delete_message(storage: Storage, session_id: str, turn_id: str) -> Session:
    """Remove a turn, including any generated assets its options point to."""
    return storage.delete_turn(session_id, turn_id)
