"""Auto-reply: which AI characters answer after a user message.

Policies cycle off → random → rotate → off. Rotate only makes sense with
more than one AI character, so with a single one random goes straight back
to off.

  off     no automatic reply
  random  one AI character, chosen uniformly
  rotate  every AI character in roster order, one after the other; each
          attempt concludes (saved or rolled back) before the next begins
"""

from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

from tavern_play.messages import add_user_message
from tavern_play.models import AutoReply, Session, Turn
from tavern_play.orchestrator import GenerationResult, Notice, Notifier, Orchestrator
from tavern_play.storage import Storage

logger = logging.getLogger(__name__)

Generate = Callable[[str], Awaitable[GenerationResult]]


def next_auto_reply(policy: Any, roster_size: int) -> AutoReply:
    try:
        current = AutoReply(policy)
    except ValueError:
        logger.warning("Unknown auto-reply policy %r, resetting to off", policy)
        return AutoReply.OFF
    if current == AutoReply.OFF:
        return AutoReply.RANDOM
    if current == AutoReply.RANDOM:
        return AutoReply.ROTATE if roster_size > 1 else AutoReply.OFF
    return AutoReply.OFF


def toggle_auto_reply(storage: Storage, session_id: str) -> Session:
    """Advance the session's policy one step and persist it."""
    session = storage.get_session(session_id)
    session.auto_reply = next_auto_reply(session.auto_reply, len(session.ai_character_card_ids))
    storage.save_session(session)
    return session


async def run_auto_reply(
    session: Session,
    generate: Generate,
    rng: random.Random | None = None,
    notify: Notifier | None = None,
) -> list[GenerationResult]:
    """Trigger the generations the session's policy calls for, in order."""
    roster = session.ai_character_card_ids

    if session.auto_reply == AutoReply.OFF:
        return []

    if session.auto_reply == AutoReply.RANDOM:
        if not roster:
            logger.error("Auto-reply in session %s: no characters available", session.id)
            if notify is not None:
                notify(Notice(level="error", title="No characters available"))
            return []
        card_id = (rng or random).choice(roster)
        return [await generate(card_id)]

    if session.auto_reply == AutoReply.ROTATE:
        results = []
        for card_id in roster:
            results.append(await generate(card_id))
        return results

    raise ValueError(f"Unknown auto reply {session.auto_reply!r}")


async def send_message(
    storage: Storage,
    orchestrator: Orchestrator,
    session_id: str,
    content: str,
    rng: random.Random | None = None,
    notify: Notifier | None = None,
) -> tuple[Turn, list[GenerationResult]]:
    """Append the user's message, then let the auto-reply policy answer it."""
    turn = add_user_message(storage, session_id, content)
    session = storage.get_session(session_id)
    results = await run_auto_reply(session, orchestrator.generate, rng=rng, notify=notify)
    return turn, results
