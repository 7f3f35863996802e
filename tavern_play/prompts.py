"""Handlebars rendering for flow prompts, response templates and data-store logic."""

from collections.abc import Callable
from typing import Any

import pybars

from tavern_play.models import Card, Session, Turn


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_take(this, options, items, count):
    """{{#take array N}}...{{/take}}: iterate over the first N items."""
    result = []
    for item in list(items)[:int(count)]:
        result.extend(options["fn"](item))
    return result


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}}: iterate over the last N items."""
    result = []
    for item in list(items)[-int(count):]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "take": _helper_take,
    "last": _helper_last,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_context(
    session: Session,
    history: list[Turn],
    character: Card | None = None,
    variables: dict[str, Any] | None = None,
    data_store: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Assemble template variables for one generation.

    `history` is the list of turns the flow may see, oldest first. Each one
    is exposed as {name, content, is_user} under `turns`, and `history` is a
    pre-formatted "Name: content" transcript.
    """
    turns = []
    for turn in history:
        turns.append({
            "name": turn.character_name or "",
            "content": turn.content,
            "is_user": turn.character_card_id is None
            or turn.character_card_id == session.user_character_card_id,
        })

    history_lines = [
        f"{t['name']}: {t['content']}" if t["name"] else t["content"]
        for t in turns
    ]

    ctx: dict[str, Any] = {
        "session": {"id": session.id, "title": session.title},
        "turns": turns,
        "history": "\n".join(history_lines),
        "variables": variables or {},
        "data": data_store or {},
    }
    if character is not None:
        ctx["char"] = {"id": character.id, "name": character.name,
                       "description": character.description}
    # agent outputs are also reachable at top level, e.g. {{narrator.text}}
    for key, value in (variables or {}).items():
        ctx.setdefault(key, value)
    return ctx
