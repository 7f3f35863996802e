"""Flow executor: produces the delta stream for one generation attempt.

The orchestrator only depends on the FlowExecutor protocol:

    def execute(self, request: FlowRequest) -> AsyncIterator[FlowDelta]: ...

The stream is lazy, finite and cannot be restarted. Every delta carries full
replacements of content, variables and (when present) the data store; the
orchestrator never merges them. When request.token fires the executor raises
GenerationCancelled at its next suspension point.

LLMFlowExecutor is the reference implementation. A flow is a linear list of
agents:

  1. Build the template context (session, character, history, data store).
  2. Initialise data-store fields declared in the flow schema.
  3. For each agent: render its prompt, call its LLM under the token, store
     the output in variables[agent.key] (parsed JSON for structured agents),
     render the response template and yield a delta.
  4. Apply data_store_updates and yield a last delta if anything changed.

Without a response template the content is the latest plain-text agent
output; structured agents alone produce empty content, and the orchestrator
classifies the result from variables.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict

from tavern_play.cancellation import CancellationToken
from tavern_play.config import get_config, resolve_connection
from tavern_play.datastore import (
    as_mapping,
    convert_value,
    encode_value,
    inherit_data_store,
    initialize_from_schema,
    upsert_field,
)
from tavern_play.llm import LLM, HttpLLM, LLMConnection
from tavern_play.models import Card, DataStoreField, Flow, FlowAgent, FlowDelta, Session, Turn
from tavern_play.prompts import build_context, render_prompt
from tavern_play.storage import NotFoundError, Storage

logger = logging.getLogger(__name__)


class FlowError(RuntimeError):
    """Raised when a flow cannot be loaded or produces unusable output."""


class FlowRequest(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    flow_id: str
    session_id: str
    character_card_id: str
    token: CancellationToken
    regenerate_turn_id: str | None = None
    trigger_type: str | None = None


class FlowExecutor(Protocol):
    def execute(self, request: FlowRequest) -> AsyncIterator[FlowDelta]: ...


LLMFactory = Callable[[FlowAgent], LLM]


def connection_llm_factory(data_dir: Path) -> LLMFactory:
    """Resolve each agent's connection from config.json at call time."""

    def _factory(agent: FlowAgent) -> LLM:
        config = get_config(data_dir)
        conn = resolve_connection(config, agent.key, agent.connection)
        if conn is None:
            raise FlowError(
                f"Agent {agent.key!r} has no LLM connection; configure it in Settings"
            )
        return HttpLLM(LLMConnection.model_validate(conn), timeout=float(config["llm_timeout"]))

    return _factory


class LLMFlowExecutor:
    def __init__(self, storage: Storage, llm_factory: LLMFactory) -> None:
        self._storage = storage
        self._llm_factory = llm_factory

    async def execute(self, request: FlowRequest) -> AsyncIterator[FlowDelta]:
        token = request.token
        try:
            flow = self._storage.get_flow(request.flow_id)
        except NotFoundError as e:
            raise FlowError(str(e)) from e

        session = self._storage.get_session(request.session_id)
        character = self._character(request.character_card_id)
        history = self._history(session, request.regenerate_turn_id)

        data_store = inherit_data_store(self._storage, session, request.regenerate_turn_id)
        variables: dict[str, Any] = {}

        def _ctx() -> dict[str, Any]:
            ctx = build_context(session, history, character, variables, as_mapping(data_store))
            ctx["trigger"] = request.trigger_type or ""
            return ctx

        initialize_from_schema(data_store, flow.data_store_schema, _ctx())

        content = ""
        for agent in flow.agents:
            token.raise_if_cancelled()
            llm = self._llm_factory(agent)
            prompt = render_prompt(agent.prompt, _ctx())
            completion = await token.guard(llm(agent.key, prompt))
            output = completion.text
            model_name = completion.model or llm.model_name
            variables[agent.key] = _parse_output(agent, output)

            if flow.response_template:
                content = render_prompt(flow.response_template, _ctx())
            elif not agent.structured:
                content = output.strip()

            token.raise_if_cancelled()
            yield _delta(
                content, variables, data_store,
                agent_name=agent.name or agent.key,
                model_name=model_name,
                metadata={
                    "agent": agent.key,
                    "model": model_name,
                    "finish_reason": completion.finish_reason,
                    "raw_output": output,
                },
            )

        if _apply_updates(flow, data_store, _ctx):
            if flow.response_template:
                content = render_prompt(flow.response_template, _ctx())
            token.raise_if_cancelled()
            yield _delta(content, variables, data_store)

    # ------------------------------------------------------------------
    # Context helpers
    # ------------------------------------------------------------------

    def _character(self, card_id: str) -> Card | None:
        try:
            return self._storage.get_card(card_id)
        except NotFoundError:
            logger.warning("Character card %s not found, rendering without it", card_id)
            return None

    def _history(self, session: Session, regenerate_turn_id: str | None) -> list[Turn]:
        """Turns the flow may see: those before the regeneration target, or
        every turn that already has content."""
        turns = self._storage.get_turns(session.id)
        if regenerate_turn_id is not None:
            for i, turn in enumerate(turns):
                if turn.id == regenerate_turn_id:
                    return turns[:i]
        return [t for t in turns if t.content.strip()]


def _parse_output(agent: FlowAgent, output: str) -> Any:
    if not agent.structured:
        return output
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        raise FlowError(f"Agent {agent.key!r} returned invalid JSON: {e}") from e


def _apply_updates(
    flow: Flow,
    data_store: list[DataStoreField],
    context: Callable[[], dict[str, Any]],
) -> bool:
    """Run data_store_updates in order. Returns True if any field changed.

    Each update renders against a fresh context, so it sees the values the
    updates before it wrote.
    """
    changed = False
    for update in flow.data_store_updates:
        field = next((f for f in data_store if f.name == update.field), None)
        if field is None:
            logger.warning("dataStore update targets unknown field %r", update.field)
            continue
        rendered = render_prompt(update.logic, context()).strip()
        converted = convert_value(rendered, field.type)
        if converted is None:
            logger.debug(
                "Skipping dataStore update for %r: invalid value %r", field.name, rendered
            )
            continue
        upsert_field(data_store, field.name, field.type, encode_value(converted))
        changed = True
    return changed


def _delta(
    content: str,
    variables: dict[str, Any],
    data_store: list[DataStoreField],
    **extra: Any,
) -> FlowDelta:
    return FlowDelta(
        content=content,
        variables=copy.deepcopy(variables),
        data_store=[f.model_copy() for f in data_store],
        **extra,
    )
