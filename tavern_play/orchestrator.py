"""Generation orchestrator: runs one character reply end-to-end.

Attempt flow (GenerationState):

  preparing   inherit the data store, create the Turn (or load it for a
              regeneration) and append an empty Option; a brand-new Turn is
              persisted right away so it already holds its place in the
              session while it streams
  streaming   drive the flow executor; every delta overwrites content and
              variables, replaces the data store when present, upserts
              translations and publishes agent/model names
  finalizing  classify the last delta only; success saves the Turn
  done | failed | cancelled

Any failure or cancellation rolls back: a regeneration is discarded and the
Turn re-read from storage; a brand-new Turn is deleted from the session.
The active generation context is cleared and session listeners are told to
refresh in every case.

One Orchestrator serves one session and owns at most one attempt at a time;
a second generate() while one is active raises GenerationInProgress.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from tavern_play.cancellation import CancellationToken, GenerationCancelled
from tavern_play.datastore import inherit_data_store
from tavern_play.errors import (
    EmptyGeneration,
    EmptyStructuredOutput,
    ExecutorError,
    GenerationError,
    GenerationInProgress,
    MalformedStructuredOutput,
    PersistenceError,
    UserCancelled,
)
from tavern_play.flow import FlowExecutor, FlowRequest
from tavern_play.models import FlowDelta, Option, Turn
from tavern_play.storage import NotFoundError, Storage

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STORE_ERRORS = (NotFoundError, OSError, ValueError)


class GenerationState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Notice(BaseModel):
    """User-facing report of how an attempt ended badly."""

    level: str
    title: str
    description: str = ""
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_error(cls, error: GenerationError) -> Notice:
        if error.level == "info":
            return cls(level="info", title=error.title, description=str(error))
        details = error.details()
        return cls(
            level="error",
            title=error.title,
            description=json.dumps(details, indent=2, default=str),
            details=details,
        )


class GenerationResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: GenerationState
    turn: Turn | None = None
    error: GenerationError | None = None

    @property
    def ok(self) -> bool:
        return self.state == GenerationState.DONE


class GenerationContext:
    """The one in-flight attempt of a session. Discarded when it concludes."""

    def __init__(
        self,
        session_id: str,
        character_card_id: str,
        regenerate_turn_id: str | None,
        trigger_type: str | None,
    ) -> None:
        self.session_id = session_id
        self.character_card_id = character_card_id
        self.regenerate_turn_id = regenerate_turn_id
        self.trigger_type = trigger_type
        self.token = CancellationToken()
        self.state = GenerationState.PREPARING
        self.turn: Turn | None = None
        self.streaming_turn_id: str | None = None
        self.placeholder_persisted = False
        self.agent_name = ""
        self.model_name = ""
        self.metadata: dict[str, Any] | None = None

    @property
    def is_regeneration(self) -> bool:
        return self.regenerate_turn_id is not None


Notifier = Callable[[Notice], None]
RefreshListener = Callable[[str], None]


# ---------------------------------------------------------------------------
# Outcome classification
# ---------------------------------------------------------------------------

def classify_final_delta(
    delta: FlowDelta | None, metadata: dict[str, Any] | None = None
) -> None:
    """Raise the matching failure unless the last delta holds content.

    Only the final delta counts; earlier deltas were full replacements that
    the last one superseded.
    """
    content = delta.content if delta is not None else ""
    variables = delta.variables if delta is not None else {}
    if content.strip():
        return
    if variables:
        for key, value in variables.items():
            # a JSON schema instead of the data it describes
            if isinstance(value, Mapping) and "type" in value and "properties" in value:
                raise MalformedStructuredOutput(key, metadata)
        raise EmptyStructuredOutput(metadata)
    raise EmptyGeneration(metadata)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class Orchestrator:
    def __init__(
        self,
        storage: Storage,
        executor: FlowExecutor,
        session_id: str,
        notify: Notifier | None = None,
        on_refresh: RefreshListener | None = None,
    ) -> None:
        self._storage = storage
        self._executor = executor
        self._session_id = session_id
        self._notify = notify
        self._on_refresh = on_refresh
        self._context: GenerationContext | None = None
        self._state = GenerationState.IDLE

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def state(self) -> GenerationState:
        """Current phase while generating, else the outcome of the last attempt."""
        return self._context.state if self._context else self._state

    @property
    def is_generating(self) -> bool:
        return self._context is not None

    @property
    def streaming_turn_id(self) -> str | None:
        return self._context.streaming_turn_id if self._context else None

    @property
    def agent_name(self) -> str:
        return self._context.agent_name if self._context else ""

    @property
    def model_name(self) -> str:
        return self._context.model_name if self._context else ""

    def snapshot(self) -> dict[str, Any]:
        return {
            "session_id": self._session_id,
            "state": self.state.value,
            "is_generating": self.is_generating,
            "streaming_turn_id": self.streaming_turn_id,
            "agent_name": self.agent_name,
            "model_name": self.model_name,
        }

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def stop_generate(self, reason: str = "Stop generate by user") -> bool:
        """Fire the active attempt's token. Returns False when idle."""
        ctx = self._context
        if ctx is None:
            return False
        logger.info("Stop requested for session %s", self._session_id)
        return ctx.token.cancel(reason)

    async def generate(
        self,
        character_id: str,
        regenerate_turn_id: str | None = None,
        trigger_type: str | None = None,
    ) -> GenerationResult:
        """Run one generation attempt through completion or rollback."""
        if self._context is not None:
            raise GenerationInProgress(self._session_id, self._context.streaming_turn_id)

        ctx = GenerationContext(self._session_id, character_id, regenerate_turn_id, trigger_type)
        self._context = ctx
        logger.info(
            "Generating for character %s in session %s%s",
            character_id, self._session_id,
            f" (regenerate {regenerate_turn_id})" if regenerate_turn_id else "",
        )
        try:
            flow_id = self._prepare(ctx)
            last = await self._stream(ctx, flow_id)

            ctx.state = GenerationState.FINALIZING
            classify_final_delta(last, ctx.metadata)
            self._store("save message", self._storage.save_turn, ctx.turn)
        except GenerationError as e:
            return self._fail(ctx, e)
        except asyncio.CancelledError:
            self._rollback(ctx)
            self._state = GenerationState.CANCELLED
            raise
        else:
            self._state = GenerationState.DONE
            logger.info("Generated turn %s in session %s", ctx.turn.id, self._session_id)
            return GenerationResult(state=GenerationState.DONE, turn=ctx.turn)
        finally:
            self._release(ctx)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _prepare(self, ctx: GenerationContext) -> str:
        """Set up the Turn and its empty Option. Returns the flow id."""
        session = self._store("load session", self._storage.get_session, self._session_id)
        data_store = self._store(
            "inherit data store", inherit_data_store,
            self._storage, session, ctx.regenerate_turn_id,
        )
        option = Option(content="", data_store=data_store)

        if ctx.is_regeneration:
            turn = self._store("load message", self._storage.get_turn, ctx.regenerate_turn_id)
            turn.add_option(option)
            ctx.turn = turn
        else:
            name = self._store(
                "look up character", self._storage.get_character_name, ctx.character_card_id
            )
            turn = Turn(
                session_id=session.id,
                character_card_id=ctx.character_card_id,
                character_name=name,
                options=[option],
            )
            ctx.turn = turn
            self._store("add message", self._storage.add_turn, session.id, turn)
            ctx.placeholder_persisted = True

        ctx.streaming_turn_id = turn.id

        if not session.flow_id:
            raise ExecutorError("Session has no flow assigned")
        return session.flow_id

    async def _stream(self, ctx: GenerationContext, flow_id: str) -> FlowDelta | None:
        ctx.state = GenerationState.STREAMING
        request = FlowRequest(
            flow_id=flow_id,
            session_id=self._session_id,
            character_card_id=ctx.character_card_id,
            regenerate_turn_id=ctx.regenerate_turn_id,
            trigger_type=ctx.trigger_type,
            token=ctx.token,
        )
        last: FlowDelta | None = None
        try:
            async for delta in self._executor.execute(request):
                last = delta
                self._apply(ctx, delta)
        except GenerationCancelled as e:
            raise UserCancelled(e.reason) from e
        except GenerationError:
            raise
        except Exception as e:
            if ctx.token.cancelled:
                raise UserCancelled(ctx.token.reason or str(e)) from e
            raise ExecutorError(f"Flow execution failed: {e}", cause=e) from e
        return last

    def _apply(self, ctx: GenerationContext, delta: FlowDelta) -> None:
        turn = ctx.turn
        turn.set_content(delta.content)
        turn.set_variables(delta.variables)
        if delta.data_store is not None:
            turn.set_data_store([f.model_copy() for f in delta.data_store])
        for language, text in delta.translations:
            turn.set_translation(language, text)
        if delta.metadata:
            ctx.metadata = delta.metadata
        ctx.agent_name = delta.agent_name or ""
        ctx.model_name = delta.model_name or ""

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    def _fail(self, ctx: GenerationContext, error: GenerationError) -> GenerationResult:
        if isinstance(error, UserCancelled):
            state = GenerationState.CANCELLED
            logger.info("Generation stopped in session %s: %s", self._session_id, error)
        else:
            state = GenerationState.FAILED
            logger.error("Failed to generate message in session %s: %s", self._session_id, error)
        self._state = state
        reverted = self._rollback(ctx)
        self._emit(Notice.from_error(error))
        return GenerationResult(state=state, turn=reverted, error=error)

    def _rollback(self, ctx: GenerationContext) -> Turn | None:
        """Undo the attempt. Returns the reverted Turn for a regeneration."""
        turn = ctx.turn
        if turn is None:
            return None
        try:
            if ctx.is_regeneration:
                # the attempt's option was never written; re-read the last saved state
                return self._store("reload message", self._storage.get_turn, turn.id)
            if ctx.placeholder_persisted:
                self._store("delete failed message", self._storage.delete_turn,
                            self._session_id, turn.id)
        except PersistenceError as e:
            logger.error("Rollback incomplete in session %s: %s", self._session_id, e)
            self._emit(Notice.from_error(e))
        return None

    def _release(self, ctx: GenerationContext) -> None:
        ctx.streaming_turn_id = None
        ctx.agent_name = ""
        ctx.model_name = ""
        if self._context is ctx:
            self._context = None
        if self._on_refresh is not None:
            self._on_refresh(self._session_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _store(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return fn(*args)
        except _STORE_ERRORS as e:
            raise PersistenceError(operation, e) from e

    def _emit(self, notice: Notice) -> None:
        if self._notify is not None:
            self._notify(notice)
