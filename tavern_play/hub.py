"""GenerationHub: one Orchestrator per session for the HTTP layer.

Keeps the recent notices of each session and a revision counter that bumps
whenever an attempt ends, so clients polling /generation know to re-read
the session's turns.
"""

from __future__ import annotations

from collections import deque

from tavern_play.flow import FlowExecutor
from tavern_play.orchestrator import Notice, Orchestrator
from tavern_play.storage import Storage

MAX_NOTICES = 20


class GenerationHub:
    def __init__(self, storage: Storage, executor: FlowExecutor) -> None:
        self._storage = storage
        self._executor = executor
        self._orchestrators: dict[str, Orchestrator] = {}
        self._notices: dict[str, deque[Notice]] = {}
        self._revisions: dict[str, int] = {}

    @property
    def storage(self) -> Storage:
        return self._storage

    def orchestrator(self, session_id: str) -> Orchestrator:
        orch = self._orchestrators.get(session_id)
        if orch is None:
            self._storage.get_session(session_id)  # raises NotFoundError
            orch = Orchestrator(
                self._storage,
                self._executor,
                session_id,
                notify=lambda notice: self.push_notice(session_id, notice),
                on_refresh=self._bump,
            )
            self._orchestrators[session_id] = orch
        return orch

    def streaming_orchestrator(self, turn_id: str) -> Orchestrator | None:
        """The orchestrator whose active attempt owns `turn_id`, if any."""
        for orch in self._orchestrators.values():
            if orch.streaming_turn_id == turn_id:
                return orch
        return None

    def push_notice(self, session_id: str, notice: Notice) -> None:
        self._notices.setdefault(session_id, deque(maxlen=MAX_NOTICES)).append(notice)

    def notices(self, session_id: str) -> list[Notice]:
        return list(self._notices.get(session_id, ()))

    def revision(self, session_id: str) -> int:
        return self._revisions.get(session_id, 0)

    def _bump(self, session_id: str) -> None:
        self._revisions[session_id] = self._revisions.get(session_id, 0) + 1
