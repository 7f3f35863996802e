"""Generation failure taxonomy.

Every way a generation attempt can end badly maps to one subclass of
GenerationError. The orchestrator catches them at its boundary, logs them and
turns them into a user-facing Notice; none of them escape generate().

    UserCancelled              the stop token fired (informational)
    MalformedStructuredOutput  the flow returned a schema, not data
    EmptyStructuredOutput      structured output with no usable content
    EmptyGeneration            no content and no variables at all
    ExecutorError              anything else the flow executor raised
    PersistenceError           a save or delete call failed

GenerationInProgress is the one exception generate() does raise: it means a
second attempt was requested while the session already had one running.
"""

from __future__ import annotations

from typing import Any, Literal

NoticeLevel = Literal["info", "error"]


class GenerationError(RuntimeError):
    """Base class for a failed or cancelled generation attempt."""

    level: NoticeLevel = "error"
    title = "Failed to generate message"

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.metadata = metadata

    def details(self) -> dict[str, Any]:
        details: dict[str, Any] = {
            "name": type(self).__name__,
            "message": str(self),
        }
        if self.metadata:
            details["metadata"] = self.metadata
        return details


class UserCancelled(GenerationError):
    level = "info"
    title = "Generation stopped."

    def __init__(self, reason: str = "Stop generate by user") -> None:
        super().__init__(reason)


class MalformedStructuredOutput(GenerationError):
    def __init__(self, agent_key: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(
            "Malformed structured output: AI returned schema definition instead of data",
            metadata,
        )
        self.agent_key = agent_key

    def details(self) -> dict[str, Any]:
        details = super().details()
        details["agent"] = self.agent_key
        return details


class EmptyStructuredOutput(GenerationError):
    def __init__(self, metadata: dict[str, Any] | None = None) -> None:
        super().__init__("AI returned empty or invalid structured output", metadata)


class EmptyGeneration(GenerationError):
    def __init__(self, metadata: dict[str, Any] | None = None) -> None:
        super().__init__("AI returned an empty message.", metadata)


class ExecutorError(GenerationError):
    """Wraps any other exception raised while preparing or running a flow."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    def details(self) -> dict[str, Any]:
        details = super().details()
        if self.cause is not None:
            details["cause"] = {
                "name": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return details


class PersistenceError(GenerationError):
    """A store call failed. In-memory state already applied is left as is."""

    def __init__(self, operation: str, cause: BaseException) -> None:
        super().__init__(f"Failed to {operation}: {cause}")
        self.operation = operation
        self.cause = cause


class GenerationInProgress(RuntimeError):
    """Raised when generate() is called while the session is already streaming."""

    def __init__(self, session_id: str, turn_id: str | None) -> None:
        super().__init__(
            f"Session {session_id} is already generating"
            + (f" turn {turn_id}" if turn_id else "")
        )
        self.session_id = session_id
        self.turn_id = turn_id
