"""Core domain models.

Every orchestrator step and storage function operates on these types.
Pydantic is used for validation and serialisation at every data boundary.

A Session holds the ordered ids of its Turns. A Turn is one message slot and
holds one or more Options (generated variants); the selected Option is what
the conversation shows. Each Option carries its own DataStore, the
session-scoped key/value state that is inherited turn to turn.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

DataStoreFieldType = Literal["string", "number", "integer", "boolean"]


def new_id() -> str:
    return uuid4().hex


class DataStoreField(BaseModel):
    """One named, typed session-state value. `value` is always string-encoded."""

    name: str
    type: DataStoreFieldType = "string"
    value: str = ""


class Option(BaseModel):
    """One generated candidate for a Turn."""

    id: str = Field(default_factory=new_id)
    content: str = ""
    token_size: int = 0
    data_store: list[DataStoreField] = Field(default_factory=list)
    translations: dict[str, str] = Field(default_factory=dict)
    asset_id: str | None = None
    variables: dict[str, Any] = Field(default_factory=dict)


class Turn(BaseModel):
    """A message slot in a session. Absent character_card_id means a user or
    scenario message."""

    id: str = Field(default_factory=new_id)
    session_id: str
    character_card_id: str | None = None
    character_name: str | None = None
    options: list[Option]
    selected_option_index: int = 0

    @model_validator(mode="after")
    def _check_selection(self) -> Turn:
        if not self.options:
            raise ValueError("a turn must hold at least one option")
        if not 0 <= self.selected_option_index < len(self.options):
            raise ValueError(
                f"selected_option_index {self.selected_option_index} out of range "
                f"for {len(self.options)} options"
            )
        return self

    # ------------------------------------------------------------------
    # Selected option accessors
    # ------------------------------------------------------------------

    @property
    def selected_option(self) -> Option:
        return self.options[self.selected_option_index]

    @property
    def content(self) -> str:
        return self.selected_option.content

    @property
    def variables(self) -> dict[str, Any]:
        return self.selected_option.variables

    @property
    def data_store(self) -> list[DataStoreField]:
        return self.selected_option.data_store

    def set_content(self, content: str) -> None:
        self.selected_option.content = content

    def set_variables(self, variables: dict[str, Any]) -> None:
        self.selected_option.variables = variables

    def set_data_store(self, fields: list[DataStoreField]) -> None:
        self.selected_option.data_store = fields

    def set_translation(self, language: str, text: str) -> None:
        self.selected_option.translations[language] = text

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def add_option(self, option: Option) -> None:
        """Append a variant and select it. Earlier variants stay navigable."""
        self.options.append(option)
        self.selected_option_index = len(self.options) - 1

    def prev_option(self) -> None:
        self.selected_option_index = max(self.selected_option_index - 1, 0)

    def next_option(self) -> None:
        self.selected_option_index = min(
            self.selected_option_index + 1, len(self.options) - 1
        )

    def asset_ids(self) -> list[str]:
        return [o.asset_id for o in self.options if o.asset_id]


class AutoReply(str, Enum):
    """Which AI characters answer automatically after a user message."""

    OFF = "off"
    RANDOM = "random"
    ROTATE = "rotate"


class Session(BaseModel):
    """A conversation: ordered turn ids, roster, policy and flow reference."""

    id: str = Field(default_factory=new_id)
    title: str = ""
    turn_ids: list[str] = Field(default_factory=list)
    auto_reply: AutoReply = AutoReply.OFF
    ai_character_card_ids: list[str] = Field(default_factory=list)
    user_character_card_id: str | None = None
    flow_id: str | None = None


class Card(BaseModel):
    """A character card. Only the display name matters to generation."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""


# ---------------------------------------------------------------------------
# Flows (consumed by the reference executor in tavern_play.flow)
# ---------------------------------------------------------------------------

class FlowAgent(BaseModel):
    """One LLM step. Its output lands in variables[key]."""

    key: str
    name: str = ""
    prompt: str
    connection: str = ""
    structured: bool = False


class DataStoreSchemaField(BaseModel):
    name: str
    type: DataStoreFieldType = "string"
    initial_value: str = ""


class DataStoreUpdate(BaseModel):
    """Handlebars logic rendered after the agents ran; result goes to `field`."""

    field: str
    logic: str


class Flow(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = ""
    response_template: str = ""
    agents: list[FlowAgent] = Field(default_factory=list)
    data_store_schema: list[DataStoreSchemaField] = Field(default_factory=list)
    data_store_updates: list[DataStoreUpdate] = Field(default_factory=list)


class FlowDelta(BaseModel):
    """One streamed generation result. Every field is a full replacement."""

    content: str = ""
    variables: dict[str, Any] = Field(default_factory=dict)
    data_store: list[DataStoreField] | None = None
    agent_name: str | None = None
    model_name: str | None = None
    metadata: dict[str, Any] | None = None
    translations: list[tuple[str, str]] = Field(default_factory=list)
