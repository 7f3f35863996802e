"""Pydantic request bodies for API endpoints."""

from pydantic import BaseModel, Field

from tavern_play.models import AutoReply


class CreateCard(BaseModel):
    name: str
    description: str = ""


class CreateSession(BaseModel):
    title: str = ""
    flow_id: str | None = None
    ai_character_card_ids: list[str] = Field(default_factory=list)
    user_character_card_id: str | None = None
    auto_reply: AutoReply = AutoReply.OFF


class ChatBody(BaseModel):
    content: str


class ScenarioBody(BaseModel):
    text: str


class GenerateBody(BaseModel):
    character_id: str | None = None
    regenerate_turn_id: str | None = None
    trigger_type: str | None = None


class EditMessage(BaseModel):
    content: str


class SelectOption(BaseModel):
    index: int


class CheckConnectionBody(BaseModel):
    provider_url: str
    api_key: str = ""
