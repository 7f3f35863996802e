"""Helpers shared by the route modules."""

from typing import Any

from fastapi import Request

from tavern_play.hub import GenerationHub
from tavern_play.orchestrator import GenerationResult, Notice


def get_hub(request: Request) -> GenerationHub:
    return request.app.state.hub


def result_payload(result: GenerationResult) -> dict[str, Any]:
    return {
        "state": result.state.value,
        "turn": result.turn.model_dump() if result.turn else None,
        "notice": Notice.from_error(result.error).model_dump() if result.error else None,
    }
