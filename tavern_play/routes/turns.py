"""Turn endpoints: read, edit and option navigation.

A turn that is being generated belongs to its attempt until the attempt
ends; writes to it are refused with 409.
"""

from fastapi import APIRouter, HTTPException, Request

from tavern_play.hub import GenerationHub
from tavern_play.messages import edit_message
from tavern_play.navigation import next_option, prev_option, select_option
from tavern_play.storage import NotFoundError

from .common import get_hub
from .models import EditMessage, SelectOption

router = APIRouter()


def _writable_hub(request: Request, turn_id: str) -> GenerationHub:
    hub = get_hub(request)
    if hub.streaming_orchestrator(turn_id) is not None:
        raise HTTPException(409, "Turn is being generated")
    return hub


@router.get("/turns/{turn_id}")
async def get_turn(request: Request, turn_id: str):
    """Get a single turn with all its options."""
    try:
        return get_hub(request).storage.get_turn(turn_id).model_dump()
    except NotFoundError:
        raise HTTPException(404, "Turn not found")


@router.patch("/turns/{turn_id}")
async def edit_turn(request: Request, turn_id: str, body: EditMessage):
    """Overwrite the selected option's text."""
    hub = _writable_hub(request, turn_id)
    try:
        return edit_message(hub.storage, turn_id, body.content).model_dump()
    except NotFoundError:
        raise HTTPException(404, "Turn not found")


@router.post("/turns/{turn_id}/prev")
async def turn_prev_option(request: Request, turn_id: str):
    """Select the previous option (clamped at the first)."""
    hub = _writable_hub(request, turn_id)
    try:
        return prev_option(hub.storage, turn_id).model_dump()
    except NotFoundError:
        raise HTTPException(404, "Turn not found")


@router.post("/turns/{turn_id}/next")
async def turn_next_option(request: Request, turn_id: str):
    """Select the next option (clamped at the last)."""
    hub = _writable_hub(request, turn_id)
    try:
        return next_option(hub.storage, turn_id).model_dump()
    except NotFoundError:
        raise HTTPException(404, "Turn not found")


@router.post("/turns/{turn_id}/select")
async def turn_select_option(request: Request, turn_id: str, body: SelectOption):
    """Select an option by index."""
    hub = _writable_hub(request, turn_id)
    try:
        return select_option(hub.storage, turn_id, body.index).model_dump()
    except NotFoundError:
        raise HTTPException(404, "Turn not found")
    except ValueError as e:
        raise HTTPException(400, str(e))
