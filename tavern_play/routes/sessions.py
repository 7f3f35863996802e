"""Session endpoints: turns, messages, generation, stop and auto-reply."""

from fastapi import APIRouter, HTTPException, Request

from tavern_play.auto_reply import send_message, toggle_auto_reply
from tavern_play.errors import GenerationInProgress
from tavern_play.messages import add_scenario_message, delete_message
from tavern_play.storage import NotFoundError

from .common import get_hub, result_payload
from .models import ChatBody, CreateSession, GenerateBody, ScenarioBody

router = APIRouter()


@router.get("/sessions")
async def list_sessions(request: Request):
    """List all sessions."""
    return [s.model_dump() for s in get_hub(request).storage.list_sessions()]


@router.post("/sessions", status_code=201)
async def create_session(request: Request, body: CreateSession):
    """Create a session with its roster, flow and auto-reply policy."""
    storage = get_hub(request).storage
    session = storage.create_session(
        body.title,
        flow_id=body.flow_id,
        ai_character_card_ids=body.ai_character_card_ids,
        user_character_card_id=body.user_character_card_id,
    )
    session.auto_reply = body.auto_reply
    storage.save_session(session)
    return session.model_dump()


@router.get("/sessions/{session_id}")
async def get_session(request: Request, session_id: str):
    """Get a single session."""
    try:
        return get_hub(request).storage.get_session(session_id).model_dump()
    except NotFoundError:
        raise HTTPException(404, "Session not found")


@router.get("/sessions/{session_id}/turns")
async def get_turns(request: Request, session_id: str):
    """Get the session's turns in conversation order."""
    try:
        turns = get_hub(request).storage.get_turns(session_id)
    except NotFoundError:
        raise HTTPException(404, "Session not found")
    return [t.model_dump() for t in turns]


@router.post("/sessions/{session_id}/messages")
async def post_message(request: Request, session_id: str, body: ChatBody):
    """Add a user message and run the session's auto-reply policy."""
    hub = get_hub(request)
    try:
        orch = hub.orchestrator(session_id)
    except NotFoundError:
        raise HTTPException(404, "Session not found")
    if orch.is_generating:
        raise HTTPException(409, "A reply is already being generated")

    try:
        turn, results = await send_message(
            hub.storage, orch, session_id, body.content,
            notify=lambda notice: hub.push_notice(session_id, notice),
        )
    except GenerationInProgress as e:
        raise HTTPException(409, str(e))
    return {
        "turn": turn.model_dump(),
        "replies": [result_payload(r) for r in results],
    }


@router.post("/sessions/{session_id}/scenario")
async def post_scenario(request: Request, session_id: str, body: ScenarioBody):
    """Append a scenario message that belongs to no character."""
    try:
        turn = add_scenario_message(get_hub(request).storage, session_id, body.text)
    except NotFoundError:
        raise HTTPException(404, "Session not found")
    return turn.model_dump()


@router.post("/sessions/{session_id}/generate")
async def generate(request: Request, session_id: str, body: GenerateBody):
    """Generate a new reply, or a new variant of an existing turn."""
    hub = get_hub(request)
    try:
        orch = hub.orchestrator(session_id)
    except NotFoundError:
        raise HTTPException(404, "Session not found")

    character_id = body.character_id
    if character_id is None and body.regenerate_turn_id:
        try:
            character_id = hub.storage.get_turn(body.regenerate_turn_id).character_card_id
        except NotFoundError:
            raise HTTPException(404, "Turn not found")
    if not character_id:
        raise HTTPException(400, "character_id is required")

    try:
        result = await orch.generate(
            character_id,
            regenerate_turn_id=body.regenerate_turn_id,
            trigger_type=body.trigger_type,
        )
    except GenerationInProgress as e:
        raise HTTPException(409, str(e))
    return result_payload(result)


@router.post("/sessions/{session_id}/stop")
async def stop(request: Request, session_id: str):
    """Stop the session's active generation, if any."""
    try:
        orch = get_hub(request).orchestrator(session_id)
    except NotFoundError:
        raise HTTPException(404, "Session not found")
    return {"stopped": orch.stop_generate()}


@router.get("/sessions/{session_id}/generation")
async def generation_state(request: Request, session_id: str):
    """Observable generation state, refresh revision and recent notices."""
    hub = get_hub(request)
    try:
        orch = hub.orchestrator(session_id)
    except NotFoundError:
        raise HTTPException(404, "Session not found")
    return {
        **orch.snapshot(),
        "revision": hub.revision(session_id),
        "notices": [n.model_dump() for n in hub.notices(session_id)],
    }


@router.post("/sessions/{session_id}/auto-reply")
async def cycle_auto_reply(request: Request, session_id: str):
    """Advance the auto-reply policy (off → random → rotate → off)."""
    try:
        session = toggle_auto_reply(get_hub(request).storage, session_id)
    except NotFoundError:
        raise HTTPException(404, "Session not found")
    return {"auto_reply": session.auto_reply.value}


@router.delete("/sessions/{session_id}/turns/{turn_id}")
async def delete_turn(request: Request, session_id: str, turn_id: str):
    """Delete a message and any assets its options reference."""
    hub = get_hub(request)
    try:
        orch = hub.orchestrator(session_id)
    except NotFoundError:
        raise HTTPException(404, "Session not found")
    if orch.streaming_turn_id == turn_id:
        raise HTTPException(409, "Turn is being generated")
    try:
        session = delete_message(hub.storage, session_id, turn_id)
    except NotFoundError:
        raise HTTPException(404, "Turn not found")
    return session.model_dump()
