"""Character card and flow endpoints."""

from fastapi import APIRouter, HTTPException, Request

from tavern_play.models import Card, Flow
from tavern_play.storage import NotFoundError

from .common import get_hub
from .models import CreateCard

router = APIRouter()


@router.get("/cards")
async def list_cards(request: Request):
    """List all character cards."""
    return [c.model_dump() for c in get_hub(request).storage.get_cards()]


@router.post("/cards", status_code=201)
async def create_card(request: Request, body: CreateCard):
    """Create a character card."""
    card = Card(name=body.name, description=body.description)
    get_hub(request).storage.save_card(card)
    return card.model_dump()


@router.post("/flows", status_code=201)
async def save_flow(request: Request, flow: Flow):
    """Create or replace a flow definition."""
    get_hub(request).storage.save_flow(flow)
    return flow.model_dump()


@router.get("/flows/{flow_id}")
async def get_flow(request: Request, flow_id: str):
    """Get a single flow."""
    try:
        return get_hub(request).storage.get_flow(flow_id).model_dump()
    except NotFoundError:
        raise HTTPException(404, "Flow not found")
