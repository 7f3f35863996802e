"""Health check, settings and connection check endpoints."""

import httpx
from fastapi import APIRouter, Request

from tavern_play.config import get_config, update_config

from .common import get_hub
from .models import CheckConnectionBody

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.post("/check-connection")
async def check_connection(body: CheckConnectionBody):
    """Quick health check against an LLM provider URL."""
    url = f"{body.provider_url.rstrip('/')}/api/v1/model"
    headers: dict[str, str] = {}
    if body.api_key:
        headers["Authorization"] = f"Bearer {body.api_key}"
    try:
        async with httpx.AsyncClient(timeout=5) as client:
            resp = await client.get(url, headers=headers)
            resp.raise_for_status()
    except httpx.HTTPError:
        return {"ok": False}
    return {"ok": True}


@router.get("/settings")
async def get_settings(request: Request):
    """Get LLM connections and agent routing."""
    return get_config(get_hub(request).storage.base_path)


@router.patch("/settings")
async def update_settings(request: Request, body: dict):
    """Update settings (partial merge)."""
    return update_config(get_hub(request).storage.base_path, body)
