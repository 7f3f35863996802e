"""FastAPI API endpoints under /api.

Endpoint groups: settings (health, config, connection check), cards and
flows, sessions (turns, messages, generation, auto-reply) and turns (edit,
option navigation). Routes reach storage and the per-session orchestrators
through the GenerationHub stored on app.state.
"""

from fastapi import APIRouter

from .cards import router as cards_router
from .sessions import router as sessions_router
from .settings import router as settings_router
from .turns import router as turns_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(cards_router)
router.include_router(sessions_router)
router.include_router(turns_router)
