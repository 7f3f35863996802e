from pathlib import Path

from fastapi import FastAPI

from tavern_play.config import data_dir_from_env, load_env
from tavern_play.flow import FlowExecutor, LLMFlowExecutor, connection_llm_factory
from tavern_play.hub import GenerationHub
from tavern_play.routes import router
from tavern_play.storage import Storage

load_env()


def create_app(data_dir: Path | None = None, executor: FlowExecutor | None = None) -> FastAPI:
    resolved = data_dir or data_dir_from_env()
    storage = Storage(resolved)
    if executor is None:
        executor = LLMFlowExecutor(storage, connection_llm_factory(resolved))

    app = FastAPI(title="Tavern Play")
    app.state.hub = GenerationHub(storage, executor)
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
