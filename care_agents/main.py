"""FastAPI entry-point exposing the agent console."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from care_agents.api.routes import router as agents_router
from care_agents.config import Config, configure_logging
from care_agents.orchestration.agent_queue import AgentQueue
from care_agents.runtime import build_agent_queue


def create_app(agent_queue: Optional[AgentQueue] = None, config: Optional[Config] = None) -> FastAPI:
    config = config or Config.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle manager for FastAPI application."""
        configure_logging(config.log_level)
        queue = agent_queue or build_agent_queue(config)
        app.state.agent_queue = queue
        await queue.start()
        yield
        # Shutdown: fail anything still queued
        await queue.stop()

    app = FastAPI(title="WriteCareNotes Agent Console", lifespan=lifespan)
    app.include_router(agents_router)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
