"""FastAPI entry-point exposing agents, collaborations and workflows."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from devcrew.api.agents import router as agents_router
from devcrew.api.collaborations import router as collaborations_router
from devcrew.api.workflows import router as workflows_router
from devcrew.config import config
from devcrew.log import setup_logging
from devcrew.runtime import get_engine, get_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application."""
    setup_logging(config.log_level, config.log_file)
    registry = get_registry()
    agents = await registry.load_persisted()
    workflows = await get_engine().load_persisted()
    logger.info("Restored %d agents and %d workflows (%s)", len(agents), len(workflows), config.environment)
    yield
    # Persist per-agent context gathered while serving.
    for descriptor in list(registry.list_agents()):
        await registry.save(registry.require(descriptor.agent_id))


app = FastAPI(title="Devcrew Orchestrator", lifespan=lifespan)
app.include_router(agents_router)
app.include_router(collaborations_router)
app.include_router(workflows_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


def serve() -> None:
    uvicorn.run("devcrew.main:app", host="127.0.0.1", port=8000, reload=config.environment == "development")


if __name__ == "__main__":
    serve()
