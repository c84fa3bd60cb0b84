"""co11y FastAPI backend: main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from co11y import config
from co11y.live.hub import BroadcastHub
from co11y.observability import initialize as initialize_observability, shutdown as shutdown_observability
from co11y.routers.api import sessions_router, subagents_router
from co11y.routers.events import events_router
from co11y.routers.hooks import hooks_router
from co11y.routers.projects import projects_router
from co11y.routers.stats import stats_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("co11y")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("co11y backend starting up")
    initialize_observability(app)

    hub = BroadcastHub(
        config.PROJECTS_DIR,
        event_capacity=config.EVENT_BUFFER_SIZE,
        refresh_interval=config.SESSION_REFRESH_SECONDS,
        heartbeat_interval=config.HEARTBEAT_SECONDS,
        debounce_ms=config.WATCH_DEBOUNCE_MS,
        client_queue_size=config.CLIENT_QUEUE_SIZE,
        watch=config.WATCHER_ENABLED,
    )
    app.state.hub = hub
    app.state.projects_dir = config.PROJECTS_DIR
    app.state.stats_file = config.STATS_CACHE_FILE
    logger.info(f"Watching Claude projects in {config.PROJECTS_DIR}")
    await hub.start()

    yield

    logger.info("co11y backend shutting down")
    await hub.stop()
    shutdown_observability(app)


app = FastAPI(
    title="co11y API",
    description="Live observability backend for Claude Code sessions",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow the Vite dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(sessions_router)
app.include_router(subagents_router)
app.include_router(projects_router)
app.include_router(hooks_router)
app.include_router(events_router)
app.include_router(stats_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    hub = getattr(app.state, "hub", None)
    return {
        "status": "ok",
        "watcher": "running" if hub and hub.watcher_running else "stopped",
        "clients": hub.client_count if hub else 0,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("co11y.main:app", host=config.HOST, port=config.PORT)
