"""Gatekeeper FastAPI service for the tracker's GitHub push webhook."""

import datetime
import os
from contextlib import asynccontextmanager
from pathlib import Path

import newrelic.agent

from src.utils.config import get_tracker_environment

# The agent must be initialized before FastAPI is imported to instrument it
if os.getenv("NEW_RELIC_LICENSE_KEY"):
    newrelic.agent.initialize(
        str(Path(__file__).with_name("newrelic.toml")), environment=get_tracker_environment()
    )

from fastapi import FastAPI, HTTPException, Request

from src.clients.supabase import SupabaseDB
from src.database.tracker_store import PostgresTrackerStore, TrackerStore
from src.ingest.gatekeeper.routes import router as webhook_router
from src.utils.config import get_gatekeeper_port
from src.utils.logging import get_logger, get_uvicorn_log_config

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the tracker store from config; close its pool on shutdown."""
    supabase_db: SupabaseDB | None = None
    tracker_store: TrackerStore | None = None
    try:
        supabase_db = SupabaseDB.from_config()
        tracker_store = PostgresTrackerStore(supabase_db)
    except ValueError as e:
        # Keep serving so the webhook can answer 500 and health can answer 503
        logger.error(f"Tracker store is not configured: {e}")

    app.state.supabase_db = supabase_db
    app.state.tracker_store = tracker_store

    logger.info("Gatekeeper ready", store_configured=tracker_store is not None)

    yield

    if supabase_db is not None:
        await supabase_db.close()
    logger.info("Gatekeeper stopped")


app = FastAPI(
    title="Tracker Gatekeeper",
    description="GitHub push webhook ingestion with per-project signature verification",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check(request: Request):
    """Readiness: 200 only when the tracker database answers."""
    tracker_store: TrackerStore | None = getattr(request.app.state, "tracker_store", None)
    if tracker_store is None:
        raise HTTPException(
            status_code=503,
            detail={"status": "unhealthy", "components": {"database": "not configured"}},
        )

    try:
        await tracker_store.health_check()
    except Exception as e:
        newrelic.agent.record_exception()
        logger.error(f"Health check failed: {e}")
        raise HTTPException(
            status_code=503,
            detail={"status": "unhealthy", "components": {"database": f"unhealthy: {e}"}},
        )

    return {"status": "healthy", "components": {"database": "healthy"}}


@app.get("/health/live")
async def liveness_check():
    return {"status": "alive", "timestamp": datetime.datetime.now().isoformat()}


app.include_router(webhook_router)


def main():
    import uvicorn

    uvicorn.run(
        "src.ingest.gatekeeper.main:app",
        host="0.0.0.0",
        port=get_gatekeeper_port(),
        log_config=get_uvicorn_log_config(),
    )


if __name__ == "__main__":
    main()
