"""
tetobot.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn tetobot.api.main:app --port 3000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from tetobot.api.deps import get_config, get_economy, get_engine  # noqa: E402
from tetobot.api.routes.admin import router as admin_router  # noqa: E402
from tetobot.api.routes.bot import router as bot_router  # noqa: E402
from tetobot.api.routes.webhooks import router as webhooks_router  # noqa: E402
from tetobot.tasks import DailyResetScheduler, reset_time  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Allowed origins for the dashboard, from CORS_ALLOW_ORIGINS (comma-separated)."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine, start the reset loop."""
    engine = get_engine()
    cfg = get_config()
    app.state.scheduler = None

    if cfg.scheduler.enabled:
        scheduler = DailyResetScheduler(get_economy().daily_reset, reset_time(cfg.scheduler))
        scheduler.start()
        app.state.scheduler = scheduler

    logger.info("tetobot API started — engine ready (%s)", engine.url.database)
    yield
    if app.state.scheduler is not None:
        app.state.scheduler.stop()
    logger.info("tetobot API shutting down")


app = FastAPI(
    title="tetobot API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(bot_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
