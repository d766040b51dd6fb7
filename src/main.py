"""Kennelbook API: FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.breeding.config_loader import get_breeding_config
from src.config import Settings, get_settings
from src.middleware.supabase_auth import SupabaseAuthMiddleware
from src.routers import calendar, health, heat_cycles, pregnancies, reminders
from src.services.supabase import close_pool, init_pool

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("kennel")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = getattr(app.state, "settings", None) or get_settings()
    logger.info(
        "Starting %s v%s [%s]",
        settings.app_name,
        settings.app_version,
        settings.environment,
    )
    # Fail fast on a broken breeding_config.yaml
    get_breeding_config()
    await init_pool(settings)
    yield
    await close_pool()
    logger.info("%s shut down", settings.app_name)


# ---------- App factory ----------

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logger.setLevel(settings.log_level.upper())

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Kennel management backend: heat cycle tracking, breeding calendar, "
            "pregnancy timelines and care reminders."
        ),
        version=settings.app_version,
        debug=settings.debug,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ---------- Middleware (outermost added last) ----------

    # Supabase JWT authentication
    app.add_middleware(SupabaseAuthMiddleware, settings=settings)

    # CORS wraps auth so preflight requests are answered before token checks
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(heat_cycles.router, prefix=v1_prefix)
    app.include_router(calendar.router, prefix=v1_prefix)
    app.include_router(pregnancies.router, prefix=v1_prefix)
    app.include_router(reminders.router, prefix=v1_prefix)

    return app


app = create_app()
