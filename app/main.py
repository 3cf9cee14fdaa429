"""FastAPI application entry point for the URL shortener service.

This module configures and initializes the FastAPI application with middleware,
lifecycle management, and route registration for the URL shortening service.

Application Lifecycle Diagram
===========================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ startup:    │
    │ init_db()   │
    │ manager.    │
    │ initialize()│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ shutdown:   │
    │ drain visit │
    │ writes      │
    │ close_db()  │
    └─────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn app.main:app --host 0.0.0.0 --port 3000

**Step 2 — Make API calls**::
    curl -X POST http://localhost:3000/api/shorten \
         -H "Content-Type: application/json" \
         -d '{"url": "https://example.com", "custom_code": "promo1"}'

    curl -i http://localhost:3000/promo1
    curl http://localhost:3000/api/stats/promo1

Key Behaviours
===============
- Database tables are created automatically on startup.
- Pending background visit writes are awaited before the engine is disposed.
- CORS is enabled for all origins (configure for production).
- Prometheus metrics are exposed at /metrics.

Configuration:
    The app uses environment variables for configuration.
    See app/config.py for all available settings.
"""

__all__ = ["app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from app.config import get_settings
from app.database import close_db, init_db
from app.dependencies import _service_manager
from app.routes import router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    await _service_manager.initialize()
    yield
    # Shutdown
    await _service_manager.cleanup()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="URL shortener with per-visit statistics",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

app.include_router(router)
