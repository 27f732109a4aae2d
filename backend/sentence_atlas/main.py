"""Application bootstrap for the Sentence Atlas API.

This module wires the FastAPI application, attaches middleware, and exposes small lifecycle utilities.

Functions:
    lifespan(app: FastAPI): Create the shared RunService on startup and release its worker on shutdown.
    health_check(): Lightweight readiness probe used by monitoring and local smoke tests.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sentence_atlas import __version__
from sentence_atlas.api import api_router
from sentence_atlas.core.config import get_settings
from sentence_atlas.services.runs import RunService

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = getattr(app.state, "run_service", None)
    if service is None:
        service = RunService(settings=settings)
        app.state.run_service = service
    try:
        yield
    finally:
        service.close()
        app.state.run_service = None


app = FastAPI(title=settings.app_name, version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
