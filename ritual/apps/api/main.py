"""FastAPI application entrypoint for Ritual."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from ritual.libs.logging_utils import configure_logging

configure_logging()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette_exporter import PrometheusMiddleware, handle_metrics

from ritual.apps.api.routes.cycles import router as cycles_router
from ritual.apps.api.routes.internal import router as internal_router
from ritual.libs.schemas.db import close_async_pool
from ritual.libs.schemas.settings import get_settings


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await close_async_pool()


app = FastAPI(title="Ritual API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "https://ritual.app",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(PrometheusMiddleware, app_name="ritual")
app.add_route("/metrics", handle_metrics)

app.include_router(cycles_router)
app.include_router(internal_router)


@app.get("/health")
async def health() -> dict[str, str]:
    settings = get_settings()
    return {"status": "ok", "app": settings.app_name, "environment": settings.environment}
