from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.runtime import build_default_runtime, shutdown_default_runtime


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    runtime = build_default_runtime()
    try:
        yield
    finally:
        shutdown_default_runtime(runtime)


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Microtemp",
        description="On-demand fleet polling and zone temperature control.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
