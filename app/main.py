from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.pipeline import build_default_pipeline
from storage.sources import build_default_fetcher


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    build_default_pipeline()
    try:
        yield
    finally:
        build_default_pipeline.cache_clear()
        build_default_fetcher.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Network Quality Consensus",
        description="Verified, consensus-backed statistics over crowdsourced network measurements.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
