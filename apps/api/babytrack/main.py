from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import AppConfig, CONFIG
from .context import AdaptiveTicker, ContextRegistry
from .routes import medicines as medicine_routes
from .routes import reminders as reminder_routes
from .routes import timers as timer_routes
from .store import DocumentStore, SqliteDocumentStore

logger = logging.getLogger(__name__)


def build_store(config: AppConfig) -> DocumentStore:
    if config.store_backend == "supabase":
        from .supabase import SupabaseDocumentStore

        return SupabaseDocumentStore()
    return SqliteDocumentStore(config.resolved_database_path)


def create_app(
    store: Optional[DocumentStore] = None,
    config: Optional[AppConfig] = None,
    *,
    clock: Optional[Callable[[], datetime]] = None,
    run_ticker: bool = True,
) -> FastAPI:
    config = config or CONFIG

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        ticker = AdaptiveTicker(app.state.registry, config)
        if run_ticker:
            ticker.start()
        try:
            yield
        finally:
            await ticker.stop()
            app.state.registry.close_all()

    app = FastAPI(
        title="BabyTrack API",
        version="0.1.0",
        description="Activity timers and medication reminders for infant care",
        lifespan=lifespan,
    )
    app.state.registry = ContextRegistry(store or build_store(config), config, clock=clock)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    app.include_router(timer_routes.router)
    app.include_router(medicine_routes.router)
    app.include_router(reminder_routes.router)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "store": config.store_backend}

    return app


app = create_app()
