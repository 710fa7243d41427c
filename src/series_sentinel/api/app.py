"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from series_sentinel.api.deps import AppState, api_key_middleware
from series_sentinel.api.routes import router
from series_sentinel.core.config import SentinelConfig, load_config
from series_sentinel.core.exceptions import (
    ConfigError,
    ParsingError,
    RateLimitError,
    SchedulerError,
    SeriesSentinelError,
    SourceError,
    StorageError,
)
from series_sentinel.ingestion.collector import Collector
from series_sentinel.ingestion.reader import SeriesReader
from series_sentinel.ingestion.store import create_store
from series_sentinel.scheduler.notifier import SmtpNotifier
from series_sentinel.scheduler.pacing import PacingPolicy
from series_sentinel.scheduler.scheduler import Scheduler
from series_sentinel.sources.registry import create_registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle.

    The scheduler's trigger table is loaded here for status and manual
    triggers; the polling loop itself runs under ``series-sentinel schedule``.
    """
    config = app.state._pending_config or load_config()
    store = await create_store(config.storage)
    registry = create_registry(config)
    collector = Collector(store, registry, PacingPolicy.from_config(config.scheduler))
    scheduler = Scheduler(
        collector,
        store,
        config.scheduler,
        notify=config.notify,
        notifier=SmtpNotifier(config.notify) if config.notify.error_emails else None,
    )
    await scheduler.initialize()

    app.state.app_state = AppState(
        config=config,
        store=store,
        registry=registry,
        collector=collector,
        scheduler=scheduler,
        reader=SeriesReader(store),
    )

    yield

    await registry.close()
    await store.close()


def create_app(config: SentinelConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    import series_sentinel

    app = FastAPI(
        title="Series Sentinel API",
        description="Time-series ingestion from public data providers",
        version=series_sentinel.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Optional API key middleware
    if config and config.api.api_key:
        app.middleware("http")(api_key_middleware)

    app.include_router(router, prefix="/api")

    @app.exception_handler(SeriesSentinelError)
    async def sentinel_exception_handler(request: Request, exc: SeriesSentinelError):
        status_map = {
            ConfigError: 400,
            SchedulerError: 400,
            RateLimitError: 429,
            SourceError: 502,
            ParsingError: 502,
            StorageError: 500,
        }
        status = status_map.get(type(exc), 500)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
