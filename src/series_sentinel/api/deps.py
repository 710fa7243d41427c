"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse

from series_sentinel.core.config import SentinelConfig
from series_sentinel.ingestion.collector import Collector
from series_sentinel.ingestion.reader import SeriesReader
from series_sentinel.ingestion.store import SqliteStore
from series_sentinel.scheduler.scheduler import Scheduler
from series_sentinel.sources.registry import SourceRegistry


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: SentinelConfig
    store: SqliteStore
    registry: SourceRegistry
    collector: Collector
    scheduler: Scheduler
    reader: SeriesReader


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_config(request: Request) -> SentinelConfig:
    return request.app.state.app_state.config


def get_store(request: Request) -> SqliteStore:
    return request.app.state.app_state.store


def get_collector(request: Request) -> Collector:
    return request.app.state.app_state.collector


def get_scheduler(request: Request) -> Scheduler:
    return request.app.state.app_state.scheduler


def get_reader(request: Request) -> SeriesReader:
    return request.app.state.app_state.reader


def get_registry(request: Request) -> SourceRegistry:
    return request.app.state.app_state.registry


EXEMPT_PATHS = {"/api/health"}


async def api_key_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware: validate X-API-Key header when authentication is enabled."""
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    config = request.app.state.app_state.config
    if config.api.api_key:
        api_key = request.headers.get("X-API-Key")
        if api_key != config.api.api_key:
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "detail": "Invalid or missing API key"},
            )
    return await call_next(request)
