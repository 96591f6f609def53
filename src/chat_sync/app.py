from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_sync.api.middleware.correlation_id import CorrelationIdMiddleware
from chat_sync.api.v1.routers import conversations, health, ws
from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from chat_sync.config import settings
from chat_sync.infrastructure.bus.redis_pubsub import RedisChannelProvider
from chat_sync.infrastructure.http.chat_api import HttpChatApi
from chat_sync.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")

    http = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    app.state.http = http

    provider = RedisChannelProvider(app.state.redis)
    await provider.start()
    app.state.channel_provider = provider

    def _api_for(principal: Principal) -> HttpChatApi:
        return HttpChatApi(http, settings.API_BASE_URL, principal.token)

    app.state.registry = SessionRegistry(_api_for, provider)

    yield

    app.state.registry.close_all()
    await provider.stop()
    await http.aclose()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Chat Sync Bridge",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(conversations.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(ConflictError)
    async def _conflict(_req: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    @app.exception_handler(TransportError)
    async def _upstream(_req: Request, exc: TransportError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": exc.detail})
