import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from textstream.config import settings
from textstream.database import init_db
from textstream.providers.registry import provider_registry
from textstream.routes import chat, health, streams
from textstream.services.errors import StorageError
from textstream.services.streams import stream_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle events"""
    # Initialize database
    await init_db()

    # Streams left streaming by a previous process can never finish
    try:
        expired = await stream_service.expire_stale()
        if expired:
            logger.info(f"Timed out {expired} orphaned stream(s)")
    except StorageError as e:
        logger.error(f"Stale stream cleanup failed: {e.message}")

    # Startup: Initialize LLM provider from settings
    provider_registry.initialize(settings)

    yield

    # Shutdown: let running drives finish, then release provider clients
    await stream_service.shutdown()
    await provider_registry.cleanup()


app = FastAPI(
    title="Persistent Text Streaming API",
    description="Token-level live streaming with durable chunked persistence",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(streams.router, prefix="/api", tags=["streams"])
app.include_router(chat.router, prefix="/api", tags=["chat"])
