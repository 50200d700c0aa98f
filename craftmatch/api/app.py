"""
FastAPI application factory.

Creates the app with lifespan-managed singletons (persistence gateway and
seeker matching agent) so the store connection is checked and the policy
is restored once at startup and shared across requests.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from craftmatch.api.middleware import LatencyMiddleware
from craftmatch.api.routes import router
from craftmatch.config import get_logger

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")]

logger = get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Initialize shared resources at startup."""
    logger.info("Starting Craftmatch API...")

    from craftmatch.adapters.gateway import PersistenceGateway
    from craftmatch.services.matching import SeekerMatchingAgent

    # Gateway never raises: an unreachable store means degraded mode
    if app.state.use_store:
        app.state.gateway = PersistenceGateway.from_config()
    else:
        app.state.gateway = PersistenceGateway(durable=None)
    logger.info("Persistence gateway ready (%s)", app.state.gateway.state.value)

    app.state.agent = SeekerMatchingAgent(gateway=app.state.gateway)
    app.state.agent.initialize_from_store()

    logger.info("Craftmatch API ready")
    yield
    logger.info("Craftmatch API shutting down")


def create_app(use_store: bool = True) -> FastAPI:
    """Application factory.

    Args:
        use_store: Connect to the configured durable store. False runs
            entirely in process memory.
    """
    app = FastAPI(
        title="Craftmatch",
        description="Seeker/provider matching with online policy learning",
        version="0.1.0",
        lifespan=_lifespan,
    )
    app.add_middleware(LatencyMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.state.use_store = use_store
    app.include_router(router)
    return app
