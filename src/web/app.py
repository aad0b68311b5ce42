"""
FastAPI application factory for the stream relay.

Routes:
- /health -> process health
- /api/* -> detection REST API and room stats
- /ws -> relay channel (WebSocket)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from models.config import Config
from runtime.context import APP_VERSION, RuntimeContext, build_context

from .errors import install_error_handlers
from .routes import api, ws
from .services.config_service import ConfigService


def create_app(ctx: Optional[RuntimeContext] = None) -> FastAPI:
    """Create the FastAPI app and wire routes, error handlers and the runtime context."""
    if ctx is None:
        ctx = build_context(Config.from_dict(ConfigService.load_effective_config()))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        preload = ctx.config.detection.preload
        if preload:
            loaded = await ctx.engine.preload(preload)
            logging.info(f"Preloaded models: {', '.join(loaded) or 'none'}")
        yield
        await ctx.frames.drain()

    app = FastAPI(
        title="Stream Relay",
        version=APP_VERSION,
        description="WebRTC signaling and frame relay with object detection",
        lifespan=lifespan,
    )
    app.state.ctx = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ctx.config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app, production=ctx.config.server.is_production)

    app.include_router(api.router, prefix="/api")
    app.include_router(api.router_root)
    app.include_router(ws.router)

    return app
