"""
vixrelay - Stremio addon backend

Resolves movies, series, anime episodes and live TV channels into stream
lists from several upstream providers.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import unquote

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from vixrelay.config import get_settings
from vixrelay.dependencies import limiter
from vixrelay.routers import stremio
from vixrelay.state import AppState

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(app_state: Optional[AppState] = None, start_scheduler: bool = True) -> FastAPI:
    """Build the FastAPI application around a service container."""
    settings = get_settings()
    app_state = app_state or AppState.build(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown events."""
        logger.info("Starting vixrelay...")

        link_cache = app_state.link_cache
        await link_cache.bootstrap()
        if start_scheduler:
            await link_cache.start()

        yield

        logger.info("Shutting down vixrelay...")
        await link_cache.stop()

    app = FastAPI(
        title=app_state.manifest.get("name", settings.app_name),
        version=settings.app_version,
        description="Stremio addon for movies, series, anime and live TV",
        lifespan=lifespan
    )
    app.state.app_state = app_state

    # Add rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def merge_config_segment(request: Request, call_next):
        """Decode the leading path segment, if it carries configuration, into the shared store."""
        # raw_path keeps percent-encoding, so an encoded segment stays one segment
        raw_path = request.scope.get("raw_path") or request.url.path.encode()
        parts = raw_path.decode("latin-1").split("/")
        segment = parts[1] if len(parts) > 1 else ""
        partial = app_state.decoder.decode_segment(segment)
        if partial:
            logger.info(f"Found config in URL, updating keys: {sorted(partial)}")
            app_state.config_store.merge(partial)
            # decoded JSON may contain "/", so route on the remainder only
            rest = "/" + "/".join(parts[2:])
            request.scope["raw_path"] = rest.encode("latin-1")
            request.scope["path"] = unquote(rest)
        return await call_next(request)

    @app.get("/")
    async def landing():
        """Addon landing information."""
        manifest = app_state.manifest
        return {
            "name": manifest.get("name"),
            "version": manifest.get("version"),
            "description": manifest.get("description"),
            "manifest": "/manifest.json",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "channels": len(app_state.registry),
            "link_cache": app_state.link_cache.get_stats(),
        }

    # Include routers (root first, then under the config segment)
    app.include_router(stremio.router)
    app.include_router(stremio.router, prefix="/{config}")

    # Error handlers
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "vixrelay.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
