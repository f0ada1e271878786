"""
FairFlip Main Application Entry Point
FastAPI service for provably fair head-to-head coin flips.
"""

import sys
from pathlib import Path

# Add parent directory to path so imports work when running directly
if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).parent.parent))

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import uvicorn

from fairflip.core.logger import init_logging, get_logger
from fairflip.config import settings
from fairflip.core.engine import engine
from fairflip.core.scheduler import housekeeping_scheduler
from fairflip.routers import api
from fairflip.routers.auth import router as auth_router

init_logging(
    level=settings.logging.level,
    log_to_file=settings.logging.log_to_file,
    formatter=settings.logging.formatter,
    log_file_path=settings.logging.get_log_path(),
)
logger = get_logger("main")


# ==================== Security Headers Middleware ====================


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )
        response.headers["Cache-Control"] = "no-store"

        return response


# ==================== Application Setup ====================


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    # A broken hash primitive is a configuration error; refuse to start.
    engine.self_check()

    app = FastAPI(
        title=settings.server.name,
        docs_url="/docs" if settings.server.debug else None,
        redoc_url=None,
        default_response_class=ORJSONResponse,
    )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(api.router, prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.on_event("startup")
    def startup_event():
        housekeeping_scheduler.start()

    @app.on_event("shutdown")
    def shutdown_event():
        housekeeping_scheduler.shutdown()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unhandled exceptions gracefully."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.server.debug else None,
            },
        )

    return app


app = create_app()

logger.info(f"Application '{settings.server.name}' initialized")
logger.info(f"Debug mode: {settings.server.debug}")


# ==================== Main Entry Point ====================

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="FairFlip Server")
    parser.add_argument(
        "--reveal-delay",
        type=float,
        default=None,
        help="Seconds to hold a flip response before returning it (presentation only)",
    )
    args = parser.parse_args()

    if args.reveal_delay is not None:
        settings.fairness.reveal_delay_seconds = args.reveal_delay
        logger.info(f"Reveal delay set to {args.reveal_delay}s")

    logger.info(f"Starting server on {settings.server.host}:{settings.server.port}")
    uvicorn.run(
        "fairflip.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.debug,
    )
