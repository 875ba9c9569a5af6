"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) to
keep startup testable.
"""

from __future__ import annotations

from fastapi import FastAPI

from bruteguard.api.routes import auth_router, health_router
from bruteguard.core.config import settings
from bruteguard.core.exception_handlers import setup_exception_handlers
from bruteguard.core.logging import configure_logging
from bruteguard.core.middleware import request_context_middleware


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="BruteGuard",
        description=(
            "Login API protected by escalating-delay brute-force guards. "
            "Rejected attempts receive 429 with a Retry-After header."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    app.middleware("http")(request_context_middleware)
    setup_exception_handlers(app)

    app.include_router(auth_router, prefix="/v1")
    app.include_router(health_router)

    return app
