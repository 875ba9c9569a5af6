from __future__ import annotations

from bruteguard.api.routes.auth import router as auth_router
from bruteguard.api.routes.health import router as health_router

__all__ = ["auth_router", "health_router"]
