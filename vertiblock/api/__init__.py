"""API package exports."""

from vertiblock.api.auth import router as auth_router
from vertiblock.api.middleware import CorrelationIdMiddleware
from vertiblock.api.routes import router

__all__ = ["auth_router", "router", "CorrelationIdMiddleware"]
