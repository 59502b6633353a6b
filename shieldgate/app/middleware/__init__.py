"""Middleware package for ShieldGate."""

from shieldgate.app.middleware.client_key import get_client_key
from shieldgate.app.middleware.rate_limit import RateLimitMiddleware
from shieldgate.app.middleware.shield import ShieldMiddleware

__all__ = [
    "get_client_key",
    "RateLimitMiddleware",
    "ShieldMiddleware",
]
