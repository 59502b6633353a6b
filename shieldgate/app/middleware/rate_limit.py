"""Rate limiting middleware.

Each request consumes one unit from its client's bucket in the injected
``BucketStore``. Store failures are handled according to ``fail_closed``:
deny with 503, or let the request through unthrottled. Either way the
failure is logged.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from shieldgate.app.core.logging import get_log_context, get_logger
from shieldgate.app.exceptions import RateLimitExceededError
from shieldgate.app.middleware.client_key import get_client_key
from shieldgate.app.stores.base import BucketStore
from shieldgate.app.stores.models import ClientRateLimitInfo

logger = get_logger(__name__)

ANONYMOUS_KEY = "ip:unknown"


def rate_limit_headers(info: ClientRateLimitInfo) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(info.limit),
        "X-RateLimit-Remaining": str(info.remaining),
        "X-RateLimit-Reset": str(int(info.reset_time.timestamp())),
    }


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce per-client rate limits."""

    def __init__(
        self,
        app,
        store: BucketStore,
        include_headers: bool = True,
        fail_closed: bool = False,
        key_func: Optional[Callable[[Request], Optional[str]]] = None,
    ):
        super().__init__(app)
        self.store = store
        self.include_headers = include_headers
        self.fail_closed = fail_closed
        self.key_func = key_func or get_client_key

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        key = self.key_func(request) or ANONYMOUS_KEY

        try:
            info = await self.store.increment(key)
        except Exception:
            logger.exception(
                "Rate limit store failure",
                extra=get_log_context(client_key=key, path=request.url.path),
            )
            if self.fail_closed:
                return JSONResponse(
                    status_code=503,
                    content={"error": "rate_limit_unavailable"},
                )
            return await call_next(request)

        if not info.allowed:
            error = RateLimitExceededError(
                retry_after=info.retry_after_seconds(datetime.now(timezone.utc))
            )
            logger.warning(
                "rate_limit.exceeded",
                extra=get_log_context(client_key=key, path=request.url.path),
            )
            headers = rate_limit_headers(info) if self.include_headers else {}
            headers["Retry-After"] = str(error.retry_after)
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_response(),
                headers=headers,
            )

        response = await call_next(request)

        if self.include_headers:
            response.headers.update(rate_limit_headers(info))

        return response
