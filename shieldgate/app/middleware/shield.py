"""Shield middleware: attack-signature detection with suspicion blocking."""

import json
from typing import Any, Callable, Mapping, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from shieldgate.app.core.logging import get_log_context, get_logger
from shieldgate.app.middleware.client_key import get_client_key
from shieldgate.app.services.shield.detector import merge_request_fields
from shieldgate.app.services.shield.service import Shield

logger = get_logger(__name__)


async def _read_body_fields(request: Request) -> Optional[Mapping[str, Any]]:
    """Top-level fields of a JSON object body; None for anything else."""
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith("application/json"):
        return None
    raw = await request.body()
    if not raw:
        return None
    try:
        body = json.loads(raw)
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


class ShieldMiddleware(BaseHTTPMiddleware):
    """Deny requests from blocked clients and from clients that keep sending
    attack payloads.

    The field view is built from query parameters, then the body, then path
    parameters (later sources win). Denials are 403 with the shield's
    message and, when the detector caused them, the matched categories.
    """

    def __init__(
        self,
        app,
        shield: Shield,
        fail_closed: bool = False,
        key_func: Optional[Callable[[Request], Optional[str]]] = None,
    ):
        super().__init__(app)
        self.shield = shield
        self.fail_closed = fail_closed
        self.key_func = key_func or get_client_key

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        key = self.key_func(request)
        fields = merge_request_fields(
            dict(request.query_params),
            await _read_body_fields(request),
            request.path_params,
        )

        try:
            decision = await self.shield.evaluate(key, fields)
        except Exception:
            logger.exception(
                "Suspicion store failure",
                extra=get_log_context(client_key=key, path=request.url.path),
            )
            if self.fail_closed:
                return JSONResponse(status_code=503, content={"error": "shield_unavailable"})
            return await call_next(request)

        if not decision.allowed:
            return JSONResponse(status_code=403, content=decision.to_response())

        return await call_next(request)
