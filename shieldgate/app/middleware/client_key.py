"""Client identity resolution for admission control."""

import hashlib
from typing import Optional

from starlette.requests import Request


def get_client_key(request: Request, trust_forwarded_for: bool = True) -> Optional[str]:
    """Get the admission-control key for the request.

    Uses the first ``X-Forwarded-For`` hop when trusted, otherwise the socket
    peer. The address is hashed (SHA-256, 32 hex chars) so raw IPs are never
    stored in buckets, logs or Redis.

    Returns:
        ``"ip:<hash>"``, or None when no address can be determined.
    """
    client_ip: Optional[str] = None
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip() or None
    if client_ip is None and request.client is not None:
        client_ip = request.client.host or None
    if client_ip is None:
        return None

    ip_hash = hashlib.sha256(client_ip.encode()).hexdigest()[:32]
    return f"ip:{ip_hash}"
