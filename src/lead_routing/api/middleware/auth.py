"""Shared-secret authentication for the routing admin API."""

import hmac
import hashlib
from typing import Optional
from fastapi import Request, HTTPException

from ...config import settings

SIGNATURE_HEADER = "X-Routing-Signature"
SECRET_HEADER = "X-Routing-Secret"


def sign_body(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of a request body."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _matches(candidate: Optional[str], expected: str) -> bool:
    return bool(candidate) and hmac.compare_digest(candidate, expected)


async def verify_secret(request: Request):
    """Accept a body signature in X-Routing-Signature or the raw secret in X-Routing-Secret.

    Open when LEAD_ROUTING_API_SECRET is empty.
    """
    secret = settings.api_secret
    if not secret:
        return True

    signature = request.headers.get(SIGNATURE_HEADER)
    if signature and _matches(signature, sign_body(secret, await request.body())):
        return True

    if _matches(request.headers.get(SECRET_HEADER), secret):
        return True

    raise HTTPException(
        status_code=401,
        detail={
            "success": False,
            "error": "auth_error",
            "detail": f"Send {SIGNATURE_HEADER} or {SECRET_HEADER}",
        },
    )
