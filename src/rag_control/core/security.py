"""Security utilities and middleware."""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

MASK = "****"
VISIBLE_SUFFIX = 4
MIN_LENGTH_FOR_HINT = 8


def mask_secret(secret: str) -> str:
    """Return a display-safe hint for a secret value.

    Only the last four characters are kept, and only for secrets long enough
    that the suffix does not give away most of the value.

    Args:
        secret: Plaintext secret.

    Returns:
        str: Masked representation, e.g. ``****f456``.
    """
    if len(secret) < MIN_LENGTH_FOR_HINT:
        return MASK
    return MASK + secret[-VISIBLE_SUFFIX:]


async def security_headers_middleware(request: Request, call_next: Any) -> JSONResponse:
    """Add security headers to responses.

    Args:
        request: The incoming request.
        call_next: The next middleware or route handler.

    Returns:
        Response: Response with security headers added.
    """
    response = await call_next(request)

    # Add security headers
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    # Credential responses must never be cached by intermediaries
    response.headers["Cache-Control"] = "no-store"

    return response
