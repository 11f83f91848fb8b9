"""
Authentication for the internal API.

The headless worker authenticates with a shared secret sent in the
X-Patron-Hub-Internal-Token header. The internal API is switched off
entirely (501) until PATRON_HUB_INTERNAL_TOKEN is configured.
"""

import secrets

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from .config import config

# Header name for the internal token
INTERNAL_TOKEN_HEADER = APIKeyHeader(name="X-Patron-Hub-Internal-Token", auto_error=False)


def verify_internal_token(token: str | None = Security(INTERNAL_TOKEN_HEADER)) -> str:
    """
    Verify the internal token from request headers.

    Args:
        token: The token from the X-Patron-Hub-Internal-Token header

    Returns:
        The validated token

    Raises:
        HTTPException: 501 if the internal API is not configured, 403 if the
            token is missing or wrong
    """
    expected = config.INTERNAL_TOKEN

    if not expected:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Internal API is not configured (missing PATRON_HUB_INTERNAL_TOKEN)",
        )

    # Use constant-time comparison to prevent timing attacks
    if not token or not secrets.compare_digest(token, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    return token
