"""
Viewer identity from HMAC-SHA256 signed session tokens.

The identity service issues ``<user_id>.<signature>`` tokens, where the signature
is the hex HMAC-SHA256 of the user id under the shared session secret. This
module only verifies them; the user id is treated as an opaque string.
"""
import hmac
import hashlib
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request

from marketplace_chat.core.config import Settings, get_settings
from marketplace_chat.core.logging import bind_viewer, get_logger

logger = get_logger(__name__)

AUTH_SCHEME = "bearer"


def compute_signature(secret: str, body: bytes) -> str:
    """
    Compute HMAC-SHA256 signature for the given body.

    Args:
        secret: The shared session secret
        body: Bytes to sign

    Returns:
        Hex-encoded HMAC-SHA256 signature
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Verify an HMAC-SHA256 signature using constant-time comparison."""
    expected_signature = compute_signature(secret, body)
    return hmac.compare_digest(expected_signature, signature)


def issue_session_token(secret: str, user_id: str) -> str:
    """Build the token the identity service hands to a signed-in user."""
    return f"{user_id}.{compute_signature(secret, user_id.encode('utf-8'))}"


def parse_session_token(secret: str, token: str) -> Optional[str]:
    """
    Return the user id carried by a valid token, or None.

    The signature is split off the right so user ids may contain dots.
    """
    user_id, sep, signature = token.rpartition(".")
    if not sep or not user_id or not signature:
        return None
    if not verify_signature(secret, user_id.encode("utf-8"), signature):
        return None
    return user_id


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail="Authentication required",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    """
    FastAPI dependency resolving the viewer's user id.

    Raises:
        HTTPException: 401 if the token is missing, malformed or forged,
            or no session secret is configured
    """
    authorization: Optional[str] = request.headers.get("Authorization")
    if not authorization:
        logger.debug("Request missing Authorization header")
        raise _unauthorized()

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != AUTH_SCHEME or not token:
        logger.warning("Unsupported authorization scheme")
        raise _unauthorized()

    if not settings.is_session_secret_configured:
        logger.error("SESSION_SECRET environment variable not configured")
        raise _unauthorized()

    user_id = parse_session_token(settings.session_secret, token.strip())
    if user_id is None:
        logger.warning(
            "Session token verification failed",
            extra={"extra_data": {"token_prefix": token[:8] + "..."}},
        )
        raise _unauthorized()

    bind_viewer(user_id)
    return user_id


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
