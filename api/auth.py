import hmac
import hashlib
import time
from typing import Optional
from fastapi import Depends, Header
import structlog
from core.config import settings
from core.exceptions import Forbidden, Unauthenticated

logger = structlog.get_logger()


def _sign(data: str) -> str:
    return hmac.new(settings.SECRET_KEY.encode(), data.encode(), hashlib.sha256).hexdigest()


def generate_token(user_id: str, timestamp: Optional[int] = None) -> str:
    """
    Issue a signed token for a user id.
    Format: {user_id}:{timestamp}:{signature}
    """
    if not user_id or ":" in user_id:
        raise ValueError("user id must be non-empty and must not contain ':'")
    timestamp = int(time.time()) if timestamp is None else timestamp
    data = f"{user_id}:{timestamp}"
    return f"{data}:{_sign(data)}"


def verify_token(token: str) -> Optional[str]:
    """Return the user id of a valid, unexpired token, else None."""
    if not token:
        return None

    parts = token.split(':')
    if len(parts) != 3:
        return None

    user_id, timestamp_str, signature = parts
    try:
        issued_at = int(timestamp_str)
    except ValueError:
        return None

    # Check expiration
    if int(time.time()) - issued_at > settings.TOKEN_TTL_SECONDS:
        logger.warning("Token expired", user_id=user_id)
        return None

    expected_signature = _sign(f"{user_id}:{timestamp_str}")
    if hmac.compare_digest(expected_signature, signature):
        return user_id

    logger.warning("Token signature mismatch", user_id=user_id)
    return None


def get_current_user(
    x_auth_token: str = Header(None),
    authorization: str = Header(None),
) -> str:
    token = x_auth_token
    if not token and authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()

    user_id = verify_token(token)
    if user_id:
        return user_id

    logger.warning("Auth failed: Missing or invalid credentials")
    raise Unauthenticated("Not authenticated")


def require_instructor(user_id: str = Depends(get_current_user)) -> str:
    if user_id not in settings.instructor_ids:
        logger.warning("Instructor access denied", user_id=user_id)
        raise Forbidden("Instructor access required")
    return user_id
