"""Authentication utilities."""
from typing import Optional
from fastapi import Cookie, Depends, Header
from sqlalchemy.orm import Session
import logging

from config import ACCESS_TOKEN_COOKIE
from database import get_db
from errors import UnauthorizedError
from models import User
from monitoring import auth_failures_counter, auth_attempts_counter

logger = logging.getLogger(__name__)


def extract_token(authorization: Optional[str], cookie_token: Optional[str] = None) -> Optional[str]:
    """
    Pull the bearer token out of the request credentials.

    The access token cookie takes precedence over the Authorization header.

    Raises:
        UnauthorizedError: If the Authorization header is malformed
    """
    if cookie_token:
        return cookie_token

    if authorization is None:
        return None

    # Extract token (Bearer <token>)
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        auth_failures_counter.add(1, {"reason": "invalid_format"})
        logger.warning("Authentication failed: Invalid authorization header format", extra={
            "auth_header": authorization[:20] + "..." if len(authorization) > 20 else authorization
        })
        raise UnauthorizedError("Invalid authorization header format")

    return parts[1]


def get_current_user(
    authorization: Optional[str] = Header(None),
    access_token: Optional[str] = Cookie(None, alias=ACCESS_TOKEN_COOKIE),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the authenticated user for a request.

    Args:
        authorization: Authorization header value
        access_token: Access token cookie value
        db: Database session

    Returns:
        The authenticated user

    Raises:
        UnauthorizedError: If the token is missing, malformed or unknown
    """
    auth_attempts_counter.add(1, {"type": "bearer_token"})

    token = extract_token(authorization, access_token)
    if not token:
        auth_failures_counter.add(1, {"reason": "missing_token"})
        logger.warning("Authentication failed: Missing access token")
        raise UnauthorizedError("Unauthorized request")

    user = db.query(User).filter(User.access_token == token).first()
    if user is None:
        auth_failures_counter.add(1, {"reason": "invalid_token"})
        logger.warning("Authentication failed: Invalid token", extra={
            "token_prefix": token[:8] + "..." if len(token) > 8 else token
        })
        raise UnauthorizedError("Invalid access token")

    logger.debug("Authentication successful", extra={"user_id": user.id})
    return user
