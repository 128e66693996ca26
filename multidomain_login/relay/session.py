"""
Per-domain Session Management
=============================

Each domain keeps its own login in a signed session cookie (Starlette's
SessionMiddleware). The cookie holds a session JWT naming the account, so a
session also expires on its own after SESSION_JWT_EXPIRY_MINUTES.

RelaySession is the is-authenticated / establish / terminate accessor the
relay handler works against.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Request
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from ..config import Settings
from ..models import Account

logger = logging.getLogger(__name__)

SESSION_KEY = "relay_account"


# =============================================================================
# Exceptions
# =============================================================================

class JWTSessionError(Exception):
    """Base exception for JWT session errors"""
    pass


# =============================================================================
# Token Creation
# =============================================================================

def create_session_jwt(account: Account, settings: Settings) -> str:
    """
    Create a session JWT for an account.

    Args:
        account: Account being logged in on this domain
        settings: Application settings

    Returns:
        Encoded JWT string

    Raises:
        JWTSessionError: If JWT creation fails
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(account.id),
        "email": account.email,
        "iat": now,
        "exp": now + timedelta(minutes=settings.SESSION_JWT_EXPIRY_MINUTES),
        "iss": settings.SESSION_JWT_ISSUER,
    }

    try:
        token = jwt.encode(
            payload,
            settings.SESSION_JWT_SECRET,
            algorithm=settings.SESSION_JWT_ALGORITHM,
        )
    except Exception as e:
        logger.error(f"Failed to create session JWT: {e}", exc_info=True)
        raise JWTSessionError(f"Failed to create session JWT: {str(e)}") from e

    logger.debug(
        "Created session JWT",
        extra={
            "user_id": account.id,
            "expires_in_minutes": settings.SESSION_JWT_EXPIRY_MINUTES,
        },
    )

    return token


# =============================================================================
# Token Verification
# =============================================================================

def verify_session_jwt(token: str, settings: Settings) -> Optional[Dict[str, Any]]:
    """
    Verify and decode a session JWT.

    Returns:
        Decoded claims, or None if the token is missing, expired or invalid
    """
    if not token:
        return None

    try:
        return jwt.decode(
            token,
            settings.SESSION_JWT_SECRET,
            algorithms=[settings.SESSION_JWT_ALGORITHM],
            issuer=settings.SESSION_JWT_ISSUER,
            options={"require": ["exp", "iat", "sub", "iss"]},
        )
    except ExpiredSignatureError:
        logger.info("Session JWT expired")
        return None
    except InvalidTokenError as e:
        logger.warning(f"Invalid session JWT: {e}")
        return None


# =============================================================================
# Session Accessor
# =============================================================================

class RelaySession:
    """
    Session accessor for the domain serving the current request.

    Args:
        request: Current request (SessionMiddleware must be installed)
        settings: Application settings
    """

    def __init__(self, request: Request, settings: Settings):
        self._request = request
        self._settings = settings

    @property
    def account_id(self) -> Optional[int]:
        claims = verify_session_jwt(self._request.session.get(SESSION_KEY), self._settings)
        if not claims:
            return None
        try:
            return int(claims["sub"])
        except (TypeError, ValueError):
            logger.warning("Session JWT carries a non-numeric subject")
            return None

    @property
    def is_authenticated(self) -> bool:
        return self.account_id is not None

    @property
    def is_anonymous(self) -> bool:
        return not self.is_authenticated

    def establish(self, account: Account) -> None:
        """Log `account` in on this domain, replacing whatever the session held."""
        self._request.session.clear()
        self._request.session[SESSION_KEY] = create_session_jwt(account, self._settings)

    def terminate(self) -> None:
        self._request.session.clear()
