# core/session.py
"""Session cookie lifecycle: resolve the token from a request, set it, clear it."""
from typing import Optional

from starlette.requests import HTTPConnection
from starlette.responses import Response

from core.config import settings, logger as core_logger

logger = core_logger.getChild("Session")

def get_session_token(request: HTTPConnection) -> Optional[str]:
    """Returns the session secret from the cookie, or None. Never redirects."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    return token or None

def set_session_cookie(response: Response, secret: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=secret,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.SESSION_COOKIE_SECURE,
    )
    logger.debug("Session cookie set.")

def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.SESSION_COOKIE_SECURE,
    )
    logger.debug("Session cookie cleared.")
