# services/web_app/app/dependencies.py
from typing import Optional

from fastapi import Depends, Request

from core.config import logger as core_logger
from core.models import UserDocument
from core.session import get_session_token
from core.supabase_client import SessionClient, create_session_client
from services.account_service.app import crud as account_crud

logger = core_logger.getChild("WebApp").getChild("Dependencies")


class SignInRequired(Exception):
    """Raised by the session guard; the app turns it into a redirect to the sign-in page."""
    pass


async def session_token(request: Request) -> Optional[str]:
    return get_session_token(request)


async def require_session(token: Optional[str] = Depends(session_token)) -> str:
    if not token:
        logger.debug("No session cookie on request, redirecting to sign-in.")
        raise SignInRequired()
    return token


async def require_current_user(token: str = Depends(require_session)) -> UserDocument:
    """Guard for every page and API route that needs a signed-in user."""
    user = await account_crud.get_current_user(token)
    if user is None:
        raise SignInRequired()
    return user


async def require_session_client(token: str = Depends(require_session)) -> SessionClient:
    session_client = await create_session_client(token)
    if session_client is None:
        raise SignInRequired()
    return session_client
