# services/web_app/app/routers/auth.py
from fastapi import APIRouter, Depends, Form, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from typing import Optional, Tuple

from core.config import settings, logger as core_logger
from core.exceptions import StoreItError, RemoteFailure, VerificationError
from core.models import email_adapter
from services.account_service.app import crud as account_crud
from ..dependencies import session_token
from ..pages import render_auth_page, render_otp_page

# Use logger configured in core.config, get child logger
logger = core_logger.getChild("WebApp").getChild("AuthRouter")

router = APIRouter()

GENERIC_AUTH_ERROR = "Failed to create account. Please try again."
VERIFY_ERROR = "Failed to verify OTP. Please try again."
RESEND_ERROR = "Failed to resend the code. Please try again."


def _validate_form(form_type: str, full_name: str, email: str) -> Tuple[str, Optional[str]]:
    """Returns the normalised email and an inline error message, if any."""
    if form_type == "sign-up" and not (2 <= len(full_name) <= 50):
        return email, "Full name must be between 2 and 50 characters."
    try:
        return email_adapter.validate_python(email), None
    except ValidationError:
        return email, "Please enter a valid email address."


@router.get("/sign-in", response_class=HTMLResponse)
async def sign_in_page():
    return HTMLResponse(render_auth_page("sign-in"))


@router.get("/sign-up", response_class=HTMLResponse)
async def sign_up_page():
    return HTMLResponse(render_auth_page("sign-up"))


@router.post("/sign-in", response_class=HTMLResponse)
async def sign_in(email: str = Form("")):
    email = email.strip()
    email, validation_error = _validate_form("sign-in", "", email)
    if validation_error:
        return HTMLResponse(render_auth_page("sign-in", error=validation_error, email=email), status_code=status.HTTP_400_BAD_REQUEST)

    try:
        result = await account_crud.sign_in_user(email)
    except StoreItError as e:
        logger.error(f"Sign-in failed for '{email}': {e}")
        return HTMLResponse(render_auth_page("sign-in", error=GENERIC_AUTH_ERROR, email=email), status_code=status.HTTP_502_BAD_GATEWAY)

    if not result.account_id:
        return HTMLResponse(render_auth_page("sign-in", error=result.error, email=email), status_code=status.HTTP_404_NOT_FOUND)
    return HTMLResponse(render_otp_page(email, result.account_id))


@router.post("/sign-up", response_class=HTMLResponse)
async def sign_up(full_name: str = Form(""), email: str = Form("")):
    full_name, email = full_name.strip(), email.strip()
    email, validation_error = _validate_form("sign-up", full_name, email)
    if validation_error:
        return HTMLResponse(render_auth_page("sign-up", error=validation_error, full_name=full_name, email=email), status_code=status.HTTP_400_BAD_REQUEST)

    try:
        result = await account_crud.create_account(full_name, email)
    except StoreItError as e:
        logger.error(f"Sign-up failed for '{email}': {e}")
        return HTMLResponse(render_auth_page("sign-up", error=GENERIC_AUTH_ERROR, full_name=full_name, email=email), status_code=status.HTTP_502_BAD_GATEWAY)

    if not result.account_id:
        return HTMLResponse(render_auth_page("sign-up", error=result.error, full_name=full_name, email=email), status_code=status.HTTP_409_CONFLICT)
    return HTMLResponse(render_otp_page(email, result.account_id))


@router.post("/verify")
async def verify(account_id: str = Form(...), email: str = Form(""), passcode: str = Form("")):
    """Exchanges the passcode; the session cookie rides on the redirect to the dashboard."""
    response = RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)
    try:
        await account_crud.verify_secret(account_id, passcode.strip(), response)
    except VerificationError:
        return HTMLResponse(render_otp_page(email, account_id, error=VERIFY_ERROR), status_code=status.HTTP_401_UNAUTHORIZED)
    except StoreItError as e:
        logger.error(f"Verification failed for account {account_id}: {e}")
        return HTMLResponse(render_otp_page(email, account_id, error=VERIFY_ERROR), status_code=status.HTTP_502_BAD_GATEWAY)
    return response


@router.post("/otp/resend", response_class=HTMLResponse)
async def resend_otp(account_id: str = Form(...), email: str = Form(...)):
    """Re-issues the passcode for an account that already exists; no account lookup is repeated."""
    email, validation_error = _validate_form("otp", "", email.strip())
    if validation_error:
        return HTMLResponse(render_otp_page(email, account_id, error=validation_error), status_code=status.HTTP_400_BAD_REQUEST)
    try:
        await account_crud.issue_email_otp(email)
    except StoreItError as e:
        logger.error(f"Resending passcode to '{email}' failed: {e}")
        return HTMLResponse(render_otp_page(email, account_id, error=RESEND_ERROR), status_code=status.HTTP_502_BAD_GATEWAY)
    return HTMLResponse(render_otp_page(email, account_id, info="A new code has been sent."))


@router.post("/sign-out")
async def sign_out(token: Optional[str] = Depends(session_token)):
    """POST only. Always ends on the sign-in page with the cookie cleared, even if Supabase could not revoke the session."""
    response = RedirectResponse(settings.SIGN_IN_PATH, status_code=status.HTTP_303_SEE_OTHER)
    try:
        await account_crud.sign_out_user(token, response)
    except RemoteFailure as e:
        logger.warning(f"Remote sign-out failed, user signed out locally only: {e}")
    return response
