# services/account_service/app/crud.py
import asyncio
from typing import Optional

from starlette.responses import Response
from supabase import AuthApiError, AuthError, PostgrestAPIError

from core.config import settings, logger as core_logger
from core.exceptions import ConflictError, DeliveryError, RemoteFailure, VerificationError
from core.models import AuthResult, SessionInfo, UserDocument
from core.session import clear_session_cookie, set_session_cookie
from core.supabase_client import create_admin_client, create_auth_client, create_session_client
from core.utils import session_id_from_token

# Use a child logger
logger = core_logger.getChild("AccountService").getChild("CRUD")

USERS_TABLE = settings.USERS_TABLE
LIST_USERS_PAGE_SIZE = 200

DUPLICATE_ACCOUNT_ERROR = "A user with this credential already exist. Try signing in."
USER_NOT_FOUND_ERROR = "User not found"


async def _get_user_by(column: str, value: str) -> Optional[UserDocument]:
    admin = await create_admin_client()

    def db_call():
        return admin.table(USERS_TABLE)\
               .select("*")\
               .eq(column, value)\
               .limit(1)\
               .execute()

    try:
        response = await asyncio.to_thread(db_call)
    except PostgrestAPIError as e:
        logger.error(f"Supabase error looking up user by {column}: {e.message} (Code: {e.code}, Details: {e.details})", exc_info=False)
        raise RemoteFailure(f"Failed to look up user: {e.message}") from e

    if not response.data:
        return None
    return UserDocument(**response.data[0])


async def get_user_by_email(email: str) -> Optional[UserDocument]:
    """Exact-match lookup of a user row by email."""
    return await _get_user_by("email", email)


async def get_user_by_account_id(account_id: str) -> Optional[UserDocument]:
    return await _get_user_by("account_id", account_id)


def _find_account_id(admin, email: str) -> Optional[str]:
    """
    Pages through Supabase Auth users for the account owning `email`.

    Only used to recover an auth account that exists without a users row
    (an earlier sign-up that failed after creating it).
    """
    wanted = email.lower()
    page = 1
    while True:
        users = admin.auth.admin.list_users(page=page, per_page=LIST_USERS_PAGE_SIZE)
        for user in users:
            if (user.email or "").lower() == wanted:
                return user.id
        if len(users) < LIST_USERS_PAGE_SIZE:
            return None
        page += 1


async def _create_auth_account(email: str) -> str:
    """Creates the Supabase Auth user for a new email and returns its id."""
    admin = await create_admin_client()
    try:
        response = await asyncio.to_thread(
            admin.auth.admin.create_user,
            {"email": email, "email_confirm": True}
        )
        return response.user.id
    except AuthApiError as e:
        if e.code != "email_exists":
            logger.error(f"Failed to create auth account for '{email}': {e}", exc_info=False)
            raise RemoteFailure(f"Failed to create account: {e}") from e
        logger.warning(f"Auth account already exists for '{email}' without a user row, recovering its id.")

    try:
        account_id = await asyncio.to_thread(_find_account_id, admin, email)
    except AuthError as e:
        logger.error(f"Failed to resolve auth account for '{email}': {e}", exc_info=False)
        raise RemoteFailure(f"Failed to resolve account: {e}") from e
    if not account_id:
        raise RemoteFailure("Failed to resolve existing auth account")
    return account_id


async def issue_email_otp(email: str) -> None:
    """
    Emails a one-time passcode to an existing auth account.

    Never creates an account. Raises DeliveryError if the provider refuses
    the address.
    """
    auth_client = await create_auth_client()
    try:
        await asyncio.to_thread(
            auth_client.auth.sign_in_with_otp,
            {"email": email, "options": {"should_create_user": False}}
        )
    except AuthError as e:
        logger.error(f"Failed to send email OTP to '{email}': {e}", exc_info=False)
        raise DeliveryError(f"Failed to send email OTP: {e}") from e
    logger.info(f"Email OTP sent to '{email}'.")


async def send_email_otp(email: str) -> str:
    """
    Emails a one-time passcode and returns the Supabase Auth account id.

    The id comes from the users row when there is one; otherwise the auth
    account is created first. Raises DeliveryError if the provider refuses
    the address.
    """
    existing_user = await get_user_by_email(email)
    account_id = existing_user.account_id if existing_user else await _create_auth_account(email)
    await issue_email_otp(email)
    return account_id


async def _ensure_email_available(email: str) -> None:
    if await get_user_by_email(email) is not None:
        raise ConflictError(DUPLICATE_ACCOUNT_ERROR)


async def create_account(full_name: str, email: str) -> AuthResult:
    """Registers a new user and sends their first passcode. Duplicates get a soft error."""
    try:
        await _ensure_email_available(email)
    except ConflictError as e:
        logger.info(f"Sign-up rejected, user already exists for '{email}'.")
        return AuthResult(account_id=None, error=str(e))

    account_id = await _create_auth_account(email)
    await issue_email_otp(email)

    admin = await create_admin_client()
    user_row = {
        "full_name": full_name,
        "email": email,
        "avatar": settings.AVATAR_PLACEHOLDER_URL,
        "account_id": account_id,
    }

    def db_call():
        return admin.table(USERS_TABLE).insert(user_row).execute()

    try:
        await asyncio.to_thread(db_call)
    except PostgrestAPIError as e:
        logger.error(f"Supabase error creating user row for account {account_id}: {e.message} (Code: {e.code}, Details: {e.details})", exc_info=False)
        raise RemoteFailure(f"Failed to create user: {e.message}") from e

    logger.info(f"Created user row for account {account_id}.")
    return AuthResult(account_id=account_id)


async def verify_secret(account_id: str, passcode: str, response: Response) -> SessionInfo:
    """
    Exchanges a passcode for a session and sets the session cookie on `response`.

    Raises VerificationError for a wrong or expired passcode; the cookie is
    only set once the exchange has succeeded.
    """
    admin = await create_admin_client()
    try:
        account = await asyncio.to_thread(admin.auth.admin.get_user_by_id, account_id)
    except AuthApiError as e:
        logger.warning(f"Verification requested for unknown account {account_id}: {e}")
        raise VerificationError("Unknown account") from e

    auth_client = await create_auth_client()
    try:
        auth_response = await asyncio.to_thread(
            auth_client.auth.verify_otp,
            {"email": account.user.email, "token": passcode, "type": "email"}
        )
    except AuthError as e:
        logger.warning(f"Passcode verification failed for account {account_id}: {e}")
        raise VerificationError("Failed to verify OTP") from e

    session = auth_response.session if auth_response else None
    if session is None or not session.access_token:
        logger.warning(f"Passcode verification for account {account_id} returned no session.")
        raise VerificationError("Failed to verify OTP")

    session_id = session_id_from_token(session.access_token) or account_id
    set_session_cookie(response, session.access_token)
    logger.info(f"Session {session_id} created for account {account_id}.")
    return SessionInfo(session_id=session_id, secret=session.access_token)


async def get_current_user(session_token: Optional[str]) -> Optional[UserDocument]:
    """
    Resolves the session cookie to a user row.

    None means "not signed in": no token, a token Supabase rejects, or an
    account with no user row. Database failures still raise RemoteFailure.
    """
    session_client = await create_session_client(session_token)
    if session_client is None:
        return None

    try:
        account = await asyncio.to_thread(session_client.get_account)
    except AuthApiError as e:
        logger.info(f"Session token rejected by Supabase Auth: {e}")
        return None

    if account is None:
        return None

    user = await get_user_by_account_id(account.id)
    if user is None:
        logger.warning(f"Valid session for account {account.id} but no user row exists.")
    return user


async def sign_out_user(session_token: Optional[str], response: Response) -> None:
    """
    Revokes the session remotely and always clears the cookie.

    A failed remote sign-out is logged and re-raised, but the caller still ends
    up logged out locally.
    """
    try:
        session_client = await create_session_client(session_token)
        if session_client is not None:
            await asyncio.to_thread(session_client.delete_session)
            logger.info("Remote session deleted.")
    except AuthError as e:
        logger.error(f"Failed to delete remote session: {e}", exc_info=False)
        raise RemoteFailure(f"Failed to sign out user: {e}") from e
    finally:
        clear_session_cookie(response)


async def sign_in_user(email: str) -> AuthResult:
    """Sends a passcode to an existing user. Unknown emails are never registered here."""
    existing_user = await get_user_by_email(email)
    if existing_user is None:
        logger.info(f"Sign-in requested for unknown email '{email}'.")
        return AuthResult(account_id=None, error=USER_NOT_FOUND_ERROR)

    await issue_email_otp(email)
    return AuthResult(account_id=existing_user.account_id)
