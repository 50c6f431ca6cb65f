from supabase import create_client, Client, ClientOptions
from core.config import settings, logger
from typing import Optional, Dict
import asyncio
from functools import partial

# Cache clients by type. Only key-authenticated clients are cached; session and
# auth clients carry per-user state and are built fresh for every call.
_supabase_clients: Dict[str, Client] = {}
_init_lock = asyncio.Lock()

async def get_supabase_client(use_service_key=False) -> Client:
    """
    Initializes and returns a cached Supabase client (thread-safe).
    Args:
        use_service_key: If True, returns a client using the service role key to bypass RLS
    """
    global _supabase_clients

    # Determine client type
    client_type = "service" if use_service_key else "anon"

    # Check if we already have this client type initialized
    if client_type not in _supabase_clients:
        async with _init_lock:
            # Double check after acquiring lock
            if client_type not in _supabase_clients:
                key = settings.SUPABASE_SERVICE_KEY if use_service_key else settings.SUPABASE_KEY
                key_type_str = 'service role' if use_service_key else 'anon'
                _supabase_clients[client_type] = await _build_client(key, key_type_str)

    # Return the cached client
    return _supabase_clients[client_type]

async def _build_client(key: Optional[str], key_type_str: str, options: Optional[ClientOptions] = None) -> Client:
    url = settings.SUPABASE_URL
    if not url or not key:
        logger.error(f"Supabase URL or {key_type_str} key not configured. Cannot create client.")
        raise ValueError(f"Supabase URL or {key_type_str} key not configured")

    logger.debug(f"Initializing Supabase client with {key_type_str} key...")
    try:
        # Run create_client in a thread pool since it's synchronous
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            partial(create_client, url, key, options or ClientOptions(schema=settings.DATABASE_SCHEMA))
        )
    except Exception as e:
        logger.error(f"Failed to initialize Supabase client with {key_type_str} key: {e}", exc_info=True)
        raise RuntimeError(f"Failed to initialize Supabase client: {e}")

async def create_admin_client() -> Client:
    """Privileged client (service role key). Full read/write across auth, tables and storage."""
    return await get_supabase_client(use_service_key=True)

async def create_auth_client() -> Client:
    """Fresh anon client for the passcode exchange, so its signed-in state dies with the call."""
    return await _build_client(settings.SUPABASE_KEY, "anon")


class SessionClient:
    """A Supabase client whose database requests run with one user's access token."""

    def __init__(self, client: Client, access_token: str):
        self.client = client
        self.access_token = access_token
        self.client.postgrest.auth(access_token)

    def get_account(self):
        """Returns the Supabase Auth user behind the token (raises AuthApiError if rejected)."""
        response = self.client.auth.get_user(self.access_token)
        return response.user if response else None

    def delete_session(self) -> None:
        """Revokes only the session behind this token."""
        self.client.auth.admin.sign_out(self.access_token, "local")

    def table(self, name: str):
        return self.client.table(name)


async def create_session_client(session_token: Optional[str]) -> Optional[SessionClient]:
    """
    Builds a client scoped to the caller's session.

    Returns None when there is no token; callers that need a session apply
    their own guard instead of this function redirecting.
    """
    if not session_token:
        return None
    client = await _build_client(settings.SUPABASE_KEY, "anon")
    return SessionClient(client, session_token)
