# services/file_service/app/usage.py
import asyncio
import datetime
from typing import Any, Dict, Iterable, Optional

from pydantic import TypeAdapter
from supabase import PostgrestAPIError

from core.config import settings, logger as core_logger
from core.exceptions import NotFoundError, RemoteFailure
from core.models import StorageQuota, UserDocument
from core.supabase_client import SessionClient

logger = core_logger.getChild("FileService").getChild("Usage")

_datetime_adapter = TypeAdapter(Optional[datetime.datetime])


def aggregate_usage(rows: Iterable[Dict[str, Any]], capacity: Optional[int] = None) -> StorageQuota:
    """Sums size per category and keeps the newest update time. Unknown categories raise ValueError."""
    quota = StorageQuota(all=capacity or settings.TOTAL_STORAGE_BYTES)
    for row in rows:
        quota.add(row["type"], int(row.get("size") or 0), _datetime_adapter.validate_python(row.get("updated_at")))
    return quota


async def get_total_space_used(session_client: SessionClient, current_user: Optional[UserDocument]) -> StorageQuota:
    """Storage used by files the user owns (shared-with files do not count)."""
    if current_user is None:
        raise NotFoundError("User is not authenticated.")

    def db_call():
        return session_client.table(settings.FILES_TABLE)\
               .select("type,size,updated_at")\
               .eq("owner", current_user.id)\
               .execute()

    try:
        response = await asyncio.to_thread(db_call)
    except PostgrestAPIError as e:
        logger.error(f"Supabase error calculating total space used for user {current_user.id}: {e.message} (Code: {e.code}, Details: {e.details})", exc_info=False)
        raise RemoteFailure(f"Error calculating total space used: {e.message}") from e

    quota = aggregate_usage(response.data or [])
    logger.debug(f"User {current_user.id} uses {quota.used} of {quota.all} bytes.")
    return quota
