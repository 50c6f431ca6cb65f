# services/file_service/app/crud.py
import asyncio
import datetime
import uuid
from typing import Dict, List, Optional

from postgrest import APIResponse
from supabase import PostgrestAPIError, StorageException

from core import storage
from core.config import settings, logger as core_logger
from core.exceptions import NotFoundError, RemoteFailure
from core.models import FileDocument, FileList, GetFilesParams, UploadIntent, UserDocument
from core.revalidation import revalidate_path
from core.supabase_client import create_admin_client
from core.utils import get_file_type, parse_sort

# Use a child logger
logger = core_logger.getChild("FileService").getChild("CRUD")

FILES_TABLE = settings.FILES_TABLE
INTENTS_TABLE = settings.UPLOAD_INTENTS_TABLE


def _revalidate(path: str) -> None:
    revalidate_path(path)
    # The dashboard lists recent files from every category.
    if path.strip("/"):
        revalidate_path("/")


# --- Upload Intents ---

async def _record_intent(admin, bucket_file_id: str, owner_id: str) -> None:
    intent = UploadIntent(bucket_file_id=bucket_file_id, owner=owner_id).model_dump(exclude_none=True)
    await asyncio.to_thread(lambda: admin.table(INTENTS_TABLE).insert(intent).execute())


async def _clear_intent(admin, bucket_file_id: str) -> None:
    await asyncio.to_thread(
        lambda: admin.table(INTENTS_TABLE).delete().eq("bucket_file_id", bucket_file_id).execute()
    )


async def _compensate_upload(admin, bucket_file_id: str) -> None:
    """Deletes a blob whose metadata row could not be written."""
    job_prefix = f"[{bucket_file_id}]"
    try:
        await storage.delete_object(admin, bucket_file_id)
    except Exception as e:
        # The intent row stays behind so the reconciliation sweep retries the delete.
        logger.error(f"{job_prefix} Compensating delete failed, blob left for reconciliation: {e}", exc_info=True)
        return
    try:
        await _clear_intent(admin, bucket_file_id)
    except Exception as e:
        logger.warning(f"{job_prefix} Blob removed but upload intent could not be cleared: {e}")


# --- CRUD ---

async def upload_file(content: bytes, filename: str, owner_id: str, account_id: str, path: str) -> FileDocument:
    """
    Stores a blob and its metadata row.

    Order: blob -> upload intent -> metadata row -> clear intent. If the row
    cannot be written the blob is deleted again and RemoteFailure is raised.
    """
    if len(content) > settings.MAX_FILE_SIZE:
        raise ValueError(f"File '{filename}' is larger than the {settings.MAX_FILE_SIZE} byte limit")

    admin = await create_admin_client()
    bucket_file_id = uuid.uuid4().hex
    job_prefix = f"[{bucket_file_id}]"
    file_type, extension = get_file_type(filename)

    try:
        await storage.upload_object(admin, bucket_file_id, content, filename)
    except StorageException as e:
        logger.error(f"{job_prefix} Storage error uploading '{filename}': {e}", exc_info=False)
        raise RemoteFailure(f"Error uploading file: {e}") from e

    try:
        await _record_intent(admin, bucket_file_id, owner_id)
    except Exception as e:
        logger.error(f"{job_prefix} Could not record upload intent: {e}", exc_info=False)
        await _compensate_upload(admin, bucket_file_id)
        raise RemoteFailure(f"Error uploading file: {e}") from e

    file_row = {
        "type": file_type.value,
        "name": filename,
        "url": storage.public_url(admin, bucket_file_id),
        "extension": extension,
        "size": len(content),
        "owner": owner_id,
        "account_id": account_id,
        "users": [],
        "bucket_file_id": bucket_file_id,
    }

    def db_call():
        return admin.table(FILES_TABLE).insert(file_row).execute()

    try:
        response: APIResponse = await asyncio.to_thread(db_call)
    except Exception as e:
        logger.error(f"{job_prefix} Error creating file document, removing uploaded blob: {e}", exc_info=False)
        await _compensate_upload(admin, bucket_file_id)
        raise RemoteFailure(f"Error creating file document: {e}") from e

    try:
        await _clear_intent(admin, bucket_file_id)
    except Exception as e:
        # The metadata row exists, so the sweep will simply drop this intent later.
        logger.warning(f"{job_prefix} File stored but upload intent could not be cleared: {e}")

    _revalidate(path)
    logger.info(f"{job_prefix} Uploaded '{filename}' ({len(content)} bytes, {file_type.value}) for owner {owner_id}.")
    return FileDocument(**response.data[0])


def escape_like(text: str) -> str:
    """Escapes LIKE metacharacters so the text only ever matches itself."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_files_query(query, current_user: UserDocument, params: GetFilesParams):
    """Applies the visibility filter (owner or shared-with) plus the optional narrowing, sort and page."""
    query = query.or_(f'owner.eq.{current_user.id},users.cs.{{"{current_user.email}"}}')

    if params.types:
        query = query.in_("type", [file_type.value for file_type in params.types])
    if params.search_text:
        query = query.ilike("name", f"%{escape_like(params.search_text)}%")
    if params.sort:
        column, ascending = parse_sort(params.sort)
        query = query.order(column, desc=not ascending)
    if params.limit:
        query = query.range(params.offset, params.offset + params.limit - 1)

    return query


async def get_files(current_user: Optional[UserDocument], params: Optional[GetFilesParams] = None) -> FileList:
    """Files the user owns or that were shared with their email."""
    if current_user is None:
        raise NotFoundError("User is not authenticated.")
    params = params or GetFilesParams()
    # Validate the sort specifier before touching the network.
    if params.sort:
        parse_sort(params.sort)

    admin = await create_admin_client()

    def db_call():
        query = admin.table(FILES_TABLE).select("*", count="exact")
        return build_files_query(query, current_user, params).execute()

    try:
        response: APIResponse = await asyncio.to_thread(db_call)
    except PostgrestAPIError as e:
        logger.error(f"Supabase error listing files for user {current_user.id}: {e.message} (Code: {e.code}, Details: {e.details})", exc_info=False)
        raise RemoteFailure(f"Failed to get files: {e.message}") from e

    documents = [FileDocument(**row) for row in response.data or []]
    total = response.count if response.count is not None else len(documents)
    logger.debug(f"Listed {len(documents)} of {total} files for user {current_user.id}.")
    return FileList(total=total, documents=documents)


async def get_file(file_id: str) -> FileDocument:
    admin = await create_admin_client()

    def db_call():
        return admin.table(FILES_TABLE)\
               .select("*")\
               .eq("id", file_id)\
               .limit(1)\
               .execute()

    try:
        response: APIResponse = await asyncio.to_thread(db_call)
    except PostgrestAPIError as e:
        logger.error(f"[{file_id}] Supabase error retrieving file: {e.message} (Code: {e.code}, Details: {e.details})", exc_info=False)
        raise RemoteFailure(f"Failed to get file: {e.message}") from e

    if not response.data:
        raise NotFoundError(f"File {file_id} not found")
    return FileDocument(**response.data[0])


async def _update_file(file_id: str, changes: Dict, action: str) -> FileDocument:
    admin = await create_admin_client()

    def db_call():
        return admin.table(FILES_TABLE)\
               .update(changes)\
               .eq("id", file_id)\
               .execute()

    try:
        response: APIResponse = await asyncio.to_thread(db_call)
    except PostgrestAPIError as e:
        logger.error(f"[{file_id}] Supabase error during {action}: {e.message} (Code: {e.code}, Details: {e.details})", exc_info=False)
        raise RemoteFailure(f"Failed to {action}: {e.message}") from e

    if not response.data:
        raise NotFoundError(f"File {file_id} not found")
    return FileDocument(**response.data[0])


async def rename_file(file_id: str, name: str, extension: str, path: str) -> FileDocument:
    new_name = f"{name}.{extension}" if extension else name
    updated = await _update_file(file_id, {"name": new_name}, "rename file")
    _revalidate(path)
    logger.info(f"[{file_id}] Renamed to '{new_name}'.")
    return updated


async def update_file_users(file_id: str, emails: List[str], path: str) -> FileDocument:
    """Replaces the whole sharing list. Last writer wins."""
    updated = await _update_file(file_id, {"users": list(emails)}, "update file users")
    _revalidate(path)
    logger.info(f"[{file_id}] Sharing list replaced ({len(emails)} recipients).")
    return updated


async def delete_file(file_id: str, bucket_file_id: str, path: str) -> Dict[str, str]:
    """
    Deletes the metadata row, then the blob.

    The blob is only touched once the row is gone, so a failed row delete
    never leaves a record pointing at nothing.
    """
    admin = await create_admin_client()

    def db_call():
        return admin.table(FILES_TABLE).delete().eq("id", file_id).execute()

    try:
        response: APIResponse = await asyncio.to_thread(db_call)
    except PostgrestAPIError as e:
        logger.error(f"[{file_id}] Supabase error deleting file document: {e.message} (Code: {e.code}, Details: {e.details})", exc_info=False)
        raise RemoteFailure(f"Failed to delete file: {e.message}") from e

    if not response.data:
        raise NotFoundError(f"File {file_id} not found")

    _revalidate(path)

    try:
        await storage.delete_object(admin, bucket_file_id)
    except StorageException as e:
        logger.error(f"[{file_id}] File document deleted but blob '{bucket_file_id}' was not: {e}", exc_info=False)
        raise RemoteFailure(f"Failed to delete stored object: {e}") from e

    logger.info(f"[{file_id}] Deleted file and blob '{bucket_file_id}'.")
    return {"status": "success"}


# --- Reconciliation ---

async def reconcile_pending_uploads(older_than_seconds: Optional[int] = None) -> Dict[str, int]:
    """
    Sweeps upload intents older than the grace period.

    An intent whose blob has a metadata row is simply dropped; otherwise the
    blob is deleted first. Safe to run repeatedly or concurrently with uploads.
    """
    grace = settings.RECONCILE_GRACE_SECONDS if older_than_seconds is None else older_than_seconds
    cutoff = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(seconds=grace)
    admin = await create_admin_client()

    def list_call():
        return admin.table(INTENTS_TABLE)\
               .select("*")\
               .lt("created_at", cutoff.isoformat())\
               .execute()

    try:
        response: APIResponse = await asyncio.to_thread(list_call)
    except PostgrestAPIError as e:
        logger.error(f"Supabase error listing upload intents: {e.message} (Code: {e.code}, Details: {e.details})", exc_info=False)
        raise RemoteFailure(f"Failed to list upload intents: {e.message}") from e

    report = {"checked": 0, "removed": 0, "failed": 0}
    for intent in (UploadIntent(**row) for row in response.data or []):
        bucket_file_id = intent.bucket_file_id
        report["checked"] += 1
        try:
            existing = await asyncio.to_thread(
                lambda: admin.table(FILES_TABLE).select("id").eq("bucket_file_id", bucket_file_id).limit(1).execute()
            )
            if not existing.data:
                await storage.delete_object(admin, bucket_file_id)
                report["removed"] += 1
                logger.info(f"[{bucket_file_id}] Removed orphaned blob.")
            await _clear_intent(admin, bucket_file_id)
        except Exception as e:
            report["failed"] += 1
            logger.error(f"[{bucket_file_id}] Failed to reconcile upload intent: {e}", exc_info=True)

    if report["checked"]:
        logger.info(f"Upload reconciliation finished: {report}")
    return report
