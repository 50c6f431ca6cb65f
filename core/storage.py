# core/storage.py
"""
Core Storage Utilities.

Thin async wrappers around the Supabase Storage bucket that holds uploaded
files. Blocking SDK calls run in a worker thread; storage errors are logged
and propagated to the caller, which decides whether to compensate.
"""
import asyncio
import mimetypes
from typing import Optional

from supabase import Client

from core.config import settings, logger as core_logger

logger = core_logger.getChild("Storage")

async def upload_object(client: Client, key: str, content: bytes, filename: str, bucket: Optional[str] = None) -> str:
    """Uploads bytes under `key` and returns the key."""
    bucket_name = bucket or settings.STORAGE_BUCKET
    content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    logger.info(f"Uploading '{filename}' ({len(content)} bytes) to bucket '{bucket_name}' as '{key}'")

    def do_upload():
        return client.storage.from_(bucket_name).upload(
            path=key,
            file=content,
            file_options={"content-type": content_type, "upsert": "false"}
        )

    await asyncio.to_thread(do_upload)
    return key

async def delete_object(client: Client, key: str, bucket: Optional[str] = None) -> None:
    bucket_name = bucket or settings.STORAGE_BUCKET
    logger.info(f"Deleting object '{key}' from bucket '{bucket_name}'")
    await asyncio.to_thread(lambda: client.storage.from_(bucket_name).remove([key]))

def public_url(client: Client, key: str, bucket: Optional[str] = None) -> str:
    """Builds the public URL locally; no network call is made."""
    return client.storage.from_(bucket or settings.STORAGE_BUCKET).get_public_url(key)
