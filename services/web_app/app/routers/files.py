# services/web_app/app/routers/files.py
import json
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import Response

from core.config import settings, logger as core_logger
from core.exceptions import RemoteFailure
from core.models import (
    ApiResponse, FileDocument, FileType, GetFilesParams,
    RenameFileRequest, UpdateFileUsersRequest, UserDocument,
)
from core.revalidation import etag_for, path_revision
from core.supabase_client import SessionClient
from core.utils import calculate_percentage, get_file_types_params, get_usage_summary
from services.file_service.app import crud as file_crud
from services.file_service.app import usage
from ..dependencies import require_current_user, require_session_client

# Use logger configured in core.config, get child logger
logger = core_logger.getChild("WebApp").getChild("FilesRouter")

router = APIRouter()


def _conditional_json(request: Request, page_path: str, payload: ApiResponse) -> Response:
    """JSON response with a weak ETag; answers 304 when the client already has this version."""
    body = json.dumps(jsonable_encoder(payload), separators=(",", ":")).encode()
    etag = etag_for(page_path, body)
    headers = {"ETag": etag, "Cache-Control": "private, no-cache", "X-Path-Revision": str(path_revision(page_path))}
    if request.headers.get("if-none-match") == etag:
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)
    return Response(content=body, media_type="application/json", headers=headers)


async def _list_files(request: Request, user: UserDocument, page_path: str, types: List[FileType],
                      search: str, sort: str, limit: Optional[int], offset: int) -> Response:
    try:
        params = GetFilesParams(types=types, search_text=search, sort=sort, limit=limit, offset=offset)
        files = await file_crud.get_files(user, params)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _conditional_json(request, page_path, ApiResponse(status="success", data=files))


async def _get_owned_file(file_id: str, user: UserDocument) -> FileDocument:
    """Only the owner may change or delete a file; recipients of a share can just view it."""
    document = await file_crud.get_file(file_id)
    if document.owner != user.id:
        logger.warning(f"User {user.id} attempted to modify file {file_id} owned by {document.owner}.")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the owner can modify this file.")
    return document


@router.get("/me", response_model=ApiResponse)
async def read_current_user(user: UserDocument = Depends(require_current_user)):
    return ApiResponse(status="success", data=user)


@router.get("/files")
async def list_files(
    request: Request,
    types: List[FileType] = Query(default=[]),
    search: str = "",
    sort: str = "$createdAt-desc",
    limit: Optional[int] = Query(default=None, gt=0, le=1000),
    offset: int = Query(default=0, ge=0),
    user: UserDocument = Depends(require_current_user),
):
    """All files visible to the user (dashboard listing)."""
    return await _list_files(request, user, "/", types, search, sort, limit, offset)


@router.get("/files/{category}")
async def list_category_files(
    request: Request,
    category: str,
    search: str = "",
    sort: str = "$createdAt-desc",
    limit: Optional[int] = Query(default=None, gt=0, le=1000),
    offset: int = Query(default=0, ge=0),
    user: UserDocument = Depends(require_current_user),
):
    """Files for one page: documents, images, media or others."""
    try:
        types = get_file_types_params(category)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return await _list_files(request, user, f"/{category}", types, search, sort, limit, offset)


@router.post("/files", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def upload(
    file: UploadFile = File(...),
    path: str = Form("/"),
    user: UserDocument = Depends(require_current_user),
):
    content = await file.read()
    filename = file.filename or "upload"
    if len(content) > settings.MAX_FILE_SIZE:
        logger.info(f"Rejected upload '{filename}' from user {user.id}: {len(content)} bytes.")
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"{filename} is too large. Max file size is {settings.MAX_FILE_SIZE // (1024 * 1024)}MB.",
        )
    document = await file_crud.upload_file(content, filename, user.id, user.account_id, path)
    return ApiResponse(status="success", data=document, message=f"{document.name} uploaded")


@router.patch("/files/{file_id}", response_model=ApiResponse)
async def rename(
    file_id: str,
    payload: RenameFileRequest,
    path: str = "/",
    user: UserDocument = Depends(require_current_user),
):
    await _get_owned_file(file_id, user)
    document = await file_crud.rename_file(file_id, payload.name, payload.extension, path)
    return ApiResponse(status="success", data=document)


@router.put("/files/{file_id}/users", response_model=ApiResponse)
async def share(
    file_id: str,
    payload: UpdateFileUsersRequest,
    path: str = "/",
    user: UserDocument = Depends(require_current_user),
):
    await _get_owned_file(file_id, user)
    document = await file_crud.update_file_users(file_id, payload.emails, path)
    return ApiResponse(status="success", data=document)


@router.delete("/files/{file_id}", response_model=ApiResponse)
async def delete(
    file_id: str,
    path: str = "/",
    user: UserDocument = Depends(require_current_user),
):
    document = await _get_owned_file(file_id, user)
    result = await file_crud.delete_file(file_id, document.bucket_file_id, path)
    return ApiResponse(status=result["status"], message=f"{document.name} deleted")


@router.get("/usage", response_model=ApiResponse)
async def read_usage(
    user: UserDocument = Depends(require_current_user),
    session_client: SessionClient = Depends(require_session_client),
):
    try:
        quota = await usage.get_total_space_used(session_client, user)
    except ValueError as e:
        # A stored row carries a category outside the known five.
        logger.error(f"Usage aggregation failed for user {user.id}: {e}")
        raise RemoteFailure(f"Unrecognised file category in storage records: {e}") from e
    data = {
        "quota": quota.to_summary(),
        "percentage": calculate_percentage(quota.used, quota.all),
        "summary": [item.model_dump() for item in get_usage_summary(quota)],
    }
    return ApiResponse(status="success", data=data)
