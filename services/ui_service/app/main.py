# services/ui_service/app/main.py

import gradio as gr
import fastapi
import os
from typing import Optional, List, Tuple
from pydantic import ValidationError

from core.config import settings, logger as core_logger
from core.exceptions import StoreItError
from core.models import FileDocument, GetFilesParams, UpdateFileUsersRequest, UserDocument
from core.supabase_client import create_session_client
from core.utils import (
    SORT_OPTIONS, calculate_percentage, construct_download_url, convert_file_size,
    format_date_time, get_file_types_params, get_usage_summary,
)
from services.account_service.app import crud as account_crud
from services.file_service.app import crud as file_crud
from services.file_service.app import usage

# Setup logger
logger = core_logger.getChild("UIService")

SIGNED_OUT_MESSAGE = f"You are signed out. [Sign in]({settings.SIGN_IN_PATH}) to see your files."
FILE_TABLE_HEADERS = ["ID", "Name", "Type", "Size", "Created", "Access", "URL", "Download"]
CATEGORY_CHOICES = ["All", "Documents", "Images", "Media", "Others"]
RECENT_FILES_LIMIT = 10
SORT_LABELS = [label for label, _ in SORT_OPTIONS]
SIGN_OUT_FORM = '<form method="post" action="/sign-out"><button type="submit">Logout</button></form>'


# --- Helpers ---

def _session_token(request: Optional[gr.Request]) -> Optional[str]:
    if request is None:
        return None
    return request.cookies.get(settings.SESSION_COOKIE_NAME)

async def _resolve_user(request: Optional[gr.Request]) -> Optional[UserDocument]:
    return await account_crud.get_current_user(_session_token(request))

def _page_path(category: str) -> str:
    return "/" if category == "All" else f"/{category.lower()}"

def _sort_value(sort_label: str) -> str:
    return dict(SORT_OPTIONS).get(sort_label, "$createdAt-desc")

def _file_rows(files: List[FileDocument], user: UserDocument) -> List[List[str]]:
    return [
        [f.id, f.name, f.type.value, convert_file_size(f.size), format_date_time(f.created_at),
         "Owner" if f.owner == user.id else "Shared with you", f.url, construct_download_url(f.url, f.name)]
        for f in files
    ]

def _usage_markdown(quota) -> str:
    lines = [
        f"### Available Storage: {calculate_percentage(quota.used, quota.all)}% used",
        f"{convert_file_size(quota.used)} / {convert_file_size(quota.all)}",
        "",
        "| Category | Size | Last update |",
        "|---|---|---|",
    ]
    for item in get_usage_summary(quota):
        lines.append(f"| [{item.title}]({item.url}) | {convert_file_size(item.size)} | {format_date_time(item.latest_date)} |")
    return "\n".join(lines)


# --- Gradio Interface Functions ---

async def load_dashboard(request: gr.Request):
    """Header, storage usage and the most recent files for the signed-in user."""
    user = await _resolve_user(request)
    if user is None:
        return SIGNED_OUT_MESSAGE, "", []

    try:
        session_client = await create_session_client(_session_token(request))
        quota = await usage.get_total_space_used(session_client, user)
        recent = await file_crud.get_files(user, GetFilesParams(limit=RECENT_FILES_LIMIT))
    except (StoreItError, ValueError) as e:
        logger.error(f"Failed to load dashboard for user {user.id}: {e}")
        return f"**{user.full_name}** ({user.email})", f"**Error loading storage usage:** {e}", []

    header = f"**{user.full_name}** ({user.email})"
    return header, _usage_markdown(quota), _file_rows(recent.documents, user)

async def browse_files(category: str, search: str, sort_label: str, request: gr.Request):
    """File browser for one category page with search and sort."""
    user = await _resolve_user(request)
    if user is None:
        return [], SIGNED_OUT_MESSAGE

    types = [] if category == "All" else get_file_types_params(category.lower())
    params = GetFilesParams(types=types, search_text=(search or "").strip(), sort=_sort_value(sort_label))
    try:
        files = await file_crud.get_files(user, params)
    except (StoreItError, ValueError) as e:
        logger.error(f"Failed to list files for user {user.id}: {e}")
        return [], f"**Error loading files:** {e}"

    total_size = sum(f.size for f in files.documents)
    return _file_rows(files.documents, user), f"Total: {files.total} files, {convert_file_size(total_size)}"

async def upload_files(file_paths: Optional[List[str]], category: str, request: gr.Request):
    """Uploads every selected file; oversized files are skipped with a message."""
    user = await _resolve_user(request)
    if user is None:
        return SIGNED_OUT_MESSAGE, None
    if not file_paths:
        return "Please choose at least one file.", None

    messages = []
    for file_path in file_paths:
        filename = os.path.basename(file_path)
        if os.path.getsize(file_path) > settings.MAX_FILE_SIZE:
            messages.append(f"{filename} is too large. Max file size is {settings.MAX_FILE_SIZE // (1024 * 1024)}MB.")
            continue
        with open(file_path, "rb") as f:
            content = f.read()
        try:
            document = await file_crud.upload_file(content, filename, user.id, user.account_id, _page_path(category))
            messages.append(f"Uploaded {document.name} ({convert_file_size(document.size)}).")
        except StoreItError as e:
            logger.error(f"Upload of '{filename}' failed for user {user.id}: {e}")
            messages.append(f"Failed to upload {filename}: {e}")
    return "\n".join(messages), None

async def _owned_file(file_id: str, user: UserDocument) -> Tuple[Optional[FileDocument], Optional[str]]:
    if not file_id or not file_id.strip():
        return None, "Select a file first (paste its ID from the table)."
    try:
        document = await file_crud.get_file(file_id.strip())
    except StoreItError as e:
        return None, f"Could not load file: {e}"
    if document.owner != user.id:
        return None, "Only the owner can change this file."
    return document, None

async def rename_selected(file_id: str, new_name: str, category: str, request: gr.Request):
    user = await _resolve_user(request)
    if user is None:
        return SIGNED_OUT_MESSAGE
    document, error = await _owned_file(file_id, user)
    if error:
        return error
    base_name = (new_name or "").strip()
    if document.extension and base_name.lower().endswith(f".{document.extension}"):
        base_name = base_name[: -(len(document.extension) + 1)]
    if not base_name:
        return "Please enter a new name."
    try:
        renamed = await file_crud.rename_file(document.id, base_name, document.extension, _page_path(category))
    except StoreItError as e:
        return f"Rename failed: {e}"
    return f"Renamed to {renamed.name}."

async def share_selected(file_id: str, emails_text: str, category: str, request: gr.Request):
    """Replaces the sharing list with the comma separated emails given."""
    user = await _resolve_user(request)
    if user is None:
        return SIGNED_OUT_MESSAGE
    document, error = await _owned_file(file_id, user)
    if error:
        return error
    try:
        share_request = UpdateFileUsersRequest(emails=(emails_text or "").split(","))
    except ValidationError:
        return "Please enter valid, comma separated email addresses."
    try:
        updated = await file_crud.update_file_users(document.id, share_request.emails, _page_path(category))
    except StoreItError as e:
        return f"Sharing failed: {e}"
    if not updated.users:
        return f"{updated.name} is no longer shared."
    return f"{updated.name} is shared with {', '.join(updated.users)}."

async def delete_selected(file_id: str, category: str, request: gr.Request):
    user = await _resolve_user(request)
    if user is None:
        return SIGNED_OUT_MESSAGE
    document, error = await _owned_file(file_id, user)
    if error:
        return error
    try:
        await file_crud.delete_file(document.id, document.bucket_file_id, _page_path(category))
    except StoreItError as e:
        return f"Delete failed: {e}"
    return f"Deleted {document.name}."


# --- Build Gradio Interface ---
def build_ui() -> gr.Blocks:
    with gr.Blocks(theme=gr.themes.Soft(), title="StoreIt") as demo:
        gr.Markdown("# StoreIt")
        with gr.Row():
            header = gr.Markdown(SIGNED_OUT_MESSAGE)
            gr.HTML(SIGN_OUT_FORM)
        with gr.Tabs():
            with gr.TabItem("Dashboard"):
                usage_display = gr.Markdown()
                gr.Markdown("### Recent files uploaded")
                recent_table = gr.Dataframe(headers=FILE_TABLE_HEADERS, interactive=False, wrap=True)
                refresh_button = gr.Button("Refresh")
            with gr.TabItem("Files"):
                with gr.Row():
                    category_input = gr.Dropdown(label="Category", choices=CATEGORY_CHOICES, value="All")
                    search_input = gr.Textbox(label="Search", placeholder="Search...")
                    sort_input = gr.Dropdown(label="Sort by", choices=SORT_LABELS, value=SORT_LABELS[0])
                files_caption = gr.Markdown()
                files_table = gr.Dataframe(headers=FILE_TABLE_HEADERS, interactive=False, wrap=True)
            with gr.TabItem("Upload"):
                upload_input = gr.File(label="Upload", file_count="multiple", type="filepath")
                upload_button = gr.Button("Upload", variant="primary")
                upload_status = gr.Textbox(label="Status", interactive=False, lines=3)
            with gr.TabItem("Manage"):
                file_id_input = gr.Textbox(label="File ID", placeholder="Copy the ID column from the file table")
                with gr.Accordion("Rename", open=True):
                    rename_input = gr.Textbox(label="New name")
                    rename_button = gr.Button("Rename")
                with gr.Accordion("Share", open=False):
                    share_input = gr.Textbox(label="Share with (comma separated emails)")
                    share_button = gr.Button("Share")
                with gr.Accordion("Delete", open=False):
                    delete_button = gr.Button("Delete", variant="stop")
                manage_status = gr.Textbox(label="Status", interactive=False)

        # --- Connect UI elements to functions ---
        browse_inputs = [category_input, search_input, sort_input]
        demo.load(load_dashboard, outputs=[header, usage_display, recent_table])
        demo.load(browse_files, inputs=browse_inputs, outputs=[files_table, files_caption])
        refresh_button.click(load_dashboard, outputs=[header, usage_display, recent_table])
        for control in browse_inputs:
            control.change(browse_files, inputs=browse_inputs, outputs=[files_table, files_caption])
        upload_button.click(upload_files, inputs=[upload_input, category_input], outputs=[upload_status, upload_input])\
            .then(browse_files, inputs=browse_inputs, outputs=[files_table, files_caption])
        rename_button.click(rename_selected, inputs=[file_id_input, rename_input, category_input], outputs=[manage_status])\
            .then(browse_files, inputs=browse_inputs, outputs=[files_table, files_caption])
        share_button.click(share_selected, inputs=[file_id_input, share_input, category_input], outputs=[manage_status])\
            .then(browse_files, inputs=browse_inputs, outputs=[files_table, files_caption])
        delete_button.click(delete_selected, inputs=[file_id_input, category_input], outputs=[manage_status])\
            .then(browse_files, inputs=browse_inputs, outputs=[files_table, files_caption])
    return demo


# --- Mount Gradio app within FastAPI ---
def mount_ui(app: fastapi.FastAPI, path: str = "/ui") -> fastapi.FastAPI:
    return gr.mount_gradio_app(app, build_ui(), path=path)
