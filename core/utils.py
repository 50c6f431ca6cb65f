# core/utils.py
"""
Core Utility Functions.

Filename classification, size/date formatting and the small parsing helpers
shared by the services and both presentation surfaces.
"""
import base64
import datetime
import json
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

from core.config import settings
from core.models import FileType, StorageQuota, UsageSummaryItem

# --- File Classification ---

EXTENSIONS_BY_TYPE: Dict[FileType, Tuple[str, ...]] = {
    FileType.DOCUMENT: (
        "pdf", "doc", "docx", "txt", "xls", "xlsx", "csv", "rtf", "ods", "ppt", "odp",
        "md", "html", "htm", "epub", "pages", "fig", "psd", "ai", "indd", "xd",
        "sketch", "afdesign", "afphoto",
    ),
    FileType.IMAGE: ("jpg", "jpeg", "png", "gif", "bmp", "svg", "webp"),
    FileType.VIDEO: ("mp4", "avi", "mov", "mkv", "webm"),
    FileType.AUDIO: ("mp3", "wav", "ogg", "flac"),
}

_TYPE_BY_EXTENSION = {ext: file_type for file_type, exts in EXTENSIONS_BY_TYPE.items() for ext in exts}

def get_file_type(filename: str) -> Tuple[FileType, str]:
    """Maps a filename to (category, lowercase extension). No extension means OTHER with ''."""
    if "." not in filename:
        return FileType.OTHER, ""
    extension = filename.rsplit(".", 1)[-1].lower()
    return _TYPE_BY_EXTENSION.get(extension, FileType.OTHER), extension

# Route segment -> categories shown on that page
FILE_TYPES_BY_PAGE: Dict[str, List[FileType]] = {
    "documents": [FileType.DOCUMENT],
    "images": [FileType.IMAGE],
    "media": [FileType.VIDEO, FileType.AUDIO],
    "others": [FileType.OTHER],
}

def get_file_types_params(page: str) -> List[FileType]:
    try:
        return FILE_TYPES_BY_PAGE[page]
    except KeyError:
        raise ValueError(f"Unknown file category page '{page}'")

# --- Sorting ---

# Sort specifier field -> column
SORT_FIELDS = {
    "$createdAt": "created_at",
    "$updatedAt": "updated_at",
    "name": "name",
    "size": "size",
}

SORT_OPTIONS = [
    ("Date created (newest)", "$createdAt-desc"),
    ("Created Date (oldest)", "$createdAt-asc"),
    ("Name (A-Z)", "name-asc"),
    ("Name (Z-A)", "name-desc"),
    ("Size (Highest)", "size-desc"),
    ("Size (Lowest)", "size-asc"),
]

def parse_sort(sort: str) -> Tuple[str, bool]:
    """Parses 'field-direction' into (column, ascending). Only 'asc' is ascending."""
    field, _, direction = sort.rpartition("-")
    if not field:
        field, direction = direction, ""
    if field not in SORT_FIELDS:
        raise ValueError(f"Unsupported sort field '{field}'")
    return SORT_FIELDS[field], direction == "asc"

# --- Formatting ---

def convert_file_size(size_in_bytes: int, digits: int = 1) -> str:
    if size_in_bytes < 1024:
        return f"{size_in_bytes} Bytes"
    if size_in_bytes < 1024 * 1024:
        return f"{size_in_bytes / 1024:.{digits}f} KB"
    if size_in_bytes < 1024 * 1024 * 1024:
        return f"{size_in_bytes / (1024 * 1024):.{digits}f} MB"
    return f"{size_in_bytes / (1024 * 1024 * 1024):.{digits}f} GB"

def calculate_percentage(size_in_bytes: int, total_in_bytes: Optional[int] = None) -> float:
    total = total_in_bytes or settings.TOTAL_STORAGE_BYTES
    return round(size_in_bytes / total * 100, 2)

def format_date_time(value: Optional[datetime.datetime]) -> str:
    """Formats like '10:15am, 3 Oct'. Missing dates render as '-'."""
    if value is None:
        return "-"
    hour = value.hour % 12 or 12
    period = "pm" if value.hour >= 12 else "am"
    return f"{hour}:{value.minute:02d}{period}, {value.day} {value.strftime('%b')}"

def get_usage_summary(quota: StorageQuota) -> List[UsageSummaryItem]:
    """Groups the five categories into the four dashboard cards; media merges video and audio."""
    video = quota.category(FileType.VIDEO)
    audio = quota.category(FileType.AUDIO)
    media_dates = [d for d in (video.latest_date, audio.latest_date) if d is not None]
    return [
        UsageSummaryItem(title="Documents", size=quota.category(FileType.DOCUMENT).size,
                         latest_date=quota.category(FileType.DOCUMENT).latest_date, url="/documents"),
        UsageSummaryItem(title="Images", size=quota.category(FileType.IMAGE).size,
                         latest_date=quota.category(FileType.IMAGE).latest_date, url="/images"),
        UsageSummaryItem(title="Media", size=video.size + audio.size,
                         latest_date=max(media_dates) if media_dates else None, url="/media"),
        UsageSummaryItem(title="Others", size=quota.category(FileType.OTHER).size,
                         latest_date=quota.category(FileType.OTHER).latest_date, url="/others"),
    ]

def construct_download_url(file_url: str, file_name: str) -> str:
    """Supabase serves a public object as an attachment when ?download=<name> is present."""
    separator = "&" if "?" in file_url else "?"
    return f"{file_url}{separator}download={quote(file_name)}"

# --- Session Tokens ---

def session_id_from_token(access_token: str) -> Optional[str]:
    """Reads the 'session_id' claim of a Supabase access token without verifying it."""
    try:
        payload = access_token.split(".")[1]
        payload += "=" * (-len(payload) % 4)
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (IndexError, ValueError):
        return None
    return claims.get("session_id")
