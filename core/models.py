# core/models.py
from pydantic import BaseModel, EmailStr, Field, TypeAdapter, field_validator
from typing import List, Optional, Dict, Any
from enum import Enum
import datetime

from core.config import settings

# --- Enumerations ---

class FileType(str, Enum):
    """The five fixed storage categories. Anything unrecognised is rejected."""
    DOCUMENT = "document"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    OTHER = "other"

# --- Core Data Models ---

class UserDocument(BaseModel):
    """A row of the users table, correlated with a Supabase Auth account."""
    id: str = Field(..., description="Primary key of the user row")
    account_id: str = Field(..., description="Supabase Auth user id")
    full_name: str
    email: str
    avatar: Optional[str] = None
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    class Config:
        from_attributes = True

class FileDocument(BaseModel):
    """Metadata row describing one object stored in the bucket."""
    id: str
    bucket_file_id: str = Field(..., description="Key of the blob in the storage bucket")
    name: str
    url: str
    type: FileType
    extension: str = ""
    size: int = Field(default=0, ge=0)
    owner: str = Field(..., description="id of the owning user row")
    account_id: str
    users: List[str] = Field(default_factory=list, description="Emails the file is shared with")
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    class Config:
        from_attributes = True

class FileList(BaseModel):
    total: int = 0
    documents: List[FileDocument] = Field(default_factory=list)

class SessionInfo(BaseModel):
    """Result of a successful passcode exchange. The secret only ever goes into the cookie."""
    session_id: str
    secret: str = Field(..., exclude=True, repr=False)

class AuthResult(BaseModel):
    """Soft result of sign-up / sign-in so forms can show an inline message."""
    account_id: Optional[str] = None
    error: Optional[str] = None

class UploadIntent(BaseModel):
    bucket_file_id: str
    owner: str
    created_at: Optional[datetime.datetime] = None

# --- Storage Quota ---

class CategoryUsage(BaseModel):
    size: int = 0
    latest_date: Optional[datetime.datetime] = None

class StorageQuota(BaseModel):
    """Per-category usage for one user, computed on demand and never persisted."""
    categories: Dict[FileType, CategoryUsage] = Field(
        default_factory=lambda: {file_type: CategoryUsage() for file_type in FileType}
    )
    used: int = 0
    all: int = Field(default_factory=lambda: settings.TOTAL_STORAGE_BYTES)

    def category(self, file_type: FileType | str) -> CategoryUsage:
        """Returns the bucket for a category, raising ValueError for unknown categories."""
        return self.categories[FileType(file_type)]

    def add(self, file_type: FileType | str, size: int, updated_at: Optional[datetime.datetime]) -> None:
        bucket = self.category(file_type)
        bucket.size += size
        self.used += size
        if updated_at is not None and (bucket.latest_date is None or updated_at > bucket.latest_date):
            bucket.latest_date = updated_at

    def to_summary(self) -> Dict[str, Any]:
        """Flat shape used by the API: one entry per category plus 'used' and 'all'."""
        summary: Dict[str, Any] = {
            file_type.value: {
                "size": usage.size,
                "latest_date": usage.latest_date.isoformat() if usage.latest_date else None,
            }
            for file_type, usage in self.categories.items()
        }
        summary["used"] = self.used
        summary["all"] = self.all
        return summary

class UsageSummaryItem(BaseModel):
    """One dashboard card (Documents, Images, Media, Others)."""
    title: str
    size: int
    latest_date: Optional[datetime.datetime] = None
    url: str

# --- Request Models ---

class GetFilesParams(BaseModel):
    types: List[FileType] = Field(default_factory=list)
    search_text: str = ""
    sort: str = "$createdAt-desc"
    limit: Optional[int] = Field(default=None, gt=0, le=1000)
    offset: int = Field(default=0, ge=0)

class RenameFileRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    extension: str = ""

class UpdateFileUsersRequest(BaseModel):
    emails: List[EmailStr] = Field(default_factory=list, description="Replaces the whole sharing list")

    @field_validator("emails", mode="before")
    @classmethod
    def drop_blank_emails(cls, emails: Any) -> Any:
        if not isinstance(emails, list):
            return emails
        return [email.strip() if isinstance(email, str) else email
                for email in emails if not isinstance(email, str) or email.strip()]

# Single-address validation for the sign-in / sign-up forms
email_adapter = TypeAdapter(EmailStr)

# --- API Response Wrapper ---

class ApiResponse(BaseModel):
    """Standard response wrapper for the JSON API."""
    status: str = Field(description="'success' or 'error'")
    data: Any | None = Field(default=None, description="The primary data payload (depends on the endpoint)")
    message: Optional[str] = Field(default=None, description="Optional status message or error details")
