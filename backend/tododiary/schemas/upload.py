"""
Pydantic schemas for upload endpoints.
"""
from pydantic import BaseModel, ConfigDict, Field, HttpUrl
from typing import Optional

MAX_FILENAME_LENGTH = 255
# Excludes path separators and characters reserved on common filesystems
FILENAME_PATTERN = r'^[^/\\:*?"<>|]+$'


class UploadUrlRequest(BaseModel):
    """Request schema for presigned upload URL generation."""
    file_name: str = Field(
        ...,
        min_length=1,
        max_length=MAX_FILENAME_LENGTH,
        pattern=FILENAME_PATTERN,
        description="Original file name (extension is kept)"
    )
    file_type: str = Field(..., min_length=1, description="MIME type (e.g., 'image/png')")
    file_size: int = Field(..., ge=1, description="File size in bytes")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "file_name": "breakfast.png",
                "file_type": "image/png",
                "file_size": 1048576
            }
        }
    )


class UploadUrlResponse(BaseModel):
    """Response schema for presigned upload URL."""
    url: str = Field(..., description="Presigned PUT URL for direct upload")
    headers: dict[str, str] = Field(..., description="Headers the PUT request must carry")
    public_url: str = Field(..., description="Public URL of the object once uploaded")
    expires_at: str = Field(..., description="ISO-8601 expiry of the presigned URL")
    path: str = Field(..., description="Object path relative to the storage prefix")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "url": "http://127.0.0.1:9000/app/diaries/user-1/1700000000000-ab12cd34.png?X-Amz-Signature=...",
                "headers": {"Content-Type": "image/png"},
                "public_url": "http://127.0.0.1:9000/app/diaries/user-1/1700000000000-ab12cd34.png",
                "expires_at": "2024-01-01T00:10:00.000Z",
                "path": "user-1/1700000000000-ab12cd34.png"
            }
        }
    )


class ValidationErrorDetail(BaseModel):
    """Error body for uploads rejected by prefix policy."""
    field: str
    message: str


class ProfileImageImportRequest(BaseModel):
    """Request schema for importing a profile image from a URL."""
    image_url: HttpUrl = Field(..., description="Remote image URL (e.g. LINE profile picture)")


class ProfileImageImportResponse(BaseModel):
    """Response schema for profile image import."""
    url: Optional[str] = Field(None, description="Public URL of the stored image")
    error: Optional[str] = Field(None, description="Error message if the import failed")
