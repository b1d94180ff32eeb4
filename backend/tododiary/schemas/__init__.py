"""
Pydantic schemas for API request/response validation.
"""
from tododiary.schemas.upload import (
    UploadUrlRequest,
    UploadUrlResponse,
    ValidationErrorDetail,
    ProfileImageImportRequest,
    ProfileImageImportResponse,
)

__all__ = [
    "UploadUrlRequest",
    "UploadUrlResponse",
    "ValidationErrorDetail",
    "ProfileImageImportRequest",
    "ProfileImageImportResponse",
]
