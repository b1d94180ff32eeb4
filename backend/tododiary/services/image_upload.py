"""
Presigned image upload service.

Handles the business logic for issuing presigned upload URLs.

Flow:
1. Client requests an upload URL with file_name, file_type, file_size
2. Backend validates the request against the prefix policy
3. Backend generates a unique object path under the user's folder
4. Backend signs a PUT URL and pre-computes the public URL
5. Client uploads directly to the object store using the signed URL
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from tododiary.config import settings
from tododiary.storage.client import StorageRegistry
from tododiary.storage.prefixes import PrefixName, validate_file
from tododiary.utils.logging import log_upload_rejected, log_upload_url_issued
from tododiary.utils.metrics import upload_urls_issued_total, upload_validation_failures_total

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "jpg"


class UploadValidationError(ValueError):
    """Upload request violates the prefix policy. Raised before any I/O."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(message)


@dataclass
class UploadUrlResult:
    url: str
    headers: dict[str, str]
    public_url: str
    expires_at: str
    path: str


@dataclass
class UploadRequest:
    user_id: str
    file_name: str
    file_type: str
    file_size: int
    prefix: PrefixName = PrefixName.DIARIES


def get_extension(file_name: str) -> str:
    """Lower-cased suffix of file_name, or "jpg" when it has none."""
    _, dot, suffix = file_name.rpartition(".")
    if not dot or not suffix:
        return DEFAULT_EXTENSION
    return suffix.lower()


def generate_object_path(user_id: str, file_name: str) -> str:
    """
    Generate a unique object path for an upload.

    Pattern: {user_id}/{epoch_ms}-{random}.{ext}

    The timestamp plus random suffix avoids collisions without
    checking the bucket first.
    """
    timestamp = int(time.time() * 1000)
    suffix = uuid.uuid4().hex[:8]
    return f"{user_id}/{timestamp}-{suffix}.{get_extension(file_name)}"


def generate_upload_url(
    request: UploadRequest,
    registry: StorageRegistry,
    expires_in_seconds: Optional[int] = None,
) -> UploadUrlResult:
    """
    Validate an upload request and issue a presigned PUT URL.

    Args:
        request: Upload request (user, file metadata, prefix)
        registry: Storage registry to resolve the prefix's storage
        expires_in_seconds: URL lifetime (default from settings)

    Returns:
        UploadUrlResult with signed URL, headers, public URL, expiry and path

    Raises:
        UploadValidationError: MIME type or size not allowed for the prefix
    """
    prefix_name = getattr(request.prefix, "value", request.prefix)

    valid, field_name, error = validate_file(prefix_name, request.file_type, request.file_size)
    if not valid:
        upload_validation_failures_total.labels(prefix=prefix_name, field=field_name).inc()
        log_upload_rejected(
            logger,
            user_id=request.user_id,
            prefix=prefix_name,
            field=field_name,
            reason=error,
        )
        raise UploadValidationError(field_name, error)

    prefix = PrefixName(prefix_name)

    if expires_in_seconds is None:
        expires_in_seconds = settings.upload_presign_expiration

    path = generate_object_path(request.user_id, request.file_name)
    storage = registry[prefix]

    signed = storage.create_signed_upload_url(
        path,
        content_type=request.file_type,
        expires_in_seconds=expires_in_seconds,
    )
    public_url = storage.get_public_url(signed.path)

    upload_urls_issued_total.labels(prefix=prefix.value).inc()
    log_upload_url_issued(
        logger,
        user_id=request.user_id,
        prefix=prefix.value,
        path=signed.path,
        file_type=request.file_type,
        file_size=request.file_size,
    )

    return UploadUrlResult(
        url=signed.url,
        headers=signed.headers,
        public_url=public_url,
        expires_at=signed.expires_at,
        path=signed.path,
    )


def generate_diary_image_upload_url(
    user_id: str,
    file_name: str,
    file_type: str,
    file_size: int,
    registry: StorageRegistry,
) -> UploadUrlResult:
    """Issue a presigned upload URL for a diary image."""
    return generate_upload_url(
        UploadRequest(
            user_id=user_id,
            file_name=file_name,
            file_type=file_type,
            file_size=file_size,
            prefix=PrefixName.DIARIES,
        ),
        registry,
    )
