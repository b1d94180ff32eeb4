"""
Upload endpoints for presigned URL generation.

Implements direct-to-storage upload flow:
1. POST /uploads/diary-image - Get presigned URL for a diary image
2. POST /uploads/{prefix}/presign - Get presigned URL for any storage prefix
3. Client PUTs the file to `url` with `headers`

The backend never handles file bytes; files go from the browser
straight to MinIO / R2. Presigned URLs expire after 10 minutes
(configurable) and cannot be revoked earlier.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from tododiary.auth.dependencies import get_current_user_id
from tododiary.api.deps import get_registry
from tododiary.schemas.upload import UploadUrlRequest, UploadUrlResponse
from tododiary.services.image_upload import (
    UploadRequest,
    UploadUrlResult,
    UploadValidationError,
    generate_diary_image_upload_url,
    generate_upload_url,
)
from tododiary.storage.client import StorageRegistry

router = APIRouter()


def _to_response(result: UploadUrlResult) -> UploadUrlResponse:
    return UploadUrlResponse(
        url=result.url,
        headers=result.headers,
        public_url=result.public_url,
        expires_at=result.expires_at,
        path=result.path,
    )


def _validation_error(e: UploadValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"field": e.field, "message": e.message}
    )


@router.post("/diary-image", response_model=UploadUrlResponse)
async def presign_diary_image(
    request: UploadUrlRequest,
    user_id: str = Depends(get_current_user_id),
    registry: StorageRegistry = Depends(get_registry)
):
    """
    Generate a presigned URL for uploading a diary image.

    Returns the signed URL, required headers, the public URL the image
    will have, the expiry and the object path.
    """
    try:
        result = generate_diary_image_upload_url(
            user_id=user_id,
            file_name=request.file_name,
            file_type=request.file_type,
            file_size=request.file_size,
            registry=registry,
        )
    except UploadValidationError as e:
        raise _validation_error(e)

    return _to_response(result)


@router.post("/{prefix}/presign", response_model=UploadUrlResponse)
async def presign_upload(
    prefix: str,
    request: UploadUrlRequest,
    user_id: str = Depends(get_current_user_id),
    registry: StorageRegistry = Depends(get_registry)
):
    """
    Generate a presigned URL for uploading to a storage prefix
    (e.g. "avatars", "diaries"). The prefix policy decides allowed
    MIME types and maximum size.
    """
    try:
        result = generate_upload_url(
            UploadRequest(
                user_id=user_id,
                file_name=request.file_name,
                file_type=request.file_type,
                file_size=request.file_size,
                prefix=prefix,
            ),
            registry,
        )
    except UploadValidationError as e:
        raise _validation_error(e)

    return _to_response(result)
