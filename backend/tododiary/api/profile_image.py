"""
Profile image endpoints.

Called by the web app after LINE sign-in to copy the provider's avatar
into our own storage, so the profile picture survives provider URL
changes. Older profile images are removed by a background task.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from tododiary.auth.dependencies import get_current_user_id
from tododiary.api.deps import get_registry
from tododiary.schemas.upload import ProfileImageImportRequest, ProfileImageImportResponse
from tododiary.services.profile_image import (
    ImageUrlNotAllowedError,
    check_image_url,
    upload_profile_image_from_url,
)
from tododiary.storage.client import StorageRegistry

router = APIRouter()


@router.post("/import", response_model=ProfileImageImportResponse)
async def import_profile_image(
    request: ProfileImageImportRequest,
    user_id: str = Depends(get_current_user_id),
    registry: StorageRegistry = Depends(get_registry)
):
    """
    Download an image from `image_url` and store it as the caller's
    profile image.

    Returns 400 if the URL is not https on an allowed host, 502 if the
    image could not be fetched or stored.
    """
    image_url = str(request.image_url)

    try:
        check_image_url(image_url)
    except ImageUrlNotAllowedError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    result = await upload_profile_image_from_url(
        image_url,
        user_id,
        registry.avatars,
    )

    if result.error:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=result.error
        )

    return ProfileImageImportResponse(url=result.url, error=None)
