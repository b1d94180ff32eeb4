"""
Business logic services.
"""
from tododiary.services.image_upload import (
    UploadRequest,
    UploadUrlResult,
    UploadValidationError,
    generate_diary_image_upload_url,
    generate_upload_url,
)
from tododiary.services.profile_image import (
    ImageUrlNotAllowedError,
    ProfileImageResult,
    check_image_url,
    delete_old_profile_images,
    schedule_profile_image_cleanup,
    upload_profile_image_from_url,
)

__all__ = [
    "UploadRequest",
    "UploadUrlResult",
    "UploadValidationError",
    "generate_diary_image_upload_url",
    "generate_upload_url",
    "ImageUrlNotAllowedError",
    "ProfileImageResult",
    "check_image_url",
    "delete_old_profile_images",
    "schedule_profile_image_cleanup",
    "upload_profile_image_from_url",
]
