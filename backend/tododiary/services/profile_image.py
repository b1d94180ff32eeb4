"""
Profile image service.

- Imports a profile image from a remote URL (e.g. the LINE avatar after
  OAuth sign-in) into the avatars prefix.
- Keeps only the newest profile image per user. Cleanup runs in a Celery
  worker after the upload; a brief window with more than one image per
  user is acceptable.

Neither operation raises: failures are reported to Sentry and returned
as values so the sign-in or upload flow is never interrupted.
"""
import asyncio
import ipaddress
import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from tododiary.config import settings
from tododiary.storage.client import SortBy, UnifiedStorage
from tododiary.storage.prefixes import PREFIX_CONFIGS, PrefixName
from tododiary.utils.errors import report_exception
from tododiary.utils.logging import log_cleanup_completed
from tododiary.utils.metrics import (
    profile_image_cleanups_total,
    profile_image_imports_total,
    profile_images_deleted_total,
)

logger = logging.getLogger(__name__)

CLEANUP_LIST_LIMIT = 100

IMAGE_EXTENSIONS = {
    'image/jpeg': 'jpg',
    'image/jpg': 'jpg',
    'image/png': 'png',
    'image/webp': 'webp',
}


class ProfileImageError(Exception):
    """Remote profile image could not be imported."""


class ImageUrlNotAllowedError(ProfileImageError):
    """Image URL points at a host imports may not fetch from."""


@dataclass
class ProfileImageResult:
    url: Optional[str] = None
    error: Optional[str] = None


def get_image_extension(content_type: str) -> Optional[str]:
    return IMAGE_EXTENSIONS.get(content_type)


def delete_old_profile_images(user_id: str, storage: UnifiedStorage) -> Optional[int]:
    """
    Delete every profile image of a user except the newest one.

    Args:
        user_id: Owner of the images (folder under the avatars prefix)
        storage: Storage for the avatars prefix

    Returns:
        Number of deleted images (0 when there was nothing to do),
        or None if listing or deletion failed (already reported)
    """
    started = time.time()
    try:
        listed = storage.list(
            user_id,
            limit=CLEANUP_LIST_LIMIT,
            sort_by=SortBy(column="created_at", order="desc"),
        )
        if listed.error:
            raise listed.error

        files = listed.data or []
        if len(files) <= 1:
            profile_image_cleanups_total.labels(status="noop").inc()
            return 0

        # Newest first; keep index 0
        to_delete = [item.path for item in files[1:]]
        logger.info(f"Deleting {len(to_delete)} old profile images for user {user_id}")

        removed = storage.remove(to_delete)
        if removed.error:
            raise removed.error

    except Exception as e:
        profile_image_cleanups_total.labels(status="error").inc()
        report_exception(
            e,
            service="profile-image-cleanup",
            tags={"user_id": user_id},
        )
        return None

    profile_image_cleanups_total.labels(status="success").inc()
    profile_images_deleted_total.inc(len(to_delete))
    log_cleanup_completed(
        logger,
        user_id=user_id,
        deleted=len(to_delete),
        duration_ms=(time.time() - started) * 1000,
    )
    return len(to_delete)


def schedule_profile_image_cleanup(user_id: str) -> bool:
    """
    Enqueue profile image cleanup without waiting for it.

    Returns:
        True if the task was enqueued
    """
    # Import here to avoid circular import
    from tododiary.tasks.cleanup_profile_images import cleanup_profile_images_task

    try:
        cleanup_profile_images_task.delay(user_id)
        return True
    except Exception as e:
        report_exception(
            e,
            service="profile-image-cleanup",
            tags={"user_id": user_id},
            extra={"stage": "enqueue"},
        )
        return False


def check_image_url(image_url: str) -> None:
    """
    Refuse URLs an import may not fetch.

    Only https URLs on a host in PROFILE_IMAGE_ALLOWED_HOSTS are fetched.
    IP literals in private, loopback, link-local or reserved ranges are
    refused even when listed.

    Raises:
        ImageUrlNotAllowedError: URL is not importable
    """
    try:
        url = httpx.URL(image_url)
    except httpx.InvalidURL as e:
        raise ImageUrlNotAllowedError(f"Invalid image URL: {e}") from e

    if url.scheme != "https":
        raise ImageUrlNotAllowedError("Image URL must use https")

    host = url.host.lower()
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        address = None

    if address is not None and (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_multicast
        or address.is_unspecified
    ):
        raise ImageUrlNotAllowedError(f"Image host not allowed: {host}")

    allowed = {h.strip().lower() for h in settings.profile_image_allowed_hosts}
    if host not in allowed:
        raise ImageUrlNotAllowedError(f"Image host not allowed: {host}")


async def _check_request_url(request: httpx.Request) -> None:
    # Runs for every hop, so redirects cannot leave the allowlist
    check_image_url(str(request.url))


def _size_limit_error() -> ProfileImageError:
    limit_mb = PREFIX_CONFIGS[PrefixName.AVATARS].max_file_size_mb
    return ProfileImageError(f"Image size exceeds {limit_mb}MB limit")


async def _fetch_image(image_url: str, max_size: int) -> tuple[bytes, str]:
    """
    Stream an image, stopping as soon as it exceeds max_size bytes.

    Returns:
        (body, content_type) with content-type parameters stripped
    """
    async with httpx.AsyncClient(
        timeout=settings.profile_image_fetch_timeout_seconds,
        follow_redirects=True,
        event_hooks={"request": [_check_request_url]},
    ) as client:
        async with client.stream("GET", image_url) as response:
            if response.status_code >= 400:
                raise ProfileImageError(
                    f"Failed to fetch image: {response.status_code} {response.reason_phrase}"
                )

            content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
            if not content_type.startswith("image/"):
                raise ProfileImageError("Invalid content type: not an image")

            declared = response.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > max_size:
                raise _size_limit_error()

            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > max_size:
                    raise _size_limit_error()

    return bytes(body), content_type


async def upload_profile_image_from_url(
    image_url: str,
    user_id: str,
    storage: UnifiedStorage,
) -> ProfileImageResult:
    """
    Download an image and store it as the user's profile image.

    Path: avatars/{user_id}/profile-{epoch_ms}.{ext}

    On success, older profile images are cleaned up in the background.

    Args:
        image_url: Remote image URL (https, allowed host)
        user_id: Owner of the image
        storage: Storage for the avatars prefix

    Returns:
        ProfileImageResult with the public URL, or the error message
    """
    max_size = PREFIX_CONFIGS[PrefixName.AVATARS].max_file_size

    try:
        check_image_url(image_url)
        body, content_type = await _fetch_image(image_url, max_size)

        extension = get_image_extension(content_type)
        if not extension:
            raise ProfileImageError(f"Unsupported image type: {content_type}")

        path = f"{user_id}/profile-{int(time.time() * 1000)}.{extension}"

        # boto3 is blocking; keep the event loop free
        result = await asyncio.to_thread(storage.upload, path, body, content_type)
        if result.error:
            raise result.error

        public_url = storage.get_public_url(result.data["path"])

    except Exception as e:
        profile_image_imports_total.labels(status="error").inc()
        report_exception(
            e,
            service="profile-image-upload",
            tags={"user_id": user_id},
            extra={"image_url": image_url, "error_message": str(e)},
        )
        return ProfileImageResult(url=None, error=str(e) or "Unknown error occurred")

    profile_image_imports_total.labels(status="success").inc()
    schedule_profile_image_cleanup(user_id)

    return ProfileImageResult(url=public_url, error=None)
