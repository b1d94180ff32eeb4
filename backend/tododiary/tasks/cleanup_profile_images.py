"""
Celery task for profile image retention.

Enqueued after a profile image upload; keeps only the newest image in
avatars/{user_id}/. Failures are already reported by the service, the
task only retries so superseded images do not accumulate.
"""
import logging

from tododiary.services.profile_image import delete_old_profile_images
from tododiary.storage.client import get_storage_registry
from tododiary.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

RETRY_COUNTDOWN_SECONDS = 60


@celery_app.task(name="cleanup_profile_images", bind=True, max_retries=3)
def cleanup_profile_images_task(self, user_id: str):
    """
    Delete all but the newest profile image of a user.

    Args:
        user_id: Owner of the profile images

    Returns:
        Dict with user_id and number of deleted images
    """
    storage = get_storage_registry().avatars
    deleted = delete_old_profile_images(user_id, storage)

    if deleted is None:
        if self.request.retries < self.max_retries:
            logger.warning(
                f"Profile image cleanup failed for {user_id}, "
                f"retry {self.request.retries + 1}/{self.max_retries}"
            )
            raise self.retry(countdown=RETRY_COUNTDOWN_SECONDS)
        logger.error(f"Profile image cleanup gave up for {user_id}")
        return {"user_id": user_id, "deleted": 0, "status": "failed"}

    return {"user_id": user_id, "deleted": deleted, "status": "ok"}
