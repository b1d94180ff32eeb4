"""
Error reporting helpers.

Best-effort operations (profile image cleanup, remote avatar import) never
fail the request that triggered them. Their failures are sent to Sentry
when a DSN is configured and always logged.
"""
import logging
from typing import Any, Optional

import sentry_sdk

logger = logging.getLogger(__name__)


def init_error_reporting(dsn: Optional[str], environment: str) -> bool:
    """
    Initialize Sentry if a DSN is provided.

    Returns:
        True if Sentry was initialized
    """
    if not dsn:
        logger.info("SENTRY_DSN not set; error reporting disabled")
        return False

    sentry_sdk.init(dsn=dsn, environment=environment)
    logger.info(f"Sentry initialized for environment: {environment}")
    return True


def report_exception(
    exc: BaseException,
    service: str,
    tags: Optional[dict[str, str]] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """
    Forward an exception to Sentry with context, and log it.

    Args:
        exc: The exception to report
        service: Logical service name, sent as a tag
        tags: Additional searchable tags (e.g. user_id)
        extra: Additional unindexed context
    """
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("service", service)
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exc)

    logger.error(
        f"{service}: {exc}",
        extra={"event": "exception_reported", "service_name": service, **(tags or {})},
        exc_info=exc,
    )
