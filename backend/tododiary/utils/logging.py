"""
Production logging utility for structured JSON logging.

Provides event-specific logging functions with mandatory fields:
- timestamp (ISO8601)
- level
- service
- event

Optional fields (included when applicable):
- user_id
- prefix
- path
- duration_ms

Usage:
    from tododiary.utils.logging import configure_logging, log_upload_url_issued

    configure_logging('tododiary-api', 'INFO')
    log_upload_url_issued(logger, user_id='123', prefix='diaries', path='123/1.png')
"""
import logging
import sys
from typing import Optional, Dict, Any
from pythonjsonlogger import jsonlogger


class StructuredLogger:
    """Structured JSON logger with mandatory fields."""

    _service_name = None
    _configured = False

    @classmethod
    def configure(cls, service_name: str, log_level: str = "INFO"):
        """
        Configure structured JSON logging for the application.

        Args:
            service_name: Service identifier (tododiary-api or tododiary-worker)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        if cls._configured:
            return  # Already configured

        cls._service_name = service_name

        # Remove default handlers
        root_logger = logging.getLogger()
        root_logger.handlers = []

        formatter = jsonlogger.JsonFormatter(
            '%(timestamp)s %(level)s %(name)s %(message)s',
            timestamp=True,
            json_ensure_ascii=False
        )

        # Console handler (for docker logs)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)

        root_logger.addHandler(handler)
        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        # Add service name to all log records via filter
        class ServiceFilter(logging.Filter):
            def filter(self, record):
                record.service = cls._service_name
                return True

        handler.addFilter(ServiceFilter())
        cls._configured = True


def _build_log_extra(
    event: str,
    user_id: Optional[str] = None,
    prefix: Optional[str] = None,
    path: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Build extra fields for structured logging.

    Args:
        event: Event name (mandatory)
        user_id: Optional user ID
        prefix: Optional storage prefix
        path: Optional object path (relative to prefix)
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields

    Returns:
        Dictionary of extra fields
    """
    extra = {
        "event": event,
        **kwargs
    }

    if user_id:
        extra["user_id"] = user_id
    if prefix:
        extra["prefix"] = prefix
    if path:
        extra["path"] = path
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)

    return extra


# Upload event functions

def log_upload_url_issued(
    logger: logging.Logger,
    user_id: str,
    prefix: str,
    path: str,
    file_type: Optional[str] = None,
    file_size: Optional[int] = None,
    **kwargs
):
    """
    Log issuance of a presigned upload URL.

    Args:
        logger: Logger instance
        user_id: User ID (required)
        prefix: Storage prefix (required)
        path: Object path the URL was signed for (required)
        file_type: Optional MIME type
        file_size: Optional declared size in bytes
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="upload_url_issued",
        user_id=user_id,
        prefix=prefix,
        path=path,
        **kwargs
    )
    if file_type:
        extra["file_type"] = file_type
    if file_size is not None:
        extra["file_size"] = file_size

    logger.info(f"Upload URL issued: {prefix}/{path}", extra=extra)


def log_upload_rejected(
    logger: logging.Logger,
    user_id: str,
    prefix: str,
    field: str,
    reason: str,
    **kwargs
):
    """Log an upload request rejected by prefix policy."""
    extra = _build_log_extra(
        event="upload_rejected",
        user_id=user_id,
        prefix=prefix,
        field=field,
        reason=reason,
        **kwargs
    )
    logger.info(f"Upload rejected for {prefix}: {reason}", extra=extra)


# Storage event functions

def log_storage_failure(
    logger: logging.Logger,
    backend: str,
    operation: str,
    error: str,
    prefix: Optional[str] = None,
    duration_ms: Optional[float] = None,
    include_traceback: bool = False,
    **kwargs
):
    """
    Log an object storage failure.

    Args:
        logger: Logger instance
        backend: Storage backend (minio, r2) (required)
        operation: Operation name (upload, list, remove) (required)
        error: Error message (required)
        prefix: Optional storage prefix
        duration_ms: Optional duration in milliseconds
        include_traceback: Whether to include stack trace (default: False for transport failures)
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="storage_failure",
        prefix=prefix,
        duration_ms=duration_ms,
        backend=backend,
        operation=operation,
        error=str(error),
        **kwargs
    )

    message = f"Storage failure: {backend}.{operation} - {error}"

    if include_traceback and sys.exc_info()[0] is not None:
        logger.error(message, extra=extra, exc_info=True)
    else:
        logger.error(message, extra=extra)


# Retention event functions

def log_cleanup_completed(
    logger: logging.Logger,
    user_id: str,
    deleted: int,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """
    Log completion of a profile image cleanup pass.

    Args:
        logger: Logger instance
        user_id: User ID (required)
        deleted: Number of objects removed (required)
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="profile_image_cleanup_completed",
        user_id=user_id,
        duration_ms=duration_ms,
        deleted=deleted,
        **kwargs
    )
    logger.info(f"Profile image cleanup completed for {user_id}: {deleted} deleted", extra=extra)


def configure_logging(service_name: str, log_level: str = "INFO"):
    """Configure logging (alias for StructuredLogger.configure)."""
    StructuredLogger.configure(service_name, log_level)
