"""
Celery application configuration.
Sets up Celery with Redis broker and result backend.
"""
import logging
from celery import Celery
from celery.signals import task_prerun, task_postrun, task_failure, worker_init
from tododiary.config import settings
from tododiary.utils.metrics import (
    worker_tasks_processing,
    worker_tasks_completed_total,
    worker_tasks_failed_total,
)

logger = logging.getLogger(__name__)

# Create Celery app
celery_app = Celery(
    "tododiary",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "tododiary.tasks.cleanup_profile_images",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,  # 5 minutes
    task_soft_time_limit=4 * 60,  # 4 minutes
    task_ignore_result=True,  # Cleanup is fire-and-forget
    task_always_eager=settings.celery_task_always_eager,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=200,
)


@worker_init.connect
def worker_init_handler(sender=None, **kwargs):
    """
    Worker boot: logging, error reporting, storage configuration, metrics.

    Storage settings are resolved here so a misconfigured backend stops
    the worker before it accepts tasks.
    """
    from tododiary.storage.client import get_storage_registry
    from tododiary.utils.errors import init_error_reporting
    from tododiary.utils.logging import configure_logging
    from tododiary.workers.metrics_server import start_metrics_server

    configure_logging('tododiary-worker', settings.log_level)
    init_error_reporting(settings.sentry_dsn, settings.environment)
    get_storage_registry()

    try:
        start_metrics_server(port=9090)
    except Exception as e:
        logger.warning(f"Failed to start metrics server: {e}")


# Celery signal handlers for metrics
@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None, **kwds):
    """Track task start."""
    task_name = task.name if task else "unknown"
    worker_tasks_processing.labels(task=task_name).inc()


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None, retval=None, state=None, **kwds):
    """Track task completion."""
    task_name = task.name if task else "unknown"
    status = state if state else "unknown"

    worker_tasks_processing.labels(task=task_name).dec()
    worker_tasks_completed_total.labels(task=task_name, status=status).inc()


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, traceback=None, einfo=None, **kwds):
    """Track task failures."""
    task_name = sender.name if sender else "unknown"
    worker_tasks_failed_total.labels(task=task_name).inc()
