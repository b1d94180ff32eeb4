"""
Prometheus metrics definitions for FastAPI and Celery workers.
All metrics are registered here and can be imported by other modules.
"""
from prometheus_client import Counter, Histogram, Gauge

# HTTP request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Error metrics
errors_total = Counter(
    'errors_total',
    'Total errors',
    ['error_type']
)

# Object storage metrics
storage_operations_total = Counter(
    'storage_operations_total',
    'Total object storage operations',
    ['backend', 'operation', 'status']
)

storage_operation_duration_seconds = Histogram(
    'storage_operation_duration_seconds',
    'Object storage operation duration in seconds',
    ['backend', 'operation'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

# Upload metrics
upload_urls_issued_total = Counter(
    'upload_urls_issued_total',
    'Total presigned upload URLs issued',
    ['prefix']
)

upload_validation_failures_total = Counter(
    'upload_validation_failures_total',
    'Total upload requests rejected by prefix policy',
    ['prefix', 'field']
)

profile_image_imports_total = Counter(
    'profile_image_imports_total',
    'Total profile image imports from remote URLs',
    ['status']
)

# Retention metrics
profile_image_cleanups_total = Counter(
    'profile_image_cleanups_total',
    'Total profile image cleanup passes',
    ['status']
)

profile_images_deleted_total = Counter(
    'profile_images_deleted_total',
    'Total superseded profile images deleted'
)

# Celery task metrics
worker_tasks_processing = Gauge(
    'worker_tasks_processing',
    'Number of worker tasks currently processing',
    ['task']
)

worker_tasks_completed_total = Counter(
    'worker_tasks_completed_total',
    'Total worker tasks completed',
    ['task', 'status']
)

worker_tasks_failed_total = Counter(
    'worker_tasks_failed_total',
    'Total worker tasks failed',
    ['task']
)
