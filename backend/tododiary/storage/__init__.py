"""
Storage module for S3-compatible object storage (MinIO / Cloudflare R2).

Images go directly from the browser to the object store using presigned
URLs; the backend only signs requests and manages retention.
"""
from tododiary.storage.client import (
    SignedUploadPayload,
    SortBy,
    StorageError,
    StorageListResultItem,
    StorageRegistry,
    StorageResult,
    UnifiedStorage,
    build_s3_client,
    get_storage_registry,
)
from tododiary.storage.prefixes import PREFIX_CONFIGS, PrefixConfig, PrefixName, get_prefix_config, validate_file
from tododiary.storage.settings import (
    StorageConfigurationError,
    StorageSettings,
    get_storage_settings,
    resolve_storage_settings,
)

__all__ = [
    "PREFIX_CONFIGS",
    "PrefixConfig",
    "PrefixName",
    "SignedUploadPayload",
    "SortBy",
    "StorageConfigurationError",
    "StorageError",
    "StorageListResultItem",
    "StorageRegistry",
    "StorageResult",
    "StorageSettings",
    "UnifiedStorage",
    "build_s3_client",
    "get_prefix_config",
    "get_storage_registry",
    "get_storage_settings",
    "resolve_storage_settings",
    "validate_file",
]
