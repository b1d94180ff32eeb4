"""
Storage backend resolution.

Turns application configuration into one of two mutually exclusive
backend profiles:

- MinIO (local development, path-style addressing)
- Cloudflare R2 (production)

Both backends share one bucket; prefixes only change the object key.
The resolved profile is immutable and resolved once per process.
"""
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from tododiary.config import Settings, settings as app_settings

logger = logging.getLogger(__name__)

StorageMode = Literal["minio", "r2"]

MINIO_REGION = "us-east-1"
R2_REGION = "auto"

# (settings attribute, environment variable) pairs required when USE_R2=true
R2_REQUIRED_FIELDS = (
    ("r2_account_id", "R2_ACCOUNT_ID"),
    ("r2_bucket", "R2_BUCKET"),
    ("r2_access_key_id", "R2_ACCESS_KEY_ID"),
    ("r2_secret_access_key", "R2_SECRET_ACCESS_KEY"),
    ("r2_public_base_url", "R2_PUBLIC_BASE_URL"),
)


class StorageConfigurationError(RuntimeError):
    """Raised at startup when the selected backend is missing configuration."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(
            f"Environment variable(s) {', '.join(missing)} required when USE_R2=true"
        )


def join_object_key(prefix: str, relative_path: str) -> str:
    """Join prefix and relative path; an empty path yields the directory key."""
    trimmed = relative_path.lstrip("/")
    if not trimmed:
        return f"{prefix}/"
    return f"{prefix}/{trimmed}"


def join_url(base: str, path: str) -> str:
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


@dataclass(frozen=True)
class StorageSettings:
    """Resolved, immutable description of the active object store."""
    mode: StorageMode
    bucket_name: str
    endpoint: str
    region: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str
    addressing_style: str

    def resolve_bucket_name(self, prefix: str) -> str:
        # Prefixes share the bucket; only the key changes
        return self.bucket_name

    def resolve_object_key(self, prefix: str, relative_path: str) -> str:
        return join_object_key(prefix, relative_path)

    def build_public_url(self, prefix: str, relative_path: str) -> str:
        object_path = join_object_key(prefix, relative_path).rstrip("/")
        return join_url(self.public_base_url, object_path)


def _resolve_minio(config: Settings) -> StorageSettings:
    endpoint = config.minio_endpoint.rstrip("/")
    bucket = config.minio_bucket
    public_base = (config.minio_public_base_url or f"{endpoint}/{bucket}").rstrip("/")
    return StorageSettings(
        mode="minio",
        bucket_name=bucket,
        endpoint=endpoint,
        region=MINIO_REGION,
        access_key_id=config.minio_access_key,
        secret_access_key=config.minio_secret_key,
        public_base_url=public_base,
        addressing_style="path",
    )


def _resolve_r2(config: Settings) -> StorageSettings:
    missing = [
        env_name for attr, env_name in R2_REQUIRED_FIELDS
        if not (getattr(config, attr) or "").strip()
    ]
    if missing:
        raise StorageConfigurationError(missing)

    return StorageSettings(
        mode="r2",
        bucket_name=config.r2_bucket,
        endpoint=f"https://{config.r2_account_id}.r2.cloudflarestorage.com",
        region=R2_REGION,
        access_key_id=config.r2_access_key_id,
        secret_access_key=config.r2_secret_access_key,
        public_base_url=config.r2_public_base_url.rstrip("/"),
        addressing_style="virtual",
    )


def resolve_storage_settings(config: Settings) -> StorageSettings:
    """
    Resolve the active backend profile from configuration.

    Args:
        config: Application settings

    Returns:
        StorageSettings for MinIO or R2

    Raises:
        StorageConfigurationError: USE_R2=true but R2 values are missing
    """
    if config.use_r2:
        resolved = _resolve_r2(config)
    else:
        resolved = _resolve_minio(config)

    logger.info(
        f"Storage backend resolved: mode={resolved.mode}, bucket={resolved.bucket_name}"
    )
    return resolved


@lru_cache(maxsize=1)
def get_storage_settings() -> StorageSettings:
    """Process-wide storage settings, resolved on first use."""
    return resolve_storage_settings(app_settings)
