"""
Unified S3-compatible storage client (MinIO / Cloudflare R2).

Uses boto3 against whichever backend StorageSettings selects. The same
operation set works on both:

- upload: server-side PUT of bytes already held by the backend
- create_signed_upload_url: presigned PUT for direct client uploads
- get_public_url: public URL construction (no network)
- list: single-page listing under a prefix
- remove: batch delete

Transport failures from upload/list/remove are returned as
StorageResult.error instead of being raised.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Generic, List, Literal, Optional, TypeVar

import boto3
from botocore.config import Config

from tododiary.storage.prefixes import PrefixName
from tododiary.storage.settings import StorageSettings, get_storage_settings
from tododiary.utils.logging import log_storage_failure
from tododiary.utils.metrics import storage_operations_total, storage_operation_duration_seconds

logger = logging.getLogger(__name__)

DEFAULT_SIGNED_URL_EXPIRATION = 600  # 10 minutes
DEFAULT_LIST_LIMIT = 100

T = TypeVar("T")


class StorageError(Exception):
    """Error reported by the object store for a storage operation."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


@dataclass
class StorageResult(Generic[T]):
    """Either data or error is set, never both."""
    data: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SignedUploadPayload:
    """Everything a client needs to PUT the file directly to the object store."""
    url: str
    headers: dict[str, str]
    path: str
    expires_at: str


@dataclass
class StorageListResultItem:
    name: str
    path: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class SortBy:
    column: Literal["created_at"] = "created_at"
    order: Literal["asc", "desc"] = "asc"


def _to_bytes(body: Any) -> bytes:
    """Convert an in-memory buffer or file-like object into bytes."""
    if isinstance(body, bytes):
        return body
    if isinstance(body, (bytearray, memoryview)):
        return bytes(body)
    if hasattr(body, "read"):
        data = body.read()
        if isinstance(data, str):
            raise TypeError("File body must be opened in binary mode")
        return bytes(data)
    raise TypeError(f"Unsupported file body type for storage upload: {type(body).__name__}")


def _strip_prefix(value: str, prefix: str) -> str:
    if prefix and value.startswith(prefix):
        return value[len(prefix):]
    return value


def _iso_utc(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _sort_key(item: StorageListResultItem) -> tuple[float, str]:
    # LastModified has one-second precision; ties fall back to the key
    return (item.created_at.timestamp() if item.created_at else 0.0, item.path)


def build_s3_client(storage_settings: StorageSettings):
    """
    Create a boto3 S3 client for the resolved backend.

    MinIO needs path-style addressing; R2 uses its account endpoint
    with region "auto".
    """
    return boto3.client(
        's3',
        endpoint_url=storage_settings.endpoint,
        aws_access_key_id=storage_settings.access_key_id,
        aws_secret_access_key=storage_settings.secret_access_key,
        region_name=storage_settings.region,
        config=Config(
            signature_version='s3v4',
            s3={'addressing_style': storage_settings.addressing_style}
        )
    )


class UnifiedStorage:
    """
    Backend-agnostic storage operations for one logical prefix.

    Paths passed to every method are relative to the prefix
    (e.g. "user-1/1700000000000-ab12cd34.png").
    """

    def __init__(self, prefix: str, storage_settings: StorageSettings, s3_client):
        self.prefix = prefix
        self._settings = storage_settings
        self._client = s3_client

    @property
    def backend(self) -> str:
        return self._settings.mode

    @property
    def bucket(self) -> str:
        return self._settings.resolve_bucket_name(self.prefix)

    def resolve_key(self, path: str) -> str:
        return self._settings.resolve_object_key(self.prefix, path)

    def _resolve_list_prefix(self, path: Optional[str]) -> str:
        normalized = path.strip("/") if path else ""
        if not normalized:
            base = self._settings.resolve_object_key(self.prefix, "")
            return base if base.endswith("/") else f"{base}/"
        return self._settings.resolve_object_key(self.prefix, f"{normalized}/")

    def _record(self, operation: str, status: str, started: float) -> None:
        storage_operations_total.labels(
            backend=self.backend, operation=operation, status=status
        ).inc()
        storage_operation_duration_seconds.labels(
            backend=self.backend, operation=operation
        ).observe(time.time() - started)

    def _fail(self, operation: str, error: Exception, started: float) -> None:
        self._record(operation, "error", started)
        log_storage_failure(
            logger,
            backend=self.backend,
            operation=operation,
            error=str(error),
            prefix=self.prefix,
            duration_ms=(time.time() - started) * 1000,
        )

    def check_bucket(self) -> StorageResult[dict]:
        """HEAD the shared bucket (health checks)."""
        started = time.time()
        try:
            self._client.head_bucket(Bucket=self.bucket)
        except Exception as e:
            self._fail("head_bucket", e, started)
            return StorageResult(error=e)

        self._record("head_bucket", "success", started)
        return StorageResult(data={"bucket": self.bucket})

    def upload(
        self,
        path: str,
        body: Any,
        content_type: Optional[str] = None
    ) -> StorageResult[dict]:
        """
        Upload bytes to the resolved key.

        Args:
            path: Path relative to the prefix
            body: bytes, bytearray, memoryview or binary file-like object
            content_type: Optional MIME type stored with the object

        Returns:
            StorageResult with data={"path": path} or error
        """
        started = time.time()
        try:
            params = {
                'Bucket': self.bucket,
                'Key': self.resolve_key(path),
                'Body': _to_bytes(body),
            }
            if content_type:
                params['ContentType'] = content_type

            self._client.put_object(**params)
        except Exception as e:
            self._fail("upload", e, started)
            return StorageResult(error=e)

        self._record("upload", "success", started)
        logger.debug(f"Uploaded {self.prefix}/{path}")
        return StorageResult(data={"path": path})

    def create_signed_upload_url(
        self,
        path: str,
        content_type: str,
        expires_in_seconds: int = DEFAULT_SIGNED_URL_EXPIRATION
    ) -> SignedUploadPayload:
        """
        Generate a presigned PUT URL for direct upload.

        Existing objects at the same key are overwritten on upload.
        The Content-Type header returned must be sent with the PUT,
        since it is part of the signature.
        """
        url = self._client.generate_presigned_url(
            ClientMethod='put_object',
            Params={
                'Bucket': self.bucket,
                'Key': self.resolve_key(path),
                'ContentType': content_type,
            },
            ExpiresIn=expires_in_seconds
        )
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in_seconds)

        return SignedUploadPayload(
            url=url,
            headers={'Content-Type': content_type},
            path=path,
            expires_at=_iso_utc(expires_at),
        )

    def get_public_url(self, path: str) -> str:
        return self._settings.build_public_url(self.prefix, path)

    def list(
        self,
        path: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
        sort_by: Optional[SortBy] = None
    ) -> StorageResult[list[StorageListResultItem]]:
        """
        List objects under the prefix (optionally under a sub-path).

        Only the first page (at most `limit` keys) is returned.
        Directory marker keys (ending in "/") are skipped.

        Returns:
            StorageResult with data=list of items (paths relative to the prefix)
        """
        started = time.time()
        try:
            response = self._client.list_objects_v2(
                Bucket=self.bucket,
                Prefix=self._resolve_list_prefix(path),
                MaxKeys=limit,
            )
        except Exception as e:
            self._fail("list", e, started)
            return StorageResult(error=e)

        base_prefix = self._settings.resolve_object_key(self.prefix, "")
        items: list[StorageListResultItem] = []

        for obj in response.get('Contents') or []:
            key = obj.get('Key') or ""
            if not key or key.endswith("/"):
                continue

            relative_key = _strip_prefix(key, base_prefix)
            if not relative_key:
                continue

            last_modified = obj.get('LastModified')
            items.append(StorageListResultItem(
                name=relative_key.split("/")[-1],
                path=relative_key,
                created_at=last_modified,
                updated_at=last_modified,
            ))

        if sort_by is not None and sort_by.column == "created_at":
            items.sort(key=_sort_key, reverse=sort_by.order == "desc")

        self._record("list", "success", started)
        return StorageResult(data=items)

    def remove(self, paths: List[str]) -> StorageResult[List[dict]]:
        """
        Delete several objects in one request.

        A partial failure reported by the provider fails the whole batch.

        Returns:
            StorageResult with data=[{"name": path}, ...] or error
        """
        if not paths:
            return StorageResult(data=[])

        started = time.time()
        try:
            response = self._client.delete_objects(
                Bucket=self.bucket,
                Delete={
                    'Objects': [{'Key': self.resolve_key(p)} for p in paths],
                    'Quiet': True  # Only return errors, not successes
                }
            )
            errors = response.get('Errors') or []
            if errors:
                first = errors[0]
                raise StorageError(
                    "remove",
                    f"{len(errors)} of {len(paths)} objects not deleted "
                    f"(first: {first.get('Key')} {first.get('Code')})"
                )
        except Exception as e:
            self._fail("remove", e, started)
            return StorageResult(error=e)

        self._record("remove", "success", started)
        logger.debug(f"Removed {len(paths)} objects from {self.prefix}")
        return StorageResult(data=[{"name": p} for p in paths])


@dataclass
class StorageRegistry:
    """One UnifiedStorage per known prefix, built once."""
    storages: dict[PrefixName, UnifiedStorage] = field(default_factory=dict)

    @classmethod
    def build(cls, storage_settings: StorageSettings, s3_client=None) -> "StorageRegistry":
        client = s3_client if s3_client is not None else build_s3_client(storage_settings)
        return cls(storages={
            prefix: UnifiedStorage(prefix.value, storage_settings, client)
            for prefix in PrefixName
        })

    def __getitem__(self, prefix) -> UnifiedStorage:
        return self.storages[PrefixName(prefix)]

    @property
    def avatars(self) -> UnifiedStorage:
        return self[PrefixName.AVATARS]

    @property
    def diaries(self) -> UnifiedStorage:
        return self[PrefixName.DIARIES]


@lru_cache(maxsize=1)
def get_storage_registry() -> StorageRegistry:
    """
    Get the process-wide storage registry.

    Resolves storage settings on first call, so a misconfigured
    backend fails here (called at API/worker startup).
    """
    storage_settings = get_storage_settings()
    registry = StorageRegistry.build(storage_settings)
    logger.info(
        f"Storage client initialized: mode={storage_settings.mode}, "
        f"bucket={storage_settings.bucket_name}"
    )
    return registry
