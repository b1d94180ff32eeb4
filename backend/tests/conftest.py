"""
Test configuration and fixtures.
Uses an in-memory S3 double for storage operations and a real boto3
client (fake credentials, no network) for presigning.
"""
import os

# Set test environment before any imports
os.environ["ENVIRONMENT"] = "test"
os.environ["USE_R2"] = "false"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["SENTRY_DSN"] = ""

import httpx
import pytest
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from unittest.mock import patch

from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

from tododiary.config import Settings
from tododiary.storage.client import StorageRegistry, build_s3_client
from tododiary.storage.settings import StorageSettings, resolve_storage_settings


TEST_USER_ID = "user-1"


class FakeS3Client:
    """
    Minimal in-memory stand-in for the boto3 S3 client.

    Objects get strictly increasing LastModified timestamps so
    "newest" is deterministic. Presigning delegates to a real client.
    """

    def __init__(self, presigner=None):
        self.objects: dict[str, dict] = {}
        self.calls: list[tuple[str, dict]] = []
        self._presigner = presigner
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def put_object(self, Bucket, Key, Body, ContentType=None, **kwargs):
        self.calls.append(("put_object", {"Bucket": Bucket, "Key": Key}))
        self.objects[Key] = {
            "Body": Body,
            "ContentType": ContentType,
            "LastModified": self._tick(),
        }
        return {"ETag": '"etag"'}

    def list_objects_v2(self, Bucket, Prefix="", MaxKeys=1000, **kwargs):
        self.calls.append(("list_objects_v2", {"Bucket": Bucket, "Prefix": Prefix, "MaxKeys": MaxKeys}))
        keys = sorted(k for k in self.objects if k.startswith(Prefix))
        contents = [
            {"Key": k, "LastModified": self.objects[k]["LastModified"], "Size": len(self.objects[k]["Body"])}
            for k in keys[:MaxKeys]
        ]
        return {"Contents": contents, "KeyCount": len(contents), "IsTruncated": len(keys) > MaxKeys}

    def delete_objects(self, Bucket, Delete, **kwargs):
        keys = [o["Key"] for o in Delete["Objects"]]
        self.calls.append(("delete_objects", {"Bucket": Bucket, "Keys": keys}))
        for key in keys:
            self.objects.pop(key, None)
        return {}

    def head_bucket(self, Bucket):
        self.calls.append(("head_bucket", {"Bucket": Bucket}))
        return {}

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return self._presigner.generate_presigned_url(
            ClientMethod=ClientMethod, Params=Params, ExpiresIn=ExpiresIn
        )

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def app_settings() -> Settings:
    """Settings for a local MinIO backend."""
    return Settings(
        _env_file=None,
        use_r2=False,
        minio_endpoint="http://127.0.0.1:9000/",
        minio_bucket="app",
        minio_access_key="minioadmin",
        minio_secret_key="minioadmin",
    )


@pytest.fixture
def storage_settings(app_settings: Settings) -> StorageSettings:
    return resolve_storage_settings(app_settings)


@pytest.fixture
def fake_s3(storage_settings: StorageSettings) -> FakeS3Client:
    return FakeS3Client(presigner=build_s3_client(storage_settings))


@pytest.fixture
def registry(storage_settings: StorageSettings, fake_s3: FakeS3Client) -> StorageRegistry:
    return StorageRegistry.build(storage_settings, s3_client=fake_s3)


@pytest.fixture
def reported():
    """Capture exceptions sent to the error tracker."""
    with patch("tododiary.services.profile_image.report_exception") as mock:
        yield mock


@pytest.fixture
def mock_http():
    """
    Send requests from httpx.AsyncClient instances created by the code
    under test to an in-process handler.

    Usage: `seen = mock_http(handler)`; `seen` collects every request.
    """
    real_client = httpx.AsyncClient
    patchers = []

    def install(handler) -> list[httpx.Request]:
        seen: list[httpx.Request] = []

        def record(request: httpx.Request):
            seen.append(request)
            return handler(request)

        def build_client(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(record)
            return real_client(*args, **kwargs)

        patcher = patch("httpx.AsyncClient", side_effect=build_client)
        patcher.start()
        patchers.append(patcher)
        return seen

    yield install

    for patcher in patchers:
        patcher.stop()


def get_test_app(registry: StorageRegistry, user_id: str = TEST_USER_ID) -> FastAPI:
    """Create a test FastAPI app with overridden dependencies."""
    from tododiary.main import app
    from tododiary.api.deps import get_registry
    from tododiary.auth.dependencies import get_current_user_id

    async def override_get_current_user_id():
        return user_id

    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_current_user_id] = override_get_current_user_id

    return app


@pytest.fixture
async def client(registry: StorageRegistry) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = get_test_app(registry)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Clean up overrides
    app.dependency_overrides.clear()


@pytest.fixture
async def anonymous_client(registry: StorageRegistry) -> AsyncGenerator[AsyncClient, None]:
    """Client without the auth override (real session dependency)."""
    from tododiary.main import app
    from tododiary.api.deps import get_registry

    app.dependency_overrides[get_registry] = lambda: registry

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
