"""
Tests for service layer business logic.
"""
import re
from unittest.mock import MagicMock, patch

import httpx
import pytest

from tododiary.config import settings
from tododiary.services.image_upload import (
    UploadRequest,
    UploadValidationError,
    generate_diary_image_upload_url,
    generate_upload_url,
    get_extension,
)
from tododiary.services.profile_image import (
    ImageUrlNotAllowedError,
    check_image_url,
    delete_old_profile_images,
    schedule_profile_image_cleanup,
    upload_profile_image_from_url,
)
from tododiary.storage.client import StorageError, StorageRegistry, StorageResult
from tododiary.storage.prefixes import MB, PREFIX_CONFIGS, PrefixName, validate_file


def diary_request(**overrides) -> UploadRequest:
    values = dict(
        user_id="user-1",
        file_name="photo.png",
        file_type="image/png",
        file_size=1_000_000,
        prefix=PrefixName.DIARIES,
    )
    values.update(overrides)
    return UploadRequest(**values)


class TestPrefixPolicy:
    """Tests for prefix policy validation."""

    def test_max_size_accepted(self):
        """Test a file of exactly max_file_size bytes is accepted."""
        limit = PREFIX_CONFIGS[PrefixName.DIARIES].max_file_size
        assert validate_file("diaries", "image/png", limit) == (True, None, None)

    def test_max_size_plus_one_rejected(self):
        limit = PREFIX_CONFIGS[PrefixName.DIARIES].max_file_size
        valid, field, message = validate_file("diaries", "image/png", limit + 1)

        assert not valid
        assert field == "file_size"
        assert "5MB" in message

    @pytest.mark.parametrize("mime", ["image/jpeg", "image/jpg", "image/png", "image/webp"])
    def test_allowed_mime_types(self, mime: str):
        assert validate_file("avatars", mime, 1)[0]

    @pytest.mark.parametrize("mime", ["image/gif", "application/pdf", "IMAGE/PNG", ""])
    def test_disallowed_mime_types(self, mime: str):
        valid, field, _ = validate_file("avatars", mime, 1)
        assert not valid
        assert field == "file_type"

    def test_unknown_prefix(self):
        valid, field, message = validate_file("documents", "image/png", 1)

        assert not valid
        assert field == "prefix"
        assert "documents" in message

    def test_size_limit_in_mb(self):
        assert PREFIX_CONFIGS[PrefixName.AVATARS].max_file_size == 5 * MB
        assert PREFIX_CONFIGS[PrefixName.AVATARS].max_file_size_mb == 5


class TestGenerateUploadUrl:
    """Tests for presigned upload URL orchestration."""

    def test_gif_rejected_with_allowed_list(self, registry: StorageRegistry):
        with pytest.raises(UploadValidationError) as exc_info:
            generate_upload_url(diary_request(file_type="image/gif"), registry)

        assert exc_info.value.field == "file_type"
        for mime in ("image/jpeg", "image/png", "image/webp"):
            assert mime in exc_info.value.message

    def test_oversize_rejected_mentioning_limit(self, registry: StorageRegistry):
        with pytest.raises(UploadValidationError) as exc_info:
            generate_upload_url(diary_request(file_size=6_000_000), registry)

        assert exc_info.value.field == "file_size"
        assert "5MB" in exc_info.value.message

    def test_validation_happens_before_signing(self, registry: StorageRegistry):
        """Test nothing is signed when validation fails."""
        with patch.object(registry.diaries, "create_signed_upload_url") as sign:
            with pytest.raises(UploadValidationError):
                generate_upload_url(diary_request(file_type="image/gif"), registry)
            sign.assert_not_called()

    def test_unknown_prefix_rejected(self, registry: StorageRegistry):
        with pytest.raises(UploadValidationError) as exc_info:
            generate_upload_url(diary_request(prefix="documents"), registry)

        assert exc_info.value.field == "prefix"

    def test_valid_png(self, registry: StorageRegistry):
        """Test a valid request returns url, headers, public URL, expiry and path."""
        result = generate_upload_url(diary_request(), registry)

        assert result.path.startswith("user-1/")
        assert result.path.endswith(".png")
        assert re.fullmatch(r"user-1/\d{13}-[0-9a-f]{8}\.png", result.path)
        assert result.headers == {"Content-Type": "image/png"}
        assert "/app/diaries/user-1/" in result.url
        assert result.public_url == f"http://127.0.0.1:9000/app/diaries/{result.path}"
        assert result.expires_at.endswith("Z")

    def test_paths_are_unique(self, registry: StorageRegistry):
        first = generate_upload_url(diary_request(), registry)
        second = generate_upload_url(diary_request(), registry)

        assert first.path != second.path

    def test_avatars_prefix(self, registry: StorageRegistry):
        result = generate_upload_url(diary_request(prefix="avatars", file_name="me.JPG", file_type="image/jpeg"), registry)

        assert result.public_url.startswith("http://127.0.0.1:9000/app/avatars/user-1/")
        assert result.path.endswith(".jpg")

    def test_diary_helper_uses_diaries_prefix(self, registry: StorageRegistry):
        result = generate_diary_image_upload_url(
            user_id="user-1",
            file_name="photo.webp",
            file_type="image/webp",
            file_size=10,
            registry=registry,
        )

        assert "/diaries/" in result.public_url

    @pytest.mark.parametrize("file_name,expected", [
        ("photo.png", "png"),
        ("archive.tar.GZ", "gz"),
        ("noextension", "jpg"),
        ("trailingdot.", "jpg"),
    ])
    def test_get_extension(self, file_name: str, expected: str):
        assert get_extension(file_name) == expected


class TestDeleteOldProfileImages:
    """Tests for profile image retention."""

    def test_no_images_is_noop(self, registry: StorageRegistry, fake_s3):
        assert delete_old_profile_images("user-1", registry.avatars) == 0
        assert "delete_objects" not in fake_s3.call_names()

    def test_single_image_is_noop(self, registry: StorageRegistry, fake_s3):
        """Test no delete call is issued when exactly one image exists."""
        registry.avatars.upload("user-1/profile-1.jpg", b"1")

        assert delete_old_profile_images("user-1", registry.avatars) == 0
        assert "delete_objects" not in fake_s3.call_names()

    def test_keeps_only_newest(self, registry: StorageRegistry, fake_s3):
        """Test all but the newest image are removed in one batch."""
        for i in range(3):
            registry.avatars.upload(f"user-1/profile-{i}.jpg", b"x")

        deleted = delete_old_profile_images("user-1", registry.avatars)

        assert deleted == 2
        assert list(fake_s3.objects) == ["avatars/user-1/profile-2.jpg"]
        assert fake_s3.call_names().count("delete_objects") == 1

    def test_second_call_is_noop(self, registry: StorageRegistry, fake_s3):
        for i in range(3):
            registry.avatars.upload(f"user-1/profile-{i}.jpg", b"x")

        delete_old_profile_images("user-1", registry.avatars)
        assert delete_old_profile_images("user-1", registry.avatars) == 0

        assert len(fake_s3.objects) == 1
        assert fake_s3.call_names().count("delete_objects") == 1

    def test_other_users_untouched(self, registry: StorageRegistry, fake_s3):
        registry.avatars.upload("user-1/profile-1.jpg", b"x")
        registry.avatars.upload("user-1/profile-2.jpg", b"x")
        registry.avatars.upload("user-2/profile-1.jpg", b"x")

        delete_old_profile_images("user-1", registry.avatars)

        assert "avatars/user-2/profile-1.jpg" in fake_s3.objects

    def test_list_error_reported_not_raised(self, reported):
        storage = MagicMock()
        storage.list.return_value = StorageResult(error=StorageError("list", "boom"))

        assert delete_old_profile_images("user-1", storage) is None
        storage.remove.assert_not_called()
        reported.assert_called_once()
        assert reported.call_args.kwargs["tags"] == {"user_id": "user-1"}

    def test_remove_error_reported_not_raised(self, registry: StorageRegistry, reported):
        registry.avatars.upload("user-1/profile-1.jpg", b"x")
        registry.avatars.upload("user-1/profile-2.jpg", b"x")

        with patch.object(registry.avatars, "remove", return_value=StorageResult(error=StorageError("remove", "boom"))):
            assert delete_old_profile_images("user-1", registry.avatars) is None

        reported.assert_called_once()

    def test_unexpected_exception_swallowed(self, reported):
        storage = MagicMock()
        storage.list.side_effect = RuntimeError("unexpected")

        assert delete_old_profile_images("user-1", storage) is None
        reported.assert_called_once()


class TestScheduleCleanup:
    """Tests for fire-and-forget cleanup scheduling."""

    def test_enqueues_task(self):
        with patch("tododiary.tasks.cleanup_profile_images.cleanup_profile_images_task.delay") as delay:
            assert schedule_profile_image_cleanup("user-1") is True
        delay.assert_called_once_with("user-1")

    def test_enqueue_failure_reported(self, reported):
        with patch(
            "tododiary.tasks.cleanup_profile_images.cleanup_profile_images_task.delay",
            side_effect=ConnectionError("broker down"),
        ):
            assert schedule_profile_image_cleanup("user-1") is False
        reported.assert_called_once()


LINE_AVATAR_URL = "https://profile.line-scdn.net/0h-avatar"


def image_response(body: bytes = b"png-bytes", content_type: str = "image/png", **kwargs) -> httpx.Response:
    return httpx.Response(200, headers={"content-type": content_type, **kwargs.pop("headers", {})}, content=body, **kwargs)


class TestCheckImageUrl:
    """Tests for the import URL allowlist."""

    def test_line_avatar_allowed(self):
        check_image_url(LINE_AVATAR_URL)

    @pytest.mark.parametrize("image_url", [
        "http://profile.line-scdn.net/0h-avatar",
        "https://example.com/a.png",
        "https://169.254.169.254/latest/meta-data",
        "https://127.0.0.1/a.png",
        "ftp://profile.line-scdn.net/a.png",
    ])
    def test_rejected(self, image_url: str):
        with pytest.raises(ImageUrlNotAllowedError):
            check_image_url(image_url)

    @pytest.mark.parametrize("host", ["169.254.169.254", "10.0.0.5", "::1"])
    def test_internal_ip_rejected_even_when_listed(self, host: str):
        """Test internal addresses stay blocked if added to the allowlist."""
        url_host = f"[{host}]" if ":" in host else host
        with patch.object(settings, "profile_image_allowed_hosts", [host]):
            with pytest.raises(ImageUrlNotAllowedError):
                check_image_url(f"https://{url_host}/a.png")

    def test_custom_allowed_host(self):
        with patch.object(settings, "profile_image_allowed_hosts", ["cdn.example.com"]):
            check_image_url("https://CDN.example.com/a.png")
            with pytest.raises(ImageUrlNotAllowedError):
                check_image_url(LINE_AVATAR_URL)


class TestUploadProfileImageFromUrl:
    """Tests for importing a profile image from a remote URL."""

    @pytest.mark.asyncio
    async def test_import_success(self, registry: StorageRegistry, fake_s3, mock_http):
        seen = mock_http(lambda request: image_response(b"jpeg-bytes", "image/jpeg"))

        with patch("tododiary.services.profile_image.schedule_profile_image_cleanup") as schedule:
            result = await upload_profile_image_from_url(LINE_AVATAR_URL, "user-1", registry.avatars)

        assert result.error is None
        assert re.fullmatch(r"http://127\.0\.0\.1:9000/app/avatars/user-1/profile-\d+\.jpg", result.url)
        assert [str(r.url) for r in seen] == [LINE_AVATAR_URL]
        stored = next(iter(fake_s3.objects.values()))
        assert stored["Body"] == b"jpeg-bytes"
        schedule.assert_called_once_with("user-1")

    @pytest.mark.asyncio
    async def test_content_type_parameters_stripped(self, registry: StorageRegistry, fake_s3, mock_http):
        """Test `image/png; charset=...` is stored as image/png with a .png key."""
        mock_http(lambda request: image_response(content_type="image/PNG; charset=binary"))

        with patch("tododiary.services.profile_image.schedule_profile_image_cleanup"):
            result = await upload_profile_image_from_url(LINE_AVATAR_URL, "user-1", registry.avatars)

        assert result.error is None
        assert result.url.endswith(".png")
        stored = next(iter(fake_s3.objects.values()))
        assert stored["ContentType"] == "image/png"

    @pytest.mark.asyncio
    async def test_not_an_image(self, registry: StorageRegistry, fake_s3, reported, mock_http):
        mock_http(lambda request: image_response(b"<html></html>", "text/html; charset=utf-8"))

        result = await upload_profile_image_from_url(LINE_AVATAR_URL, "user-1", registry.avatars)

        assert result.url is None
        assert result.error == "Invalid content type: not an image"
        assert fake_s3.objects == {}
        reported.assert_called_once()

    @pytest.mark.asyncio
    async def test_http_error_status(self, registry: StorageRegistry, fake_s3, reported, mock_http):
        mock_http(lambda request: httpx.Response(404))

        with patch("tododiary.services.profile_image.schedule_profile_image_cleanup") as schedule:
            result = await upload_profile_image_from_url(LINE_AVATAR_URL, "user-1", registry.avatars)

        assert result.url is None
        assert result.error == "Failed to fetch image: 404 Not Found"
        assert fake_s3.objects == {}
        schedule.assert_not_called()
        assert reported.call_args.kwargs["service"] == "profile-image-upload"

    @pytest.mark.asyncio
    async def test_unsupported_image_type(self, registry: StorageRegistry, fake_s3, reported, mock_http):
        mock_http(lambda request: image_response(b"gif", "image/gif"))

        result = await upload_profile_image_from_url(LINE_AVATAR_URL, "user-1", registry.avatars)

        assert result.url is None
        assert "image/gif" in result.error
        assert fake_s3.objects == {}

    @pytest.mark.asyncio
    async def test_oversize_stream_stops_early(self, registry: StorageRegistry, fake_s3, reported, mock_http):
        """Test a chunked body larger than 5MB is abandoned once past the limit."""
        pulled = 0

        async def chunks():
            nonlocal pulled
            for _ in range(64):
                pulled += MB
                yield b"\0" * MB

        mock_http(lambda request: httpx.Response(200, headers={"content-type": "image/png"}, content=chunks()))

        result = await upload_profile_image_from_url(LINE_AVATAR_URL, "user-1", registry.avatars)

        assert result.url is None
        assert result.error == "Image size exceeds 5MB limit"
        assert pulled <= 6 * MB
        assert fake_s3.objects == {}

    @pytest.mark.asyncio
    async def test_oversize_content_length_rejected(self, registry: StorageRegistry, fake_s3, reported, mock_http):
        """Test a declared Content-Length over the limit is rejected before reading."""
        mock_http(lambda request: image_response(b"x", headers={"content-length": str(10 * MB)}))

        result = await upload_profile_image_from_url(LINE_AVATAR_URL, "user-1", registry.avatars)

        assert result.error == "Image size exceeds 5MB limit"
        assert fake_s3.objects == {}

    @pytest.mark.asyncio
    async def test_exact_limit_accepted(self, registry: StorageRegistry, fake_s3, mock_http):
        mock_http(lambda request: image_response(b"x" * (5 * MB)))

        with patch("tododiary.services.profile_image.schedule_profile_image_cleanup"):
            result = await upload_profile_image_from_url(LINE_AVATAR_URL, "user-1", registry.avatars)

        assert result.error is None
        assert len(fake_s3.objects) == 1

    @pytest.mark.asyncio
    async def test_disallowed_host_not_fetched(self, registry: StorageRegistry, reported, mock_http):
        seen = mock_http(lambda request: image_response())

        result = await upload_profile_image_from_url("https://example.com/a.png", "user-1", registry.avatars)

        assert result.url is None
        assert "example.com" in result.error
        assert seen == []

    @pytest.mark.asyncio
    async def test_redirect_off_allowlist_not_followed(self, registry: StorageRegistry, fake_s3, reported, mock_http):
        """Test a redirect to an internal address is refused before it is sent."""
        seen = mock_http(lambda request: httpx.Response(
            302, headers={"location": "http://169.254.169.254/latest/meta-data"}
        ))

        result = await upload_profile_image_from_url(LINE_AVATAR_URL, "user-1", registry.avatars)

        assert result.url is None
        assert [str(r.url) for r in seen] == [LINE_AVATAR_URL]
        assert fake_s3.objects == {}

    @pytest.mark.asyncio
    async def test_storage_failure(self, registry: StorageRegistry, reported, mock_http):
        mock_http(lambda request: image_response())

        with patch.object(
            registry.avatars, "upload", return_value=StorageResult(error=StorageError("upload", "boom"))
        ):
            result = await upload_profile_image_from_url(LINE_AVATAR_URL, "user-1", registry.avatars)

        assert result.url is None
        assert "boom" in result.error
