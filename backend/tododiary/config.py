"""
Application configuration using Pydantic Settings.
All environment variables are loaded here with sensible defaults.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = "dev"
    log_level: str = "INFO"

    # Redis (Celery broker and result backend)
    redis_url: str = "redis://localhost:6379/0"
    celery_task_always_eager: bool = False  # Run tasks inline (tests/local dev)

    # Better Auth (session lookup only; auth itself lives in the web app)
    better_auth_url: str = "http://localhost:3000"
    better_auth_timeout_seconds: float = 5.0

    # Error tracking
    sentry_dsn: Optional[str] = None

    # Uploads
    upload_presign_expiration: int = 600  # Presigned URL expiration in seconds (10 min)
    profile_image_fetch_timeout_seconds: float = 10.0
    # Hosts profile images may be imported from (LINE avatar CDN)
    profile_image_allowed_hosts: list[str] = ["profile.line-scdn.net"]

    # Backend selection: MinIO for local development, Cloudflare R2 in production
    use_r2: bool = False

    # MinIO (development)
    minio_endpoint: str = "http://127.0.0.1:9000"
    minio_bucket: str = "app"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_public_base_url: Optional[str] = None  # Defaults to {endpoint}/{bucket}

    # Cloudflare R2 (production) - all required when USE_R2=true
    r2_account_id: Optional[str] = None
    r2_bucket: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_public_base_url: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
