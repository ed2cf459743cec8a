from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

from image_uploader.schemas.upload import StoreConfig, WaitPolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        protected_namespaces=(),
    )

    env: Literal["local", "prod", "test"] = Field(default="local", alias="ENV")
    debug: bool = Field(default=True, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    db_url: str = Field(
        default="sqlite+aiosqlite:///./images.db",
        alias="DATABASE_URL",
    )

    storage_backend: Literal["s3", "local"] = Field(default="s3", alias="STORAGE_BACKEND")
    local_storage_dir: str = Field(default="storage", alias="LOCAL_STORAGE_DIR")

    s3_endpoint: HttpUrl | None = Field(default=None, alias="S3_ENDPOINT_URL")
    s3_access_key: str = Field(default="change-me", alias="S3_ACCESS_KEY")
    s3_secret_key: str = Field(default="change-me", alias="S3_SECRET_KEY")
    s3_region: str | None = Field(default=None, alias="S3_REGION")
    s3_bucket_images: str = Field(default="chat-images", alias="S3_BUCKET_IMAGES")
    s3_public_base_url: str | None = Field(default=None, alias="S3_PUBLIC_BASE_URL")
    s3_acl: str = Field(default="public-read", alias="S3_ACL")
    s3_wait_delay_seconds: float = Field(default=5.0, ge=0, alias="S3_WAIT_DELAY_SECONDS")
    s3_wait_max_attempts: int = Field(default=20, ge=1, alias="S3_WAIT_MAX_ATTEMPTS")

    public_dir: str = Field(default="public", alias="PUBLIC_DIR")
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=1, alias="MAX_UPLOAD_BYTES")
    thumbnail_max_size: int = Field(default=300, ge=1, alias="THUMBNAIL_MAX_SIZE")

    @property
    def public_path(self) -> Path:
        return Path(self.public_dir).resolve()

    def store_config(self) -> StoreConfig:
        return StoreConfig(
            bucket=self.s3_bucket_images,
            region=self.s3_region,
            access_key=self.s3_access_key,
            secret_key=self.s3_secret_key,
            endpoint_url=str(self.s3_endpoint).rstrip("/") if self.s3_endpoint else None,
            public_base_url=self.s3_public_base_url,
            acl=self.s3_acl,
            wait=WaitPolicy(
                delay_seconds=self.s3_wait_delay_seconds,
                max_attempts=self.s3_wait_max_attempts,
            ),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
