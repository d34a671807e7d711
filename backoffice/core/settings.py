from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    secret_key: str = Field(default="change-me", alias="SECRET_KEY")
    allowed_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:5173"], alias="ALLOWED_ORIGINS"
    )

    backend_base_url: str = Field(default="http://localhost:5000/api", alias="BACKEND_BASE_URL")
    backend_timeout_seconds: float = Field(default=20.0, alias="BACKEND_TIMEOUT_SECONDS")

    rate_limit_per_minute: int = Field(default=120, alias="RATE_LIMIT_PER_MINUTE")
    rate_limit_storage_uri: str = Field(default="memory://", alias="RATE_LIMIT_STORAGE_URI")

    public_base_url: str = Field(default="http://localhost:8000", alias="PUBLIC_BASE_URL")
    preview_ttl_seconds: int = Field(default=300, alias="PREVIEW_TTL_SECONDS")
    staging_session_ttl_minutes: int = Field(default=60, alias="STAGING_SESSION_TTL_MINUTES")
    max_upload_size_mb: int = Field(default=10, alias="MAX_UPLOAD_SIZE_MB")
    allowed_upload_extensions: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["pdf", "jpg", "jpeg", "png", "webp", "gif"],
        alias="ALLOWED_UPLOAD_EXTENSIONS",
    )

    @field_validator("allowed_origins", "allowed_upload_extensions", mode="before")
    @classmethod
    def _split_csv(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
