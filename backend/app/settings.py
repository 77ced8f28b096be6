from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore",
    )

    app_name: str = "creator-contests"
    environment: str = Field(default="local", validation_alias=AliasChoices("ENVIRONMENT", "CREATOR_CONTESTS_ENVIRONMENT"))
    database_url: str = Field(
        default="postgresql+asyncpg://postgres:postgres@db:5432/creator_contests",
        validation_alias=AliasChoices("DATABASE_URL", "CREATOR_CONTESTS_DATABASE_URL"),
    )
    redis_url: str = Field(default="redis://redis:6379/0", validation_alias=AliasChoices("REDIS_URL", "CREATOR_CONTESTS_REDIS_URL"))
    celery_enabled: bool = Field(default=True, validation_alias=AliasChoices("CELERY_ENABLED", "CREATOR_CONTESTS_CELERY_ENABLED"))
    ownership_pending_scan_limit: int = Field(default=10, validation_alias=AliasChoices("OWNERSHIP_PENDING_SCAN_LIMIT", "CREATOR_CONTESTS_OWNERSHIP_PENDING_SCAN_LIMIT"))
    verification_conflict_url_limit: int = Field(default=100, validation_alias=AliasChoices("VERIFICATION_CONFLICT_URL_LIMIT", "CREATOR_CONTESTS_VERIFICATION_CONFLICT_URL_LIMIT"))
    raw_video_bucket: str = Field(default="contest-videos", validation_alias=AliasChoices("RAW_VIDEO_BUCKET", "CREATOR_CONTESTS_RAW_VIDEO_BUCKET"))

    @property
    def async_database_url(self) -> str:
        if self.database_url.startswith("postgresql+"):
            return self.database_url
        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return self.database_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
