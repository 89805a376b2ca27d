"""Configuration settings using Pydantic"""
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Supabase Configuration
    supabase_url: str = Field(..., alias="SUPABASE_URL")
    supabase_key: str = Field(..., alias="SUPABASE_KEY")
    supabase_service_role_key: str = Field(..., alias="SUPABASE_SERVICE_ROLE_KEY")

    # Storage buckets
    day_media_bucket: str = Field(default="day-media", alias="DAY_MEDIA_BUCKET")
    trip_covers_bucket: str = Field(default="trip-covers", alias="TRIP_COVERS_BUCKET")
    storage_cache_control: str = Field(default="3600", alias="STORAGE_CACHE_CONTROL")

    # Supabase Storage accepts at most 100 paths per remove() call
    storage_batch_limit: int = Field(default=100, alias="STORAGE_BATCH_LIMIT")

    # Upload Settings
    upload_concurrency: int = Field(default=8, alias="UPLOAD_CONCURRENCY")
    max_upload_size: int = Field(default=50 * 1024 * 1024, alias="MAX_UPLOAD_SIZE")  # 50MB

    # Verified identities are reused by upload batches for this long
    identity_cache_ttl_seconds: float = Field(default=60, alias="IDENTITY_CACHE_TTL_SECONDS")
    identity_cache_max_entries: int = Field(default=1024, alias="IDENTITY_CACHE_MAX_ENTRIES")

    # Application Settings
    env: str = Field(default="development", alias="ENV")
    log_level: str = Field(default="info", alias="LOG_LEVEL")

    # Security Settings
    request_timeout_seconds: int = Field(default=120, alias="REQUEST_TIMEOUT_SECONDS")

    # CORS Settings
    allowed_origins: str = Field(
        default="http://localhost:3000",
        alias="ALLOWED_ORIGINS",
        description="Comma-separated list of allowed origins for CORS"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
