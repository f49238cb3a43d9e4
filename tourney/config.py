"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./tourney.db"
    DATABASE_FOREIGN_KEYS: bool = True  # SQLite only: PRAGMA foreign_keys=ON

    # API Security
    API_KEY: str = ""  # Required for /admin endpoints (empty = open in development only)
    API_KEY_HEADER: str = "X-API-Key"
    ENVIRONMENT: str = "development"  # "production" makes an empty API_KEY fail closed
    METRICS_BEARER_TOKEN: str = ""  # Empty = /metrics is public

    # ==========================================================================
    # Object storage (Cloudflare R2 / S3-compatible)
    # ==========================================================================

    STORAGE_BACKEND: str = "memory"  # "r2" | "memory"
    R2_ENDPOINT_URL: str = ""  # https://<account_id>.r2.cloudflarestorage.com
    R2_ACCESS_KEY_ID: str = ""
    R2_SECRET_ACCESS_KEY: str = ""
    R2_BUCKET: str = "tourney-archives"
    R2_PUBLIC_BASE_URL: str = ""  # Public bucket URL, used for blob_url display only

    # ==========================================================================
    # Archive layout
    # ==========================================================================

    ARCHIVE_PREFIX: str = "tournaments"
    ARCHIVE_FORMAT_VERSION: str = "1.0"  # File format, not the UI version tag
    ARCHIVE_CACHE_MAX_AGE_SECONDS: int = 31536000  # Snapshots never change in place

    # Index update: optimistic read-modify-write
    ARCHIVE_INDEX_MAX_ATTEMPTS: int = 5
    ARCHIVE_INDEX_BACKOFF_BASE_SECONDS: float = 1.0  # 1s -> 2s -> 4s -> 5s
    ARCHIVE_INDEX_BACKOFF_MAX_SECONDS: float = 5.0

    # Index listing: NotFound may be eventual consistency lag
    ARCHIVE_LIST_MAX_RETRIES: int = 3
    ARCHIVE_LIST_BACKOFF_BASE_SECONDS: float = 0.5  # 0.5s -> 1s -> 2s

    # ==========================================================================
    # Deletion reconciler
    # ==========================================================================

    RECONCILER_INVESTIGATION_LIMIT: int = 20  # Max row ids reported per table

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def build_archive_path(tournament_id: int, prefix: str = "") -> str:
    """Object key of a tournament snapshot: {prefix}/{tournament_id}/archive.json"""
    prefix = prefix or get_settings().ARCHIVE_PREFIX
    return f"{prefix}/{tournament_id}/archive.json"


def build_index_path(prefix: str = "") -> str:
    """Object key of the global archive index: {prefix}/index.json"""
    prefix = prefix or get_settings().ARCHIVE_PREFIX
    return f"{prefix}/index.json"
