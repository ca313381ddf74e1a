"""
Application settings, read from the environment (prefix ``VIDSHARE_``) or a ``.env`` file.
"""
from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8",
        env_prefix="VIDSHARE_", case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "Video Sharing Backend"
    app_version: str = "1.0.0"
    environment: str = "development"
    log_level: str = "INFO"
    api_prefix: str = "/api/v1"
    cors_origins: List[str] = ["*"]

    # ── Database ─────────────────────────────────────────────────────────
    database_backend: str = "mongo"  # "mongo" or "memory"
    mongo_uri: str = "mongodb://localhost:27017"
    database_name: str = "vidshare"

    # ── Auth ─────────────────────────────────────────────────────────────
    access_token_secret: str = "change-me-access"
    access_token_expire_minutes: int = 60 * 24
    refresh_token_secret: str = "change-me-refresh"
    refresh_token_expire_days: int = 10
    jwt_algorithm: str = "HS256"
    bcrypt_rounds: int = 12
    cookie_secure: bool = True

    # ── Media ────────────────────────────────────────────────────────────
    upload_dir: str = "uploads"
    media_url_prefix: str = "/static"

    # ── Pagination ───────────────────────────────────────────────────────
    default_page_limit: int = 10
    comments_max_limit: int = 100
    tweets_max_limit: int = 100
    videos_max_limit: int = 50
    subscriptions_max_limit: int = 100


@lru_cache
def get_settings() -> Settings:
    return Settings()
