# harvester/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Absolute path to the project's .env (this file lives in <root>/harvester/config.py)
ENV_FILE = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(ENV_FILE, override=False)  # pre-load into the process environment


class Settings(BaseSettings):
    # ---- Persistence surface ----
    DATABASE_URL: Optional[str] = None
    DB_POOL_MIN_SIZE: int = 1
    # Large ceiling with short idle/acquire timeouts; fetch/parse dominate latency.
    DB_POOL_MAX_SIZE: int = 20
    DB_ACQUIRE_TIMEOUT_S: float = 5.0
    DB_MAX_INACTIVE_CONNECTION_LIFETIME_S: float = 30.0
    STATEMENT_TIMEOUT_MS: int = 30000
    LOCK_TIMEOUT_MS: int = 5000

    # ---- Fetching ----
    FETCH_TIMEOUT_S: float = 15.0
    FETCH_VERIFY_TLS: bool = True
    FETCH_USER_AGENT: str = "news-harvester/1.0"

    # ---- Ingestion ----
    INGEST_MAX_CONCURRENCY: int = Field(default=5, ge=1)
    PARSE_RETRY_DELAY_S: float = 1.0
    OUTLINE_MAX_NODES: int = 10_000
    OUTLINE_MAX_DEPTH: int = 64
    DEFAULT_SOURCE_TYPE_ID: int = 1

    # ---- Side-channel artifacts ----
    ARTIFACTS_ENABLED: bool = True
    ARTIFACTS_DIR: str = "downloads"

    LOG_LEVEL: str = "INFO"

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def require_database_url(settings: Optional[Settings] = None) -> str:
    """
    Runtime check with a clear message when the connection string is missing.
    """
    cfg = settings or get_settings()
    if not cfg.DATABASE_URL:
        raise RuntimeError(
            "DATABASE_URL is not set. Export it or add it to "
            f"{ENV_FILE}."
        )
    return cfg.DATABASE_URL
