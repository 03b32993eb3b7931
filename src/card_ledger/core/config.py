from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    secret_key: str = "change-me"

    database_url: str = "sqlite:///./card_ledger.db"

    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: Path = Path(".local_storage")

    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_bucket: str = "card-ledger"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None

    anthropic_api_key: str | None = None
    anthropic_model: str = "claude-sonnet-4-5"
    anthropic_base_url: str = "https://api.anthropic.com/v1"
    statement_ai_timeout_seconds: float = 120.0
    statement_ai_max_chars: int = 60000
    statement_ai_max_tokens: int = 8192

    # Bulk import
    import_concurrency_limit: int = 4
    import_max_active_jobs: int = 8
    import_job_retention: int = 50
    max_upload_bytes: int = 10 * 1024 * 1024
    auto_create_cards: bool = True

    init_user_email: str | None = None
    init_user_password: str | None = None

    access_token_exp_minutes: int = 60 * 24


settings = Settings()
