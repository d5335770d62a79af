"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_BASE_PATH = Path(os.environ.get("RAPPROCHEMENT_BASE_PATH", Path.cwd()))
ENV_FILE_PATH = APP_BASE_PATH / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_debug: bool = Field(default=False)
    app_log_level: str = Field(default="INFO")
    log_file: Optional[Path] = Field(default=None)

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Reconciliation file store
    store_backend: Literal["memory", "json"] = Field(default="json")
    store_path: Path = Field(default=Path("./data/rapprochements"))

    # Search
    search_min_query_length: int = Field(default=2)

    # Match history
    history_invoice_limit: int = Field(default=20)
    history_display_limit: int = Field(default=10)

    # Entity directory (partners, subscriptions, declarations...)
    entity_directory_url: Optional[str] = Field(default=None)
    entity_directory_token: str = Field(default="")
    entity_directory_timeout_seconds: float = Field(default=30.0)

    # Audit
    audit_export_enabled: bool = Field(default=False)
    audit_max_entries: int = Field(default=10000)
    reports_dir: Path = Field(default=Path("./data/reports"))

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
