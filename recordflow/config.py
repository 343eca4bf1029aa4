"""
RecordFlow - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "RecordFlow"
    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    base_url: str = "http://localhost:8000"  # Base URL for links in notifications

    # ===========================================
    # DATABASE CONFIGURATION
    # ===========================================
    database_url_async: str = "sqlite+aiosqlite:///./recordflow.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # ===========================================
    # CORS
    # ===========================================
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ===========================================
    # SLACK NOTIFICATIONS
    # ===========================================
    slack_webhook_url: Optional[str] = None
    slack_channel: Optional[str] = None
    slack_username: str = "RecordFlow Bot"
    slack_icon_emoji: str = ":clipboard:"
    slack_timeout_seconds: float = 10.0

    # ===========================================
    # EMAIL CONFIGURATION
    # ===========================================
    mail_from: str = "noreply@recordflow.local"
    mail_from_name: str = "RecordFlow"
    mail_server: Optional[str] = None
    mail_port: int = 587
    mail_username: Optional[str] = None
    mail_password: Optional[str] = None
    mail_starttls: bool = True
    sendgrid_api_key: Optional[str] = None

    # ===========================================
    # WORKFLOW CONFIGURATION
    # ===========================================
    # Stages seeded when the stage table is empty, in sort order
    default_stage_names: str = "Approval Required"
    # Number of active stages used when no amount rule matches
    default_stage_limit: int = 3
    # Record fields that must be non-empty before a workflow can start
    workflow_required_fields: str = "title,client_name"
    # Directory role whose members review resource-adjustment requests
    adjustment_reviewer_role: str = "pmo"

    @property
    def default_stage_names_list(self) -> List[str]:
        return [name.strip() for name in self.default_stage_names.split(",") if name.strip()]

    @property
    def workflow_required_fields_list(self) -> List[str]:
        return [name.strip() for name in self.workflow_required_fields.split(",") if name.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url_async.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
