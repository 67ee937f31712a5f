"""Incident desk configuration system using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class IncidentDeskConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "INCIDENT DESK"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: str = "http://localhost:5173"

    # Database
    database_url: str = "sqlite+aiosqlite:///./incident_desk.db"

    # Auth
    secret_key: str = "CHANGE_ME_IN_PRODUCTION"
    jwt_algorithm: str = "HS256"
    jwt_expiry_minutes: int = 60
    login_max_attempts: int = 5
    login_window_seconds: int = 300

    # Bootstrap admin, created at startup when both are set and the username is free
    admin_username: Optional[str] = None
    admin_password: Optional[str] = None

    # Logging
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Workflow
    status_transitions: str = "unrestricted"  # unrestricted / linear

    # Reads
    audit_log_limit: int = 100
    incident_list_limit: int = 500

    @field_validator("status_transitions")
    @classmethod
    def validate_status_transitions(cls, v: str) -> str:
        allowed = {"unrestricted", "linear"}
        if v not in allowed:
            raise ValueError(f"status_transitions must be one of {allowed}")
        return v

    @field_validator("audit_log_limit", "incident_list_limit")
    @classmethod
    def validate_positive_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError("limits must be positive")
        return v

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent.parent


def get_config() -> IncidentDeskConfig:
    """Factory function to create config instance."""
    return IncidentDeskConfig()
