"""Configuration for the Tutorbook API client."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from environment."""

    api_base_url: str = "http://localhost:8000"
    principal_header: str = "x-ms-client-principal"

    # Identity forwarded to the API in place of the hosting platform's auth layer
    user_id: str = ""
    email: str | None = None
    roles: list[str] = Field(default_factory=lambda: ["authenticated"])

    request_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0

    poll_interval_seconds: float = 2.0
    poll_timeout_seconds: float = 10.0
    notification_cooldown_seconds: float = 3.0

    model_config = SettingsConfigDict(env_prefix="TUTORBOOK_CLIENT_", env_file=".env", extra="ignore")
