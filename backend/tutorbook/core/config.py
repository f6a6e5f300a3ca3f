# backend/tutorbook/core/config.py
import json
import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Annotated, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .constants import BRAND_NAME, DEFAULT_LESSON_MINUTES

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    app_name: str = BRAND_NAME
    environment: Literal["development", "test", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Database
    database_url: str = Field(
        default="sqlite:///./tutorbook.db",
        description="SQLAlchemy database URL",
    )
    database_echo: bool = False
    auto_create_tables: bool = Field(
        default=False,
        description="Create tables on startup (local development only)",
    )

    # Frontend / CORS
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Base URL used for checkout return pages",
    )
    allowed_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000"]
    )

    # Identity (forwarded by the hosting platform's auth layer)
    principal_header: str = Field(
        default="x-ms-client-principal",
        description="Header carrying the base64-encoded client principal",
    )

    # Stripe
    stripe_secret_key: Optional[SecretStr] = Field(
        default=None,
        description="Stripe secret key; checkout runs in mock mode when unset",
    )
    stripe_webhook_secret: Optional[SecretStr] = Field(
        default=None,
        description="Stripe webhook signing secret",
    )
    checkout_currency: str = "usd"
    checkout_session_minutes: int = Field(
        default=30,
        ge=30,
        le=1440,
        description="Lifetime of a Checkout Session; Stripe accepts 30 minutes to 24 hours",
    )

    # Booking and pricing
    trial_price: Decimal = Field(
        default=Decimal("5"),
        description="Flat price of the one-time trial lesson",
    )
    default_lesson_minutes: int = DEFAULT_LESSON_MINUTES
    pending_hold_minutes: int = Field(
        default=30,
        description="Minutes an unpaid booking keeps its slot before it can be released",
    )

    # Background jobs
    autocomplete_secret: Optional[SecretStr] = Field(
        default=None,
        description="Shared secret for the lesson auto-complete job",
    )
    autocomplete_grace_hours: int = 24

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        if isinstance(value, str):
            if value.strip().startswith("["):
                return json.loads(value)
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("trial_price")
    @classmethod
    def _trial_price_positive(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("trial_price must be positive")
        return value

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key and self.stripe_secret_key.get_secret_value())


settings = Settings()
