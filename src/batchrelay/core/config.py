"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=4000, alias="PORT")
    public_base_url: str = Field(default="", alias="PUBLIC_BASE_URL")

    # Airtable record store
    airtable_pat: str = Field(default="", alias="AIRTABLE_PAT")
    airtable_base_id: str = Field(default="", alias="AIRTABLE_BASE_ID")
    airtable_table: str = Field(default="", alias="AIRTABLE_TABLE")
    airtable_api_base: str = Field(default="https://api.airtable.com", alias="AIRTABLE_API_BASE")

    # WaveSpeed provider
    wavespeed_api_key: str = Field(default="", alias="WAVESPEED_API_KEY")
    wavespeed_api_base: str = Field(default="https://api.wavespeed.ai", alias="WAVESPEED_API_BASE")
    wavespeed_model: str = Field(default="bytedance/seedream-v4", alias="WAVESPEED_MODEL")

    # Fal provider (queue API)
    fal_key: str = Field(default="", alias="FAL_KEY")
    fal_queue_base: str = Field(default="https://queue.fal.run", alias="FAL_QUEUE_BASE")
    fal_model: str = Field(
        default="fal-ai/bytedance/seedream/v4/text-to-image", alias="FAL_MODEL"
    )
    fal_edit_model: str = Field(default="fal-ai/bytedance/seedream/v4/edit", alias="FAL_EDIT_MODEL")

    # Batch dispatch
    max_batch_count: int = Field(default=10, ge=1, alias="MAX_BATCH_COUNT")
    submission_stagger_seconds: float = Field(
        default=1.2, ge=0, alias="SUBMISSION_STAGGER_SECONDS"
    )
    http_timeout_seconds: float = Field(default=60.0, gt=0, alias="HTTP_TIMEOUT_SECONDS")

    @property
    def callback_base_url(self) -> str:
        """Public base URL without trailing slashes."""
        return self.public_base_url.rstrip("/")

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate required configuration on startup.

        Every external endpoint and credential is required. Fails fast with one
        message listing all missing variables.
        """
        missing = []

        if not self.public_base_url:
            missing.append(
                "PUBLIC_BASE_URL: Externally reachable URL of this service (used for webhooks)"
            )
        if not self.airtable_pat:
            missing.append("AIRTABLE_PAT: Personal access token from https://airtable.com/create/tokens")
        if not self.airtable_base_id:
            missing.append("AIRTABLE_BASE_ID: Base id (starts with 'app')")
        if not self.airtable_table:
            missing.append("AIRTABLE_TABLE: Table name or id holding batch records")
        if not self.wavespeed_api_key:
            missing.append("WAVESPEED_API_KEY: Get your key from https://wavespeed.ai/accesskey")
        if not self.fal_key:
            missing.append("FAL_KEY: Get your key from https://fal.ai/dashboard/keys")

        if missing:
            error_msg = "CRITICAL: Missing required environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nThe application cannot start without these variables."
            error_msg += "\nPlease update your .env file and restart."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        renderer = [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            *renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
