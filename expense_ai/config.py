"""
Configuration for the ExpenseAI API.

Uses pydantic-settings so every value can come from the environment or a
`.env` file. Secrets have no defaults and are validated at startup.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    environment: str = Field(default="development", description="development, production or test")
    debug: bool = Field(default=False)
    api_version: str = Field(default="v1")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    database_url: str = Field(default="sqlite:///./expense_ai.db")

    # JWT
    jwt_secret: str = Field(..., min_length=32, description="Access token signing secret")
    jwt_refresh_secret: str = Field(..., min_length=32, description="Refresh token signing secret")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_days: int = Field(default=180, ge=1)
    refresh_token_expire_days: int = Field(default=365, ge=1)
    otp_expire_minutes: int = Field(default=15, ge=1)

    # HTTP
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:19006,exp://localhost:19000",
        description="Comma-separated list of allowed origins",
    )
    rate_limit_enabled: bool = Field(default=True)
    auth_rate_limit: str = Field(default="10/minute")
    password_reset_rate_limit: str = Field(default="3/hour")

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None)
    openai_model: str = Field(default="gpt-4.1")
    whisper_model: str = Field(default="whisper-1")

    # Push notifications
    expo_push_url: str = Field(default="https://exp.host/--/api/v2/push/send")
    expo_access_token: Optional[str] = Field(default=None)
    push_timeout_seconds: float = Field(default=10.0, gt=0)

    revenuecat_webhook_secret: Optional[str] = Field(default=None)

    # Receipt uploads
    upload_dir: str = Field(default="./uploads")
    max_upload_size_mb: int = Field(default=10, ge=1, le=50)
    allowed_image_types: str = Field(default="image/jpeg,image/png,image/webp")

    # Scheduler
    scheduler_enabled: bool = Field(default=True)
    notification_interval_minutes: int = Field(default=15, ge=1, le=60)
    notification_log_retention_days: int = Field(default=40, ge=1)

    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def allowed_image_types_list(self) -> list[str]:
        return [t.strip().lower() for t in self.allowed_image_types.split(",") if t.strip()]

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def api_prefix(self) -> str:
        return f"/api/{self.api_version}"


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload.
    """
    return Settings()
