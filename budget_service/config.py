"""
Configuration for the budget service.

Values come from environment variables (or a local .env file) through
pydantic-settings, e.g. DATABASE_URL, SECRET_KEY, RABBITMQ_ENABLED.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./budget_service.db",
        description="SQLAlchemy database URL"
    )

    # Auth (tokens are issued by the identity service)
    secret_key: str = Field(default="your_secret_key")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60, ge=1)

    log_level: str = Field(default="INFO")

    # RabbitMQ group event publishing
    rabbitmq_enabled: bool = Field(
        default=False,
        description="Publish committed ledger events to RabbitMQ"
    )
    rabbitmq_host: str = Field(default="localhost")
    rabbitmq_port: int = Field(default=5672)
    rabbitmq_username: str = Field(default="guest")
    rabbitmq_password: str = Field(default="guest")
    rabbitmq_virtual_host: str = Field(default="/")
    group_events_exchange: str = Field(default="group.events")


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload after changing the environment.
    """
    return Settings()
