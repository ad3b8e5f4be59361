"""Pydantic Settings model for application configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment variable settings for the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Generic application-wide settings
    DEBUG: bool = False
    MO_DATA_DIR: Path = Path("data")
    MO_NAMESPACE: str = "/mo"

    # Linear API settings
    LINEAR_API_URL: str = "https://api.linear.app/graphql"
    LINEAR_API_KEY: str | None = None
    LINEAR_TEAM_ID: str | None = None
    LINEAR_REQUEST_TIMEOUT: float = 30.0
    LINEAR_MAX_RETRIES: int = 3

    # Protocol transport settings
    HEARTBEAT_INTERVAL: float = 5.0

    # Webhook listener settings
    MO_ENABLE_WEBHOOKS: bool = False
    WEBHOOK_HOST: str = "0.0.0.0"
    WEBHOOK_PORT: int = 3456


def get_settings() -> Settings:
    """Build settings from the environment and any .env file."""
    return Settings()
