"""Pydantic schema for persisted configuration: settings, credentials and webhooks."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ConfigModel(BaseModel):
    """Base model for persisted configuration documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AuthRecord(ConfigModel):
    """Stored Linear credential and the default team used for sync."""

    encrypted_api_key: str
    default_team_id: str | None = None
    user_id: str | None = None
    last_authenticated: datetime | None = None


class WebhookConfig(ConfigModel):
    """A webhook registration and the secret used to verify its deliveries."""

    id: str
    url: str
    team_id: str | None = None
    label: str | None = None
    resource_types: list[str] = Field(default_factory=list)
    secret: str
    created_at: datetime | None = None


class UserSettings(ConfigModel):
    """User-editable settings exposed through the settings command."""

    default_priority: int | None = Field(default=None, ge=0, le=4)
    sync_limit: int = Field(default=100, gt=0)


class StoreConfig(ConfigModel):
    """Top-level document persisted in config.json."""

    settings: UserSettings = Field(default_factory=UserSettings)
    auth: AuthRecord | None = None
    webhooks: dict[str, WebhookConfig] = Field(default_factory=dict)
