"""Contains registration of Linear webhooks and the local record of their secrets."""

import secrets
from datetime import datetime, timezone

import structlog
from pydantic import BaseModel

from mo_linear.linear.abc import LinearClientBase
from mo_linear.schemas.config import WebhookConfig
from mo_linear.store.json_store import JsonTaskStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

DEFAULT_RESOURCE_TYPES = ["Issue", "Comment", "IssueLabel"]


class WebhookRegistrationResult(BaseModel):
    """Outcome of registering a webhook."""

    webhook: WebhookConfig
    warning: str | None = None


def generate_webhook_secret() -> str:
    """Generate a random 32-byte hex secret."""
    return secrets.token_hex(32)


async def register_webhook(
    client: LinearClientBase,
    store: JsonTaskStore,
    url: str,
    team_id: str | None = None,
    label: str | None = None,
    resource_types: list[str] | None = None,
    secret: str | None = None,
) -> WebhookRegistrationResult:
    """Create a webhook in Linear and store its secret locally.

    Registering while other webhooks are stored succeeds, with a warning that
    deliveries from each of them will be accepted.
    """
    secret = secret or generate_webhook_secret()
    resource_types = resource_types or list(DEFAULT_RESOURCE_TYPES)
    existing = await store.list_webhooks()

    webhook = await client.create_webhook(url=url, team_id=team_id, label=label, resource_types=resource_types, secret=secret)
    record = WebhookConfig(
        id=webhook.id,
        url=webhook.url,
        team_id=webhook.team_id or team_id,
        label=webhook.label or label,
        resource_types=webhook.resource_types or resource_types,
        secret=secret,
        created_at=datetime.now(timezone.utc),
    )
    await store.save_webhook(record)
    logger.info("Registered webhook", webhook_id=record.id, url=record.url, team_id=record.team_id)

    warning = None
    if existing:
        warning = f"{len(existing)} other webhook(s) already registered; deliveries signed by any stored secret are accepted."
        logger.warning("Registered an additional webhook", webhook_id=record.id, existing=[w.id for w in existing])
    return WebhookRegistrationResult(webhook=record, warning=warning)


async def delete_webhook(client: LinearClientBase, store: JsonTaskStore, webhook_id: str) -> bool:
    """Delete a webhook in Linear, then forget its secret. Returns False if it was not stored."""
    if await store.get_webhook(webhook_id) is None:
        return False
    await client.delete_webhook(webhook_id)
    await store.remove_webhook(webhook_id)
    logger.info("Deleted webhook", webhook_id=webhook_id)
    return True


async def list_webhooks(store: JsonTaskStore) -> list[WebhookConfig]:
    """List stored webhook registrations."""
    return await store.list_webhooks()
