"""Contains the aiohttp server receiving Linear webhook deliveries."""

import json
from typing import Any

import structlog
from aiohttp import web

from mo_linear.store.json_store import JsonTaskStore
from mo_linear.synchronize.engine import SyncEngine
from mo_linear.synchronize.models import SyncDirection, SyncFilter, SyncOptions

from .signature import SIGNATURE_HEADER, WebhookAuthError, verify_signature

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

WEBHOOK_PATH = "/linear-webhook"
DEFAULT_WEBHOOK_PORT = 3456


class WebhookListener:
    """Receives Linear webhook deliveries and folds issue events into a pull sync."""

    def __init__(self, store: JsonTaskStore, engine: SyncEngine, host: str = "0.0.0.0", port: int = DEFAULT_WEBHOOK_PORT) -> None:
        """Initialize the listener. Call ``start`` to begin serving."""
        self.store = store
        self.engine = engine
        self.host = host
        self.port = port
        self._runner: web.AppRunner | None = None

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application()
        app.router.add_post(WEBHOOK_PATH, self.handle_webhook)
        return app

    @property
    def running(self) -> bool:
        """Whether the listener is serving."""
        return self._runner is not None

    async def start(self) -> None:
        """Start serving on the configured host and port."""
        if self._runner is not None:
            logger.info("Webhook listener already running", port=self.port)
            return
        runner = web.AppRunner(self.create_app())
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        logger.info("Webhook listener started", host=self.host, port=self.port, path=WEBHOOK_PATH)

    async def stop(self) -> None:
        """Stop serving."""
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("Webhook listener stopped", port=self.port)

    async def _candidate_secrets(self, webhook_id: str | None) -> list[str]:
        """Stored secrets, the one registered under ``webhook_id`` first."""
        webhooks = await self.store.list_webhooks()
        webhooks.sort(key=lambda w: w.id != webhook_id)
        return [webhook.secret for webhook in webhooks]

    async def handle_webhook(self, request: web.Request) -> web.Response:
        """Authenticate a delivery, then process it."""
        body = await request.read()
        webhook_id = None
        try:
            envelope = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            envelope = None
        if isinstance(envelope, dict):
            webhook_id = envelope.get("webhookId")

        try:
            verify_signature(body, request.headers.get(SIGNATURE_HEADER), await self._candidate_secrets(webhook_id))
        except WebhookAuthError as exc:
            logger.warning("Rejected webhook delivery", reason=str(exc), remote=request.remote)
            return web.Response(status=401, text="Invalid signature")

        if not isinstance(envelope, dict):
            logger.warning("Webhook delivery is not a JSON object")
            return web.Response(status=400, text="Invalid JSON")

        try:
            await self.process_event(envelope)
        except Exception as exc:
            logger.exception("Failed to process webhook event", event_type=envelope.get("type"), error=str(exc))
            return web.Response(status=500, text="Internal Server Error")
        return web.Response(status=200, text="OK")

    async def process_event(self, event: dict[str, Any]) -> None:
        """Dispatch a verified event by type."""
        event_type = event.get("type")
        action = event.get("action")
        data = event.get("data") or {}
        logger.info("Processing Linear webhook event", event_type=event_type, action=action, entity_id=data.get("id"))

        if event_type == "Issue":
            issue_id = data.get("id")
            if not issue_id:
                logger.warning("Issue event without an issue ID")
                return
            result = await self.engine.sync(
                SyncOptions(direction=SyncDirection.PULL, filter=SyncFilter(issue_ids=[issue_id]), team_id=(data.get("teamId") or None))
            )
            logger.info(
                "Applied issue event",
                issue_id=issue_id,
                added=result.added,
                updated=result.updated,
                deleted=result.deleted,
                conflicts=result.conflicts,
                errors=len(result.errors),
            )
        elif event_type in ("Comment", "IssueLabel"):
            logger.info("Acknowledged webhook event without local changes", event_type=event_type, action=action)
        else:
            logger.debug("Ignoring unhandled webhook event type", event_type=event_type)
