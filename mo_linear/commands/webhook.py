"""Contains handlers for Linear webhook management commands."""

from pydantic import Field

from mo_linear.utils.templates import render_markdown
from mo_linear.webhooks import registration

from .common import CommandValidationError, action_buttons, error_result, requires_auth
from .models import CommandContext, CommandParams, CommandRegistration, CommandResult, CsvList, NoParams


class WebhookRegisterParams(CommandParams):
    """Parameters for linear-webhook-register."""

    url: str = Field(description="Public URL Linear delivers events to")
    team: str | None = Field(default=None, description="Team ID (defaults to the default team; all public teams when none)")
    label: str | None = Field(default=None, description="Label shown in Linear")
    resources: CsvList = Field(default=None, description="Comma-separated resource types (Issue, Comment, IssueLabel)")
    secret: str | None = Field(default=None, description="Signing secret (generated when omitted)")


class WebhookDeleteParams(CommandParams):
    """Parameters for linear-webhook-delete."""

    id: str | None = Field(default=None, description="Webhook ID (optional when exactly one is registered)")


@requires_auth
async def linear_webhook_register(params: WebhookRegisterParams, context: CommandContext) -> CommandResult:
    """Register a webhook in Linear and store its secret."""
    if not params.url.startswith(("http://", "https://")):
        raise CommandValidationError("The webhook URL must start with http:// or https://.")
    services = context.services
    client = await services.credentials.get_client()
    team_id = params.team or await services.credentials.get_default_team_id()
    result = await registration.register_webhook(
        client,
        services.store,
        url=params.url,
        team_id=team_id,
        label=params.label or "Mo",
        resource_types=params.resources,
        secret=params.secret,
    )
    markdown = render_markdown(
        "webhook_registered.md.j2",
        webhook=result.webhook,
        warning=result.warning,
        listener_enabled=services.settings.MO_ENABLE_WEBHOOKS,
        port=services.settings.WEBHOOK_PORT,
    )
    return CommandResult(
        success=True,
        message=f"Registered webhook {result.webhook.id}" + (f" ({result.warning})" if result.warning else ""),
        markdown=markdown,
        data={"webhook": result.webhook.model_dump(mode="json", by_alias=True, exclude={"secret"}), "warning": result.warning},
        action_buttons=action_buttons(("List Webhooks", context.command("linear-webhook-list"))),
    )


async def linear_webhook_list(params: NoParams, context: CommandContext) -> CommandResult:
    """List stored webhook registrations."""
    webhooks = await registration.list_webhooks(context.services.store)
    return CommandResult(
        success=True,
        message=f"{len(webhooks)} webhook(s) registered",
        markdown=render_markdown("webhooks.md.j2", webhooks=webhooks, namespace=context.namespace),
        data={"webhooks": [webhook.model_dump(mode="json", by_alias=True, exclude={"secret"}) for webhook in webhooks]},
        action_buttons=action_buttons(*[(f"Delete {webhook.id}", context.command("linear-webhook-delete", id=webhook.id)) for webhook in webhooks]),
    )


@requires_auth
async def linear_webhook_delete(params: WebhookDeleteParams, context: CommandContext) -> CommandResult:
    """Delete a webhook in Linear and forget its secret."""
    services = context.services
    webhook_id = params.id
    if webhook_id is None:
        stored = await services.store.list_webhooks()
        if not stored:
            return error_result("No webhooks registered", "There is no webhook to delete.", error="NO_WEBHOOKS")
        if len(stored) > 1:
            raise CommandValidationError(
                "Several webhooks are registered; choose one.",
                hints=[f"`{context.command('linear-webhook-delete', id=webhook.id)}`" for webhook in stored],
            )
        webhook_id = stored[0].id

    client = await services.credentials.get_client()
    if not await registration.delete_webhook(client, services.store, webhook_id):
        return error_result(
            "Webhook not found",
            f"No registered webhook with ID `{webhook_id}`.",
            error="WEBHOOK_NOT_FOUND",
            buttons=[("List Webhooks", context.command("linear-webhook-list"))],
        )
    return CommandResult(
        success=True,
        message=f"Deleted webhook {webhook_id}",
        markdown=f"### Linear Webhook Deleted\n\n✅ Webhook `{webhook_id}` was deleted and its secret removed.\n",
        data={"id": webhook_id},
    )


WEBHOOK_COMMANDS = [
    CommandRegistration(
        name="linear-webhook-register",
        description="Register a Linear webhook",
        handler=linear_webhook_register,
        params_model=WebhookRegisterParams,
        category="Webhooks",
        examples=["/mo linear-webhook-register url:https://example.com/linear-webhook", "/mo linear-webhook-register url:https://example.com/hook resources:Issue"],
    ),
    CommandRegistration(
        name="linear-webhook-list",
        description="List registered webhooks",
        handler=linear_webhook_list,
        category="Webhooks",
    ),
    CommandRegistration(
        name="linear-webhook-delete",
        description="Delete a registered webhook",
        handler=linear_webhook_delete,
        params_model=WebhookDeleteParams,
        category="Webhooks",
        examples=["/mo linear-webhook-delete id:WEBHOOK_ID"],
    ),
]
