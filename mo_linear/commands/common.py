"""Contains helpers shared by command handlers."""

from functools import wraps
from typing import Any

import structlog

from mo_linear.utils.templates import render_markdown

from .models import ActionButton, CommandContext, CommandHandler, CommandResult

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


class CommandValidationError(Exception):
    """Raised by handlers when parameters are individually valid but inconsistent."""

    def __init__(self, message: str, hints: list[str] | None = None) -> None:
        """Initializes the exception with optional hints shown to the user."""
        super().__init__(message)
        self.message = message
        self.hints = hints or []


def action_buttons(*pairs: tuple[str, str]) -> list[ActionButton] | None:
    """Build action buttons from ``(label, command)`` pairs."""
    return [ActionButton(label=label, command=command) for label, command in pairs] or None


def error_result(
    title: str,
    message: str,
    error: str | None = None,
    hints: list[str] | None = None,
    usage: str | None = None,
    examples: list[str] | None = None,
    buttons: list[tuple[str, str]] | None = None,
) -> CommandResult:
    """Build a failure result with a markdown explanation."""
    markdown = render_markdown(
        "error.md.j2",
        title=title,
        message=message,
        error=error,
        hints=hints or [],
        usage=usage,
        examples=examples or [],
    )
    return CommandResult(
        success=False,
        message=message,
        error=error or message,
        markdown=markdown,
        action_buttons=[ActionButton(label=label, command=command) for label, command in (buttons or [])] or None,
    )


def auth_required_result(message: str, namespace: str) -> CommandResult:
    """Result guiding the user to authenticate first."""
    return CommandResult(
        success=False,
        message=message,
        error="AUTH_REQUIRED",
        markdown=render_markdown("auth_required.md.j2", message=message, namespace=namespace),
        action_buttons=[ActionButton(label="Authenticate with Linear", command=f"{namespace} linear-auth")],
    )


def requires_auth(func: CommandHandler) -> CommandHandler:
    """Decorator returning an authentication prompt when no Linear credential is usable."""

    @wraps(func)
    async def wrapper(params: Any, context: CommandContext) -> CommandResult:
        if not await context.services.credentials.is_authenticated():
            logger.info("Command requires Linear authentication", handler=func.__name__)
            return auth_required_result("Not authenticated with Linear.", context.namespace)
        return await func(params, context)

    return wrapper


async def resolve_team_id(context: CommandContext, team: str | None) -> str:
    """Return the explicit team or the default one.

    Raises:
        CommandValidationError: If neither is available
    """
    if team:
        return team
    default_team_id = await context.services.credentials.get_default_team_id()
    if default_team_id:
        return default_team_id
    raise CommandValidationError(
        "No Linear team selected.",
        hints=[
            f"Pass `team:<team-id>`, or set a default team with `{context.namespace} linear-auth team:<team-id>`.",
            f"List teams with `{context.namespace} linear-teams`.",
        ],
    )
