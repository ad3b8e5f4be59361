"""Contains handlers for Linear authentication commands."""

import structlog
from pydantic import Field

from mo_linear.auth.credentials import AuthError
from mo_linear.linear.exceptions import LinearAPIError
from mo_linear.utils.templates import render_markdown

from .common import action_buttons, error_result
from .models import CommandContext, CommandParams, CommandRegistration, CommandResult, NoParams

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


class LinearAuthParams(CommandParams):
    """Parameters for linear-auth."""

    key: str | None = Field(default=None, description="Linear API key")
    team: str | None = Field(default=None, description="Linear team ID to set as default")


class LinearLogoutParams(CommandParams):
    """Parameters for linear-logout."""

    confirm: bool = Field(default=False, description="Confirm removing the stored credential")


async def linear_auth(params: LinearAuthParams, context: CommandContext) -> CommandResult:
    """Validate and store an API key, change the default team, or show status."""
    if params.key:
        return await _authenticate(params.key, params.team, context)
    if params.team:
        return await _set_default_team(params.team, context)
    return await linear_status(NoParams(), context)


async def _authenticate(api_key: str, team_id: str | None, context: CommandContext) -> CommandResult:
    credentials = context.services.credentials
    try:
        user = await credentials.authenticate(api_key, team_id)
    except AuthError as exc:
        return error_result(
            "Linear Authentication Error",
            str(exc),
            error="AUTH_FAILED",
            hints=["Check the API key and try again."],
            buttons=[("Try Again", context.command("linear-auth"))],
        )

    client = await credentials.get_client()
    teams = await client.list_teams()
    default_team_id = await credentials.get_default_team_id()
    if default_team_id is None and len(teams) == 1:
        await credentials.set_default_team(teams[0].id)
        default_team_id = teams[0].id

    markdown = render_markdown(
        "auth_status.md.j2",
        authenticated=True,
        source="stored",
        user=user,
        teams=teams,
        default_team_id=default_team_id,
        last_authenticated=None,
        namespace=context.namespace,
    )
    return CommandResult(
        success=True,
        message=f"Successfully authenticated with Linear as {user.name}",
        markdown=markdown,
        data={
            "user": user.model_dump(mode="json", by_alias=True),
            "teams": [team.model_dump(mode="json", by_alias=True) for team in teams],
            "defaultTeamId": default_team_id,
        },
        action_buttons=action_buttons(
            ("List Issues", context.command("linear-issues")),
            ("Sync with Linear", context.command("linear-sync")),
        ),
    )


async def _set_default_team(team_id: str, context: CommandContext) -> CommandResult:
    credentials = context.services.credentials
    if await credentials.get_auth() is None:
        raise AuthError("Authenticate with an API key before choosing a default team.")
    client = await credentials.get_client()
    team = await client.get_team(team_id)
    if team is None:
        return error_result(
            "Team not found",
            f"No Linear team with ID `{team_id}`.",
            error="TEAM_NOT_FOUND",
            buttons=[("List Teams", context.command("linear-teams"))],
        )
    await credentials.set_default_team(team.id)
    return CommandResult(
        success=True,
        message=f"Default team set to {team.name}",
        markdown=f"### Linear Default Team\n\n✅ Default team set to **{team.name}** (`{team.key}`).\n",
        data={"team": team.model_dump(mode="json", by_alias=True, include={"id", "name", "key"})},
    )


async def linear_status(params: NoParams, context: CommandContext) -> CommandResult:
    """Show authentication status, the current user and teams."""
    credentials = context.services.credentials
    if not await credentials.is_authenticated():
        return CommandResult(
            success=True,
            message="Not authenticated with Linear",
            markdown=render_markdown(
                "auth_status.md.j2",
                authenticated=False,
                source=None,
                user=None,
                teams=[],
                default_team_id=None,
                last_authenticated=None,
                namespace=context.namespace,
            ),
            data={"authenticated": False},
            action_buttons=action_buttons(("Authenticate with Linear", context.command("linear-auth"))),
        )

    record = await credentials.get_auth()
    client = await credentials.get_client()
    try:
        user = await client.get_viewer()
        teams = await client.list_teams()
    except LinearAPIError as exc:
        logger.warning("Stored Linear credential failed validation", error=str(exc))
        return error_result(
            "Linear Authentication Error",
            "The stored Linear credential was rejected.",
            error=str(exc),
            buttons=[("Authenticate Again", context.command("linear-auth"))],
        )
    default_team_id = await credentials.get_default_team_id()
    markdown = render_markdown(
        "auth_status.md.j2",
        authenticated=True,
        source="stored" if record is not None else "environment",
        user=user,
        teams=teams,
        default_team_id=default_team_id,
        last_authenticated=record.last_authenticated if record else None,
        namespace=context.namespace,
    )
    return CommandResult(
        success=True,
        message=f"Authenticated with Linear as {user.name}",
        markdown=markdown,
        data={
            "authenticated": True,
            "user": user.model_dump(mode="json", by_alias=True),
            "teams": [team.model_dump(mode="json", by_alias=True) for team in teams],
            "defaultTeamId": default_team_id,
        },
    )


async def linear_logout(params: LinearLogoutParams, context: CommandContext) -> CommandResult:
    """Two-step logout: without ``confirm:true`` only asks for confirmation."""
    credentials = context.services.credentials
    authenticated = await credentials.get_auth() is not None

    def render(confirmed: bool) -> str:
        return render_markdown(
            "logout.md.j2",
            authenticated=authenticated,
            confirmed=confirmed,
            env_key_active=bool(credentials.env_api_key),
            namespace=context.namespace,
        )

    if not authenticated:
        return CommandResult(success=True, message="Not currently authenticated with Linear", markdown=render(False))
    if not params.confirm:
        return CommandResult(
            success=True,
            message="Confirm logout from Linear",
            markdown=render(False),
            action_buttons=action_buttons(("Confirm Logout", context.command("linear-logout", confirm=True))),
        )
    await credentials.logout()
    return CommandResult(success=True, message="Logged out from Linear", markdown=render(True))


AUTH_COMMANDS = [
    CommandRegistration(
        name="linear-auth",
        description="Authenticate with Linear or set the default team",
        handler=linear_auth,
        params_model=LinearAuthParams,
        category="Authentication",
        examples=["/mo linear-auth key:lin_api_xxx", "/mo linear-auth team:TEAM_ID"],
    ),
    CommandRegistration(
        name="linear-status",
        description="Show Linear authentication status",
        handler=linear_status,
        category="Authentication",
    ),
    CommandRegistration(
        name="linear-logout",
        description="Log out from Linear",
        handler=linear_logout,
        params_model=LinearLogoutParams,
        category="Authentication",
        examples=["/mo linear-logout confirm:true"],
    ),
]
