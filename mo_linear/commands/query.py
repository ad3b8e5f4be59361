"""Contains handlers for read-only Linear queries."""

from typing import Any

from pydantic import Field

from mo_linear.schemas.linear import RemoteIssue, WorkflowStateType
from mo_linear.synchronize.mapping import STATE_TYPE_TO_STATUS
from mo_linear.utils.templates import render_markdown

from .common import action_buttons, requires_auth, resolve_team_id
from .models import CommandContext, CommandParams, CommandRegistration, CommandResult, CsvList, NoParams

STATE_TYPE_ORDER = [state_type.value for state_type in WorkflowStateType]
DEFAULT_ISSUE_LIMIT = 10
MAX_PAGE_SIZE = 50


class TeamParams(CommandParams):
    """Parameters for commands scoped to a team."""

    team: str | None = Field(default=None, description="Linear team ID (defaults to the default team)")


class LinearIssuesParams(TeamParams):
    """Parameters for linear-issues."""

    assignee: str | None = Field(default=None, description="Assignee user ID, or `me`")
    states: CsvList = Field(default=None, description="Comma-separated state names")
    limit: int = Field(default=DEFAULT_ISSUE_LIMIT, gt=0, description="Number of issues to show")
    cursor: str | None = Field(default=None, description="Pagination cursor from a previous page")
    paginate: bool = Field(default=False, description="Follow pages until `limit` issues are collected")
    all: bool = Field(default=False, description="Fetch every matching issue")


@requires_auth
async def linear_teams(params: NoParams, context: CommandContext) -> CommandResult:
    """List teams visible to the API key."""
    client = await context.services.credentials.get_client()
    teams = await client.list_teams()
    default_team_id = await context.services.credentials.get_default_team_id()
    return CommandResult(
        success=True,
        message=f"Found {len(teams)} Linear team(s)",
        markdown=render_markdown("teams.md.j2", teams=teams, default_team_id=default_team_id, namespace=context.namespace),
        data={"teams": [team.model_dump(mode="json", by_alias=True) for team in teams], "defaultTeamId": default_team_id},
        action_buttons=action_buttons(*[(f"Set {team.name} as Default", context.command("linear-auth", team=team.id)) for team in teams if team.id != default_team_id]),
    )


@requires_auth
async def linear_projects(params: TeamParams, context: CommandContext) -> CommandResult:
    """List projects of a team."""
    team_id = await resolve_team_id(context, params.team)
    client = await context.services.credentials.get_client()
    team = await client.get_team(team_id)
    projects = await client.list_projects(team_id)
    return CommandResult(
        success=True,
        message=f"Found {len(projects)} Linear project(s)",
        markdown=render_markdown("projects.md.j2", team=team, projects=projects),
        data={"teamId": team_id, "projects": [project.model_dump(mode="json", by_alias=True) for project in projects]},
        action_buttons=action_buttons(("View Issues", context.command("linear-issues", team=team_id))),
    )


@requires_auth
async def linear_states(params: TeamParams, context: CommandContext) -> CommandResult:
    """List workflow states of a team grouped by type."""
    team_id = await resolve_team_id(context, params.team)
    client = await context.services.credentials.get_client()
    team = await client.get_team(team_id)
    states = team.states if team is not None else []
    grouped: dict[str, list[Any]] = {}
    for state in sorted(states, key=lambda s: s.position if s.position is not None else 0.0):
        grouped.setdefault(state.type, []).append(state)
    ordered_types = [t for t in STATE_TYPE_ORDER if t in grouped] + sorted(t for t in grouped if t not in STATE_TYPE_ORDER)
    groups = [(state_type, grouped[state_type]) for state_type in ordered_types]
    status_for_type = {state_type: STATE_TYPE_TO_STATUS[state_type].value if state_type in STATE_TYPE_TO_STATUS else "todo" for state_type in ordered_types}
    return CommandResult(
        success=True,
        message=f"Found {len(states)} workflow state(s)",
        markdown=render_markdown("states.md.j2", team=team, groups=groups, status_for_type=status_for_type),
        data={
            "teamId": team_id,
            "states": {state_type: [s.model_dump(mode="json", by_alias=True) for s in members] for state_type, members in groups},
        },
    )


@requires_auth
async def linear_issues(params: LinearIssuesParams, context: CommandContext) -> CommandResult:
    """List issues, one page at a time or auto-paginated."""
    client = await context.services.credentials.get_client()
    team_id = params.team or await context.services.credentials.get_default_team_id()

    issue_filter: dict[str, Any] = {}
    team = None
    if team_id:
        issue_filter["team"] = {"id": {"eq": team_id}}
        team = await client.get_team(team_id)
    if params.assignee:
        if params.assignee.lower() == "me":
            viewer = await client.get_viewer()
            issue_filter["assignee"] = {"id": {"eq": viewer.id}}
        else:
            issue_filter["assignee"] = {"id": {"eq": params.assignee}}
    if params.states:
        issue_filter["state"] = {"name": {"in": params.states}}

    has_more = False
    next_cursor: str | None = None
    issues: list[RemoteIssue]
    if params.all or params.paginate:
        issues = await client.get_all_issues(
            filter=issue_filter or None,
            batch_size=MAX_PAGE_SIZE,
            max_items=None if params.all else params.limit,
        )
    else:
        page = await client.get_issues(filter=issue_filter or None, first=min(params.limit, MAX_PAGE_SIZE), after=params.cursor)
        issues = page.issues
        has_more = page.page_info.has_next_page
        next_cursor = page.page_info.end_cursor

    buttons: list[tuple[str, str]] = [("View Teams", context.command("linear-teams"))]
    if team_id:
        buttons.append(("View States", context.command("linear-states", team=team_id)))
    if has_more and next_cursor:
        buttons.append(
            (
                "Next Page",
                context.command("linear-issues", team=team_id, assignee=params.assignee, states=",".join(params.states or []) or None, limit=params.limit, cursor=next_cursor),
            )
        )
        buttons.append(("Get All Issues", context.command("linear-issues", team=team_id, assignee=params.assignee, all=True)))
    if issues and team_id:
        buttons.append(("Pull Issues", context.command("linear-pull", team=team_id)))
        buttons.append(("Sync with Linear", context.command("linear-sync", team=team_id)))

    return CommandResult(
        success=True,
        message=f"Found {len(issues)} Linear issue(s){' (more available)' if has_more else ''}",
        markdown=render_markdown("issues.md.j2", team=team, issues=issues, has_more=has_more),
        data={
            "issues": [issue.model_dump(mode="json", by_alias=True) for issue in issues],
            "pageInfo": {"hasNextPage": has_more, "endCursor": next_cursor},
        },
        action_buttons=action_buttons(*buttons),
    )


QUERY_COMMANDS = [
    CommandRegistration(
        name="linear-teams",
        description="List Linear teams",
        handler=linear_teams,
        category="Queries",
    ),
    CommandRegistration(
        name="linear-projects",
        description="List Linear projects",
        handler=linear_projects,
        params_model=TeamParams,
        category="Queries",
    ),
    CommandRegistration(
        name="linear-states",
        description="List workflow states grouped by type",
        handler=linear_states,
        params_model=TeamParams,
        category="Queries",
    ),
    CommandRegistration(
        name="linear-issues",
        description="List Linear issues",
        handler=linear_issues,
        params_model=LinearIssuesParams,
        category="Queries",
        examples=["/mo linear-issues assignee:me", '/mo linear-issues states:"In Progress" limit:25', "/mo linear-issues all:true"],
    ),
]
