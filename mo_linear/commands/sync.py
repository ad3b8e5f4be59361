"""Contains handlers for synchronization commands."""

from pydantic import Field

from mo_linear.synchronize.models import SyncDirection, SyncFilter, SyncOptions, SyncResult
from mo_linear.utils.templates import render_markdown

from .common import CommandValidationError, action_buttons, requires_auth
from .models import CommandContext, CommandParams, CommandRegistration, CommandResult, CsvList

SYNC_TITLES = {
    SyncDirection.BOTH: "Linear Sync",
    SyncDirection.PUSH: "Linear Push",
    SyncDirection.PULL: "Linear Pull",
}


class SyncRunParams(CommandParams):
    """Options shared by every synchronization command."""

    team: str | None = Field(default=None, description="Linear team ID (defaults to the default team)")
    filter: str | None = Field(default=None, description="Only sync items whose title or description contains this text")
    dry_run: bool = Field(default=False, description="Report what would change without changing anything")
    force: bool = Field(default=False, description="Overwrite the other side even when both changed")


class LinearSyncParams(SyncRunParams):
    """Parameters for linear-sync."""

    direction: SyncDirection = Field(default=SyncDirection.BOTH, description="Sync direction: push, pull or both")
    id: CsvList = Field(default=None, description="Comma-separated task IDs to sync")
    states: CsvList = Field(default=None, description="Comma-separated Linear state names to pull")
    limit: int | None = Field(default=None, gt=0, description="Maximum number of issues to pull")


class LinearPushParams(SyncRunParams):
    """Parameters for linear-push."""

    id: CsvList = Field(default=None, description="Comma-separated task IDs to push")


class LinearPullParams(SyncRunParams):
    """Parameters for linear-pull."""

    id: CsvList = Field(default=None, description="Comma-separated Linear issue IDs or identifiers to pull")
    states: CsvList = Field(default=None, description="Comma-separated Linear state names to pull")
    limit: int | None = Field(default=None, gt=0, description="Maximum number of issues to pull")


async def run_sync(options: SyncOptions, context: CommandContext, command_name: str) -> CommandResult:
    """Run the engine and render its result."""
    result = await context.services.engine.sync(options)
    return render_sync_result(result, options, context, command_name)


def render_sync_result(result: SyncResult, options: SyncOptions, context: CommandContext, command_name: str) -> CommandResult:
    """Turn a sync result into a command result."""
    title = SYNC_TITLES[options.direction]
    markdown = render_markdown("sync_result.md.j2", title=title, result=result)
    changed = result.added + result.updated + result.deleted
    if result.dry_run:
        message = f"Dry run: {changed} change(s), {result.conflicts} conflict(s) planned"
    else:
        message = f"{title} complete: {result.added} added, {result.updated} updated, {result.deleted} deleted, {result.conflicts} conflict(s)"
    if result.errors:
        message += f", {len(result.errors)} error(s)"

    buttons: list[tuple[str, str]] = []
    rerun_params: dict[str, str | None] = {
        "team": options.team_id,
        "filter": options.filter.search_text,
        "id": ",".join(options.filter.task_ids or options.filter.issue_ids or []) or None,
    }
    if command_name == "linear-sync" and options.direction != SyncDirection.BOTH:
        rerun_params["direction"] = options.direction.value
    if result.dry_run:
        buttons.append(("Apply Changes", context.command(command_name, **rerun_params)))
    elif result.details.conflicts:
        buttons.append(("Force Sync", context.command(command_name, force=True, **rerun_params)))
    buttons.append(("Show Tasks", context.command("tasks")))

    return CommandResult(
        success=result.success,
        message=message,
        markdown=markdown,
        error="; ".join(error.message for error in result.errors) or None,
        data=result.model_dump(mode="json", by_alias=True),
        action_buttons=action_buttons(*buttons),
    )


async def _sync_limit(params_limit: int | None, context: CommandContext) -> int:
    if params_limit is not None:
        return params_limit
    return (await context.services.store.get_settings()).sync_limit


@requires_auth
async def linear_sync(params: LinearSyncParams, context: CommandContext) -> CommandResult:
    """Synchronize in the requested direction."""
    options = SyncOptions(
        direction=params.direction,
        filter=SyncFilter(task_ids=params.id, states=params.states, search_text=params.filter),
        team_id=params.team,
        limit=await _sync_limit(params.limit, context),
        dry_run=params.dry_run,
        force=params.force,
    )
    return await run_sync(options, context, "linear-sync")


@requires_auth
async def linear_push(params: LinearPushParams, context: CommandContext) -> CommandResult:
    """Push selected tasks to Linear."""
    if not params.id and not params.filter:
        raise CommandValidationError(
            "linear-push needs the tasks to push.",
            hints=["Pass `id:<task-id>` (comma-separated for several) or `filter:<text>`.", "Use `linear-sync direction:push` to push selected tasks."],
        )
    options = SyncOptions(
        direction=SyncDirection.PUSH,
        filter=SyncFilter(task_ids=params.id, search_text=params.filter),
        team_id=params.team,
        dry_run=params.dry_run,
        force=params.force,
    )
    return await run_sync(options, context, "linear-push")


@requires_auth
async def linear_pull(params: LinearPullParams, context: CommandContext) -> CommandResult:
    """Pull issues from Linear."""
    options = SyncOptions(
        direction=SyncDirection.PULL,
        filter=SyncFilter(issue_ids=params.id, states=params.states, search_text=params.filter),
        team_id=params.team,
        limit=await _sync_limit(params.limit, context),
        dry_run=params.dry_run,
        force=params.force,
    )
    return await run_sync(options, context, "linear-pull")


SYNC_COMMANDS = [
    CommandRegistration(
        name="linear-sync",
        description="Synchronize tasks with Linear",
        handler=linear_sync,
        params_model=LinearSyncParams,
        category="Synchronization",
        examples=["/mo linear-sync", '/mo linear-sync direction:pull states:"Todo,In Progress"', "/mo linear-sync dryRun:true"],
    ),
    CommandRegistration(
        name="linear-push",
        description="Push tasks to Linear",
        handler=linear_push,
        params_model=LinearPushParams,
        category="Synchronization",
        examples=["/mo linear-push id:3f2a9c1b7d4e", '/mo linear-push filter:"login"'],
    ),
    CommandRegistration(
        name="linear-pull",
        description="Pull issues from Linear",
        handler=linear_pull,
        params_model=LinearPullParams,
        category="Synchronization",
        examples=["/mo linear-pull", "/mo linear-pull id:ENG-42", "/mo linear-pull limit:20"],
    ),
]
