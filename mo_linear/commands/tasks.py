"""Contains handlers for local task commands."""

from pydantic import Field

from mo_linear.schemas.task import Task, TaskCreate, TaskFilter, TaskStatus
from mo_linear.store.exceptions import TaskNotFoundError
from mo_linear.utils.templates import render_markdown

from .common import CommandValidationError, action_buttons
from .models import CommandContext, CommandParams, CommandRegistration, CommandResult


class TasksParams(CommandParams):
    """Parameters for tasks."""

    status: TaskStatus | None = Field(default=None, description="Only tasks with this status (todo, in-progress, done)")
    search: str | None = Field(default=None, description="Only tasks whose title or description contains this text")
    linked: bool | None = Field(default=None, description="Only tasks linked (true) or not linked (false) to Linear")
    selected: bool | None = Field(default=None, description="Only selected (true) or unselected (false) tasks")
    limit: int | None = Field(default=None, gt=0, description="Maximum number of tasks to show")


class NewTaskParams(CommandParams):
    """Parameters for new-task."""

    title: str = Field(min_length=1, description="Task title")
    description: str | None = Field(default=None, description="Task description (defaults to the editor selection)")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Initial status")
    priority: int | None = Field(default=None, ge=0, le=4, description="Priority 0-4 (0 none, 1 urgent, 4 low)")
    estimate: int | None = Field(default=None, ge=0, description="Estimate in points")
    context: str | None = Field(default=None, description="Feature context kept with the task")
    selected: bool = Field(default=False, description="Select the task for the next push")


class UpdateTaskParams(CommandParams):
    """Parameters for update-task."""

    id: str = Field(description="Task ID")
    title: str | None = Field(default=None, min_length=1, description="New title")
    description: str | None = Field(default=None, description="New description")
    status: TaskStatus | None = Field(default=None, description="New status")
    priority: int | None = Field(default=None, ge=0, le=4, description="New priority 0-4")
    estimate: int | None = Field(default=None, ge=0, description="New estimate")
    context: str | None = Field(default=None, description="New feature context")
    selected: bool | None = Field(default=None, description="Select or unselect the task")


class TaskIdParams(CommandParams):
    """Parameters for commands acting on a single task."""

    id: str = Field(description="Task ID")


def _task_buttons(task: Task, context: CommandContext) -> list[tuple[str, str]]:
    buttons = [("View Details", context.command("task-details", id=task.id))]
    if task.is_linked:
        buttons.append(("Sync with Linear", context.command("linear-sync", id=task.id)))
    else:
        buttons.append(("Push to Linear", context.command("linear-push", id=task.id)))
    return buttons


def _task_data(task: Task) -> dict:
    return task.model_dump(mode="json", by_alias=True)


async def list_tasks(params: TasksParams, context: CommandContext) -> CommandResult:
    """List local tasks."""
    store = context.services.store
    task_filter = TaskFilter(status=params.status, search_text=params.search, linked=params.linked, selected=params.selected)
    matching = await store.list_tasks(task_filter)
    shown = matching[: params.limit] if params.limit else matching
    return CommandResult(
        success=True,
        message=f"Found {len(matching)} task(s)",
        markdown=render_markdown("tasks.md.j2", tasks=shown, total=len(matching), namespace=context.namespace),
        data={"tasks": [_task_data(task) for task in shown], "total": len(matching)},
        action_buttons=action_buttons(("New Task", context.command("new-task", title="New task")), ("Sync with Linear", context.command("linear-sync"))),
    )


async def new_task(params: NewTaskParams, context: CommandContext) -> CommandResult:
    """Create a local task."""
    store = context.services.store
    priority = params.priority
    if priority is None:
        priority = (await store.get_settings()).default_priority
    description = params.description if params.description is not None else (context.editor.selected_text or "")
    task = await store.create_task(
        TaskCreate(
            title=params.title,
            description=description,
            status=params.status,
            priority=priority,
            estimate=params.estimate,
            feature_context=params.context,
            selected=params.selected,
        )
    )
    return CommandResult(
        success=True,
        message=f"Created task {task.id}: {task.title}",
        markdown=render_markdown("task_details.md.j2", task=task),
        data={"task": _task_data(task)},
        action_buttons=action_buttons(*_task_buttons(task, context)),
    )


async def update_task(params: UpdateTaskParams, context: CommandContext) -> CommandResult:
    """Update fields of a local task."""
    changes = params.model_dump(exclude={"id", "context"}, exclude_none=True)
    if params.context is not None:
        changes["feature_context"] = params.context
    if not changes:
        raise CommandValidationError("Nothing to update.", hints=["Pass at least one field, e.g. `status:done` or `title:\"New title\"`."])
    task = await context.services.store.update_task(params.id, changes)
    return CommandResult(
        success=True,
        message=f"Updated task {task.id}",
        markdown=render_markdown("task_details.md.j2", task=task),
        data={"task": _task_data(task)},
        action_buttons=action_buttons(*_task_buttons(task, context)),
    )


async def delete_task(params: TaskIdParams, context: CommandContext) -> CommandResult:
    """Delete a local task. The linked Linear issue, if any, is left untouched."""
    store = context.services.store
    task = await store.get_task(params.id)
    if task is None:
        raise TaskNotFoundError(params.id)
    await store.delete_task(params.id)
    note = f" The linked issue {task.remote_identifier} was not changed." if task.remote_identifier else ""
    return CommandResult(
        success=True,
        message=f"Deleted task {task.id}",
        markdown=f"### Task Deleted\n\n✅ Deleted **{task.title}** (`{task.id}`).{note}\n",
        data={"id": task.id},
        action_buttons=action_buttons(("List Tasks", context.command("tasks"))),
    )


async def task_details(params: TaskIdParams, context: CommandContext) -> CommandResult:
    """Show a single task."""
    task = await context.services.store.get_task(params.id)
    if task is None:
        raise TaskNotFoundError(params.id)
    buttons = _task_buttons(task, context)[1:]
    next_status = {TaskStatus.TODO: TaskStatus.IN_PROGRESS, TaskStatus.IN_PROGRESS: TaskStatus.DONE}.get(task.status)
    if next_status is not None:
        buttons.append((f"Mark {next_status.value}", context.command("update-task", id=task.id, status=next_status.value)))
    return CommandResult(
        success=True,
        message=task.title,
        markdown=render_markdown("task_details.md.j2", task=task),
        data={"task": _task_data(task)},
        action_buttons=action_buttons(*buttons),
    )


TASK_COMMANDS = [
    CommandRegistration(
        name="tasks",
        description="List local tasks",
        handler=list_tasks,
        params_model=TasksParams,
        category="Tasks",
        examples=["/mo tasks status:todo", '/mo tasks search:"login"'],
    ),
    CommandRegistration(
        name="new-task",
        description="Create a local task",
        handler=new_task,
        params_model=NewTaskParams,
        category="Tasks",
        examples=['/mo new-task title:"Fix login bug" priority:2'],
    ),
    CommandRegistration(
        name="update-task",
        description="Update a local task",
        handler=update_task,
        params_model=UpdateTaskParams,
        category="Tasks",
        examples=["/mo update-task id:3f2a9c1b7d4e status:done"],
    ),
    CommandRegistration(
        name="delete-task",
        description="Delete a local task",
        handler=delete_task,
        params_model=TaskIdParams,
        category="Tasks",
    ),
    CommandRegistration(
        name="task-details",
        description="Show a local task",
        handler=task_details,
        params_model=TaskIdParams,
        category="Tasks",
    ),
]
