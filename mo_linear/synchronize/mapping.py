"""Contains field mapping between local tasks and Linear issues."""

from typing import Any

from mo_linear.schemas.linear import IssueCreateInput, IssueUpdateInput, RemoteIssue, WorkflowState
from mo_linear.schemas.task import Task, TaskCreate, TaskStatus

STATE_TYPE_TO_STATUS: dict[str, TaskStatus] = {
    "triage": TaskStatus.TODO,
    "backlog": TaskStatus.TODO,
    "unstarted": TaskStatus.TODO,
    "started": TaskStatus.IN_PROGRESS,
    "completed": TaskStatus.DONE,
    "canceled": TaskStatus.DONE,
}

# Preferred state types for each status, most preferred first.
STATUS_TO_STATE_TYPES: dict[TaskStatus, tuple[str, ...]] = {
    TaskStatus.TODO: ("unstarted", "backlog"),
    TaskStatus.IN_PROGRESS: ("started",),
    TaskStatus.DONE: ("completed",),
}


def status_from_state(state: WorkflowState | None) -> TaskStatus:
    """Map a workflow state to a task status."""
    if state is None:
        return TaskStatus.TODO
    return STATE_TYPE_TO_STATUS.get(state.type.lower(), TaskStatus.TODO)


def find_state_for_status(status: TaskStatus, states: list[WorkflowState]) -> WorkflowState | None:
    """Pick the team workflow state that represents a task status."""
    ordered = sorted(states, key=lambda s: s.position if s.position is not None else 0.0)
    for state_type in STATUS_TO_STATE_TYPES[status]:
        for state in ordered:
            if state.type.lower() == state_type:
                return state
    return None


def task_to_create_input(task: Task, team_id: str, states: list[WorkflowState]) -> IssueCreateInput:
    """Build the input for creating an issue from a task."""
    state = find_state_for_status(task.status, states)
    return IssueCreateInput(
        title=task.title,
        team_id=team_id,
        description=task.description or None,
        priority=task.priority,
        estimate=task.estimate,
        state_id=state.id if state else None,
    )


def task_to_update_input(task: Task, states: list[WorkflowState], current_state: WorkflowState | None = None) -> IssueUpdateInput:
    """Build the input for updating an issue from a task.

    The workflow state is only sent when the task status no longer matches the
    issue's current state, so a canceled issue is not moved to completed.
    """
    state_id = None
    if current_state is None or status_from_state(current_state) != task.status:
        state = find_state_for_status(task.status, states)
        state_id = state.id if state else None
    return IssueUpdateInput(
        title=task.title,
        description=task.description,
        priority=task.priority,
        estimate=task.estimate,
        state_id=state_id,
    )


def issue_to_task_changes(issue: RemoteIssue) -> dict[str, Any]:
    """Fields copied from an issue onto its local task on pull."""
    return {
        "title": issue.title,
        "description": issue.description or "",
        "status": status_from_state(issue.state),
        "priority": issue.priority,
        "estimate": issue.estimate,
    }


def issue_to_task_create(issue: RemoteIssue) -> TaskCreate:
    """Build a new local task from an issue, already linked to it."""
    return TaskCreate(
        **issue_to_task_changes(issue),
        remote_id=issue.id,
        remote_identifier=issue.identifier,
        remote_url=issue.url,
        remote_team_id=issue.team.id if issue.team else None,
        remote_updated_at=issue.updated_at,
    )
