"""Contains utility functions for synchronization actions."""

from typing import Any

from mo_linear.schemas.linear import RemoteIssue
from mo_linear.schemas.task import Task

from .models import SyncFilter


def task_changed_locally(task: Task) -> bool:
    """Whether a linked task was modified since it was last synchronized."""
    if task.last_synced_at is None:
        return True
    return task.updated_at > task.last_synced_at


def issue_changed_remotely(task: Task, issue: RemoteIssue) -> bool:
    """Whether the linked issue was modified since the task was last synchronized."""
    if task.remote_updated_at is None:
        return True
    return issue.updated_at > task.remote_updated_at


def text_matches(search_text: str | None, *values: str | None) -> bool:
    """Case-insensitive substring match against any of the values."""
    if not search_text:
        return True
    needle = search_text.lower()
    return any(needle in value.lower() for value in values if value)


def issue_matches_filter(issue: RemoteIssue, sync_filter: SyncFilter) -> bool:
    """Whether an issue satisfies the state and search criteria of a filter."""
    if sync_filter.states:
        wanted = {state.lower() for state in sync_filter.states}
        if issue.state is None or issue.state.name.lower() not in wanted:
            return False
    return text_matches(sync_filter.search_text, issue.title, issue.description, issue.identifier)


def build_issue_filter(team_id: str, sync_filter: SyncFilter) -> dict[str, Any]:
    """Build a Linear IssueFilter for the pull side of a run."""
    issue_filter: dict[str, Any] = {"team": {"id": {"eq": team_id}}}
    if sync_filter.states:
        issue_filter["state"] = {"name": {"in": sync_filter.states}}
    if sync_filter.search_text:
        issue_filter["or"] = [
            {"title": {"containsIgnoreCase": sync_filter.search_text}},
            {"description": {"containsIgnoreCase": sync_filter.search_text}},
        ]
    return issue_filter


def local_summary(task: Task | None) -> dict[str, Any] | None:
    """Compact description of a task for result details."""
    if task is None:
        return None
    return {"id": task.id, "title": task.title}


def remote_summary(issue: RemoteIssue | None) -> dict[str, Any] | None:
    """Compact description of an issue for result details."""
    if issue is None:
        return None
    return {"id": issue.id, "identifier": issue.identifier, "title": issue.title, "url": issue.url}
