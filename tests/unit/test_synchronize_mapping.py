"""Unit tests for task and issue field mapping."""

from datetime import datetime, timezone

import pytest

from mo_linear.schemas.linear import RemoteIssue, Team, WorkflowState
from mo_linear.schemas.task import Task, TaskStatus
from mo_linear.synchronize.mapping import (
    find_state_for_status,
    issue_to_task_create,
    status_from_state,
    task_to_create_input,
    task_to_update_input,
)
from tests.unit.fakes import ENG_STATES

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


def make_task(**overrides: object) -> Task:
    """Build a local task."""
    fields = {"id": "task-1", "title": "Fix login bug", "created_at": NOW, "updated_at": NOW}
    fields.update(overrides)
    return Task(**fields)


@pytest.mark.parametrize(
    "state_type,expected",
    [
        ("triage", TaskStatus.TODO),
        ("backlog", TaskStatus.TODO),
        ("unstarted", TaskStatus.TODO),
        ("started", TaskStatus.IN_PROGRESS),
        ("completed", TaskStatus.DONE),
        ("canceled", TaskStatus.DONE),
        ("custom", TaskStatus.TODO),
    ],
)
def test_status_from_state(state_type: str, expected: TaskStatus) -> None:
    """Test mapping each workflow state type to a task status."""
    assert status_from_state(WorkflowState(id="s", name="S", type=state_type)) == expected


def test_status_from_missing_state() -> None:
    """Test that an issue without a state maps to todo."""
    assert status_from_state(None) == TaskStatus.TODO


def test_find_state_prefers_unstarted_for_todo() -> None:
    """Test that todo maps to an unstarted state before a backlog one."""
    assert find_state_for_status(TaskStatus.TODO, ENG_STATES).id == "state-todo"
    assert find_state_for_status(TaskStatus.DONE, ENG_STATES).id == "state-done"
    assert find_state_for_status(TaskStatus.IN_PROGRESS, []) is None


def test_create_input_from_task() -> None:
    """Test building the create input, dropping an empty description."""
    task = make_task(status=TaskStatus.IN_PROGRESS, priority=2, estimate=3)
    issue_input = task_to_create_input(task, "team-eng", ENG_STATES)
    assert issue_input.model_dump(by_alias=True, exclude_none=True) == {
        "title": "Fix login bug",
        "teamId": "team-eng",
        "priority": 2,
        "estimate": 3,
        "stateId": "state-progress",
    }


def test_update_input_keeps_matching_state() -> None:
    """Test that a canceled issue is not moved when the task is already done."""
    canceled = next(state for state in ENG_STATES if state.type == "canceled")
    update = task_to_update_input(make_task(status=TaskStatus.DONE), ENG_STATES, canceled)
    assert update.state_id is None

    reopened = task_to_update_input(make_task(status=TaskStatus.TODO), ENG_STATES, canceled)
    assert reopened.state_id == "state-todo"


def test_task_from_issue() -> None:
    """Test building a linked task from a pulled issue."""
    issue = RemoteIssue(
        id="issue-1",
        identifier="ENG-1",
        title="Refactor auth",
        description=None,
        priority=1,
        estimate=5,
        state=ENG_STATES[2],
        team=Team(id="team-eng", name="Engineering", key="ENG"),
        created_at=NOW,
        updated_at=NOW,
        url="https://linear.app/example/issue/ENG-1",
    )
    task = issue_to_task_create(issue)
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.description == ""
    assert task.remote_identifier == "ENG-1"
    assert task.remote_team_id == "team-eng"
    assert task.remote_updated_at == NOW
