"""Unit tests for the JSON task store."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from mo_linear.schemas.config import AuthRecord, WebhookConfig
from mo_linear.schemas.linear import RemoteIssue, Team
from mo_linear.schemas.task import TaskCreate, TaskFilter, TaskStatus
from mo_linear.store.exceptions import StoreError, TaskNotFoundError
from mo_linear.store.json_store import JsonTaskStore, next_timestamp


def make_issue(updated_at: datetime) -> RemoteIssue:
    """Build a remote issue for linking tests."""
    return RemoteIssue(
        id="issue-9",
        identifier="ENG-9",
        title="Remote title",
        created_at=updated_at,
        updated_at=updated_at,
        url="https://linear.app/example/issue/ENG-9",
        team=Team(id="team-eng", name="Engineering", key="ENG"),
    )


def test_next_timestamp_is_strictly_increasing() -> None:
    """Test that a timestamp in the future still yields a later one."""
    future = datetime(2999, 1, 1, tzinfo=timezone.utc)
    assert next_timestamp(future) > future
    assert next_timestamp(None).tzinfo is not None


@pytest.mark.asyncio
async def test_create_and_reload(store: JsonTaskStore, data_dir: Path) -> None:
    """Test that created tasks are persisted with camelCase keys and reload intact."""
    task = await store.create_task(TaskCreate(title="Fix login bug", priority=2, feature_context="auth"))
    payload = json.loads((data_dir / "tasks.json").read_text(encoding="utf-8"))
    assert payload["tasks"][0]["id"] == task.id
    assert payload["tasks"][0]["featureContext"] == "auth"

    reloaded = await JsonTaskStore(data_dir).get_task(task.id)
    assert reloaded == task


@pytest.mark.asyncio
async def test_update_bumps_updated_at(store: JsonTaskStore) -> None:
    """Test that updates apply changes and advance updated_at."""
    task = await store.create_task(TaskCreate(title="Draft"))
    updated = await store.update_task(task.id, {"title": "Final", "status": TaskStatus.DONE})
    assert updated.title == "Final"
    assert updated.status == TaskStatus.DONE
    assert updated.updated_at > task.updated_at
    assert updated.created_at == task.created_at


@pytest.mark.asyncio
async def test_update_rejects_immutable_fields(store: JsonTaskStore) -> None:
    """Test that bookkeeping fields cannot be changed through update_task."""
    task = await store.create_task(TaskCreate(title="Draft"))
    with pytest.raises(ValueError, match="last_synced_at"):
        await store.update_task(task.id, {"last_synced_at": task.created_at})


@pytest.mark.asyncio
async def test_update_unknown_task(store: JsonTaskStore) -> None:
    """Test that updating a missing task raises TaskNotFoundError."""
    with pytest.raises(TaskNotFoundError):
        await store.update_task("missing", {"title": "x"})


@pytest.mark.asyncio
async def test_mark_synced_and_unlink(store: JsonTaskStore) -> None:
    """Test that marking a task synced stamps both watermarks, and unlinking clears them."""
    task = await store.create_task(TaskCreate(title="Draft"))
    issue = make_issue(datetime(2025, 1, 1, tzinfo=timezone.utc))

    synced = await store.mark_synced(task.id, issue, {"title": issue.title})
    assert synced.title == "Remote title"
    assert synced.remote_id == "issue-9"
    assert synced.remote_identifier == "ENG-9"
    assert synced.remote_team_id == "team-eng"
    assert synced.remote_updated_at == issue.updated_at
    assert synced.last_synced_at == synced.updated_at
    assert await store.get_task_by_remote_id("issue-9") == synced

    unlinked = await store.unlink_task(task.id)
    assert unlinked.remote_id is None
    assert unlinked.last_synced_at is None
    assert unlinked.updated_at > synced.updated_at


@pytest.mark.asyncio
async def test_mark_synced_keeps_edits_made_after_the_snapshot(store: JsonTaskStore) -> None:
    """Test that a task edited after the synced snapshot is linked but stays pending."""
    task = await store.create_task(TaskCreate(title="Draft"))
    edited = await store.update_task(task.id, {"title": "Edited meanwhile"})
    issue = make_issue(datetime(2025, 1, 1, tzinfo=timezone.utc))

    pushed = await store.mark_synced(task.id, issue, synced_version=task.updated_at)
    assert pushed.remote_id == "issue-9"
    assert pushed.remote_updated_at == issue.updated_at
    assert pushed.title == "Edited meanwhile"
    assert pushed.updated_at == edited.updated_at
    assert pushed.last_synced_at is None

    pulled = await store.mark_synced(task.id, make_issue(datetime(2025, 2, 1, tzinfo=timezone.utc)), {"title": "Remote title"}, synced_version=task.updated_at)
    assert pulled.title == "Edited meanwhile"
    assert pulled.remote_updated_at == issue.updated_at

    current = await store.mark_synced(task.id, issue, {"title": "Remote title"}, synced_version=edited.updated_at)
    assert current.title == "Remote title"
    assert current.last_synced_at == current.updated_at


@pytest.mark.asyncio
async def test_list_tasks_filters(store: JsonTaskStore) -> None:
    """Test status, search, selection and limit filters."""
    first = await store.create_task(TaskCreate(title="Fix login bug", selected=True))
    await store.create_task(TaskCreate(title="Write docs", description="About login", status=TaskStatus.DONE))
    await store.create_task(TaskCreate(title="Refactor"))

    assert [t.title for t in await store.list_tasks()] == ["Fix login bug", "Write docs", "Refactor"]
    assert [t.title for t in await store.list_tasks(TaskFilter(status=TaskStatus.DONE))] == ["Write docs"]
    assert [t.title for t in await store.list_tasks(TaskFilter(search_text="LOGIN"))] == ["Fix login bug", "Write docs"]
    assert [t.id for t in await store.list_tasks(TaskFilter(selected=True))] == [first.id]
    assert len(await store.list_tasks(TaskFilter(limit=2))) == 2
    assert await store.list_tasks(TaskFilter(linked=True)) == []


@pytest.mark.asyncio
async def test_delete_task(store: JsonTaskStore) -> None:
    """Test that deleting reports whether the task existed."""
    task = await store.create_task(TaskCreate(title="Temporary"))
    assert await store.delete_task(task.id) is True
    assert await store.delete_task(task.id) is False
    assert await store.get_task(task.id) is None


@pytest.mark.asyncio
async def test_corrupt_tasks_file_raises_store_error(data_dir: Path) -> None:
    """Test that an undecodable tasks file surfaces as StoreError."""
    data_dir.mkdir(parents=True)
    (data_dir / "tasks.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreError):
        await JsonTaskStore(data_dir).list_tasks()


@pytest.mark.asyncio
async def test_atomic_write_leaves_no_temporary_files(store: JsonTaskStore, data_dir: Path) -> None:
    """Test that writes replace the document without leaving temporary files behind."""
    for index in range(3):
        await store.create_task(TaskCreate(title=f"Task {index}"))
    assert sorted(path.name for path in data_dir.iterdir()) == ["tasks.json"]


@pytest.mark.asyncio
async def test_settings_round_trip(store: JsonTaskStore, data_dir: Path) -> None:
    """Test that settings are validated and persisted."""
    assert (await store.get_settings()).sync_limit == 100
    updated = await store.update_settings({"sync_limit": "25", "default_priority": 3})
    assert updated.sync_limit == 25
    assert (await JsonTaskStore(data_dir).get_settings()).default_priority == 3


@pytest.mark.asyncio
async def test_auth_and_webhooks_round_trip(store: JsonTaskStore, data_dir: Path) -> None:
    """Test storing and clearing auth records and webhook registrations."""
    await store.set_auth(AuthRecord(encrypted_api_key="token", default_team_id="team-eng"))
    await store.save_webhook(WebhookConfig(id="webhook-1", url="https://example.com/hook", secret="s3cret"))

    reloaded = JsonTaskStore(data_dir)
    auth = await reloaded.get_auth()
    assert auth is not None and auth.default_team_id == "team-eng"
    assert [w.id for w in await reloaded.list_webhooks()] == ["webhook-1"]

    assert await reloaded.remove_webhook("webhook-1") is True
    assert await reloaded.remove_webhook("webhook-1") is False
    await reloaded.set_auth(None)
    assert await reloaded.get_auth() is None
