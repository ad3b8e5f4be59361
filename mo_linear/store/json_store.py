"""JSON-file backed store for local tasks and persisted configuration.

The store owns two documents under its data directory:

- ``tasks.json`` holding ``{"tasks": [...]}`` with camelCase keys
- ``config.json`` holding user settings, the auth record and webhook registrations

Every mutation goes through a single ``asyncio.Lock`` and is persisted with an
atomic replace, so a crash mid-write never leaves a truncated file behind.
"""

import asyncio
import json
import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from mo_linear.schemas.config import AuthRecord, StoreConfig, UserSettings, WebhookConfig
from mo_linear.schemas.linear import RemoteIssue
from mo_linear.schemas.task import Task, TaskCreate, TaskFilter

from .exceptions import StoreError, TaskNotFoundError

logger = structlog.get_logger(__name__)

TASKS_FILENAME = "tasks.json"
CONFIG_FILENAME = "config.json"

IMMUTABLE_TASK_FIELDS = frozenset({"id", "created_at", "updated_at", "last_synced_at"})


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def next_timestamp(previous: datetime | None) -> datetime:
    """Return a timestamp strictly later than ``previous``."""
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def generate_task_id() -> str:
    """Generate an opaque task identifier."""
    return uuid.uuid4().hex[:12]


def _write_json_atomic(path: Path, payload: Any) -> None:
    """Write JSON to a temporary sibling file, then move it over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _read_json(path: Path) -> Any:
    if not path.exists():
        return None
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class JsonTaskStore:
    """Task and configuration store persisted as JSON documents."""

    def __init__(self, data_dir: Path | str) -> None:
        """Initialize the store. Files are read lazily on first access."""
        self.data_dir = Path(data_dir)
        self.tasks_path = self.data_dir / TASKS_FILENAME
        self.config_path = self.data_dir / CONFIG_FILENAME
        self._lock = asyncio.Lock()
        self._tasks: dict[str, Task] | None = None
        self._config: StoreConfig | None = None

    # Loading and persistence
    async def _load_tasks(self) -> dict[str, Task]:
        if self._tasks is None:
            try:
                raw = await asyncio.to_thread(_read_json, self.tasks_path)
            except (OSError, json.JSONDecodeError) as exc:
                logger.error("Failed to read tasks file", path=str(self.tasks_path), error=str(exc))
                raise StoreError(f"Failed to read tasks file: {exc}", path=self.tasks_path) from exc
            tasks: dict[str, Task] = {}
            try:
                for item in (raw or {}).get("tasks", []):
                    task = Task.model_validate(item)
                    tasks[task.id] = task
            except (ValidationError, AttributeError) as exc:
                logger.error("Tasks file contains invalid data", path=str(self.tasks_path), error=str(exc))
                raise StoreError(f"Tasks file contains invalid data: {exc}", path=self.tasks_path) from exc
            logger.debug("Loaded tasks", path=str(self.tasks_path), count=len(tasks))
            self._tasks = tasks
        return self._tasks

    async def _persist_tasks(self, tasks: dict[str, Task]) -> None:
        payload = {"tasks": [task.model_dump(mode="json", by_alias=True) for task in tasks.values()]}
        try:
            await asyncio.to_thread(_write_json_atomic, self.tasks_path, payload)
        except OSError as exc:
            logger.error("Failed to write tasks file", path=str(self.tasks_path), error=str(exc))
            raise StoreError(f"Failed to write tasks file: {exc}", path=self.tasks_path) from exc
        self._tasks = tasks

    async def _load_config(self) -> StoreConfig:
        if self._config is None:
            try:
                raw = await asyncio.to_thread(_read_json, self.config_path)
                self._config = StoreConfig.model_validate(raw or {})
            except (OSError, json.JSONDecodeError, ValidationError) as exc:
                logger.error("Failed to read config file", path=str(self.config_path), error=str(exc))
                raise StoreError(f"Failed to read config file: {exc}", path=self.config_path) from exc
        return self._config

    async def _persist_config(self, config: StoreConfig) -> None:
        payload = config.model_dump(mode="json", by_alias=True)
        try:
            await asyncio.to_thread(_write_json_atomic, self.config_path, payload)
        except OSError as exc:
            logger.error("Failed to write config file", path=str(self.config_path), error=str(exc))
            raise StoreError(f"Failed to write config file: {exc}", path=self.config_path) from exc
        self._config = config

    # Task queries
    async def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        """List tasks ordered by creation time, optionally filtered."""
        tasks = sorted((await self._load_tasks()).values(), key=lambda t: (t.created_at, t.id))
        if task_filter is None:
            return tasks
        matching = [task for task in tasks if task_filter.matches(task)]
        if task_filter.limit is not None:
            matching = matching[: task_filter.limit]
        return matching

    async def get_task(self, task_id: str) -> Task | None:
        """Get a task by ID."""
        return (await self._load_tasks()).get(task_id)

    async def get_task_by_remote_id(self, remote_id: str) -> Task | None:
        """Get the task linked to a remote issue, if any."""
        for task in (await self._load_tasks()).values():
            if task.remote_id == remote_id:
                return task
        return None

    # Task mutations
    async def create_task(self, data: TaskCreate, mark_synced: bool = False) -> Task:
        """Create a task.

        When ``mark_synced`` is set the task is recorded as in sync with its
        remote issue as of this write.
        """
        async with self._lock:
            tasks = dict(await self._load_tasks())
            now = utcnow()
            task_id = generate_task_id()
            while task_id in tasks:
                task_id = generate_task_id()
            task = Task(
                id=task_id,
                created_at=now,
                updated_at=now,
                last_synced_at=now if mark_synced else None,
                **data.model_dump(),
            )
            tasks[task.id] = task
            await self._persist_tasks(tasks)
        logger.info("Created task", task_id=task.id, title=task.title, remote_id=task.remote_id)
        return task

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        """Apply field changes to a task and bump its ``updated_at``."""
        forbidden = IMMUTABLE_TASK_FIELDS.intersection(changes)
        if forbidden:
            raise ValueError(f"Cannot change task fields: {', '.join(sorted(forbidden))}")
        async with self._lock:
            tasks = dict(await self._load_tasks())
            current = tasks.get(task_id)
            if current is None:
                raise TaskNotFoundError(task_id)
            updated = Task.model_validate({**current.model_dump(), **changes, "updated_at": next_timestamp(current.updated_at)})
            tasks[task_id] = updated
            await self._persist_tasks(tasks)
        logger.debug("Updated task", task_id=task_id, fields=sorted(changes))
        return updated

    async def mark_synced(
        self,
        task_id: str,
        issue: RemoteIssue,
        changes: dict[str, Any] | None = None,
        synced_version: datetime | None = None,
    ) -> Task:
        """Record that a task and a remote issue are in sync.

        Applies ``changes`` (fields copied from the issue on pull), links the
        task to ``issue`` and stamps both sync watermarks.

        ``synced_version`` is the ``updated_at`` of the task snapshot that was
        synchronized. If the task has been edited since, the edit stays pending:
        only the link is recorded, pulled ``changes`` are not applied and
        ``last_synced_at`` is left untouched. A push still advances the remote
        watermark, since the issue now holds what was pushed.
        """
        changes = changes or {}
        async with self._lock:
            tasks = dict(await self._load_tasks())
            current = tasks.get(task_id)
            if current is None:
                raise TaskNotFoundError(task_id)
            fields: dict[str, Any] = {
                "remote_id": issue.id,
                "remote_identifier": issue.identifier,
                "remote_url": issue.url,
                "remote_team_id": issue.team.id if issue.team else current.remote_team_id,
            }
            if synced_version is not None and current.updated_at != synced_version:
                logger.info("Task changed during synchronization", task_id=task_id, pulled=bool(changes))
                if not changes:
                    fields["remote_updated_at"] = issue.updated_at
            else:
                stamp = next_timestamp(current.updated_at)
                fields.update(changes)
                fields.update({"remote_updated_at": issue.updated_at, "updated_at": stamp, "last_synced_at": stamp})
            updated = Task.model_validate({**current.model_dump(), **fields})
            tasks[task_id] = updated
            await self._persist_tasks(tasks)
        return updated

    async def unlink_task(self, task_id: str) -> Task:
        """Remove the remote link and sync watermarks from a task."""
        async with self._lock:
            tasks = dict(await self._load_tasks())
            current = tasks.get(task_id)
            if current is None:
                raise TaskNotFoundError(task_id)
            updated = current.model_copy(
                update={
                    "remote_id": None,
                    "remote_identifier": None,
                    "remote_url": None,
                    "remote_team_id": None,
                    "remote_updated_at": None,
                    "last_synced_at": None,
                    "updated_at": next_timestamp(current.updated_at),
                }
            )
            tasks[task_id] = updated
            await self._persist_tasks(tasks)
        logger.info("Unlinked task from remote issue", task_id=task_id, remote_id=current.remote_id)
        return updated

    async def delete_task(self, task_id: str) -> bool:
        """Delete a task. Returns False when it did not exist."""
        async with self._lock:
            tasks = dict(await self._load_tasks())
            if tasks.pop(task_id, None) is None:
                return False
            await self._persist_tasks(tasks)
        logger.info("Deleted task", task_id=task_id)
        return True

    # Configuration
    async def get_config(self) -> StoreConfig:
        """Get a copy of the persisted configuration document."""
        return (await self._load_config()).model_copy(deep=True)

    async def get_settings(self) -> UserSettings:
        """Get the user settings."""
        return (await self._load_config()).settings.model_copy()

    async def update_settings(self, changes: dict[str, Any]) -> UserSettings:
        """Validate and persist changes to the user settings."""
        async with self._lock:
            config = (await self._load_config()).model_copy(deep=True)
            config.settings = UserSettings.model_validate({**config.settings.model_dump(), **changes})
            await self._persist_config(config)
        logger.info("Updated settings", fields=sorted(changes))
        return config.settings

    async def get_auth(self) -> AuthRecord | None:
        """Get the stored auth record, if any."""
        auth = (await self._load_config()).auth
        return auth.model_copy() if auth is not None else None

    async def set_auth(self, record: AuthRecord | None) -> None:
        """Store or clear the auth record."""
        async with self._lock:
            config = (await self._load_config()).model_copy(deep=True)
            config.auth = record
            await self._persist_config(config)
        logger.info("Stored auth record" if record is not None else "Cleared auth record")

    async def list_webhooks(self) -> list[WebhookConfig]:
        """List stored webhook registrations ordered by creation time."""
        webhooks = (await self._load_config()).webhooks.values()
        return sorted(webhooks, key=lambda w: (w.created_at or datetime.min.replace(tzinfo=timezone.utc), w.id))

    async def get_webhook(self, webhook_id: str) -> WebhookConfig | None:
        """Get a stored webhook registration by ID."""
        return (await self._load_config()).webhooks.get(webhook_id)

    async def save_webhook(self, webhook: WebhookConfig) -> None:
        """Store a webhook registration under its ID."""
        async with self._lock:
            config = (await self._load_config()).model_copy(deep=True)
            config.webhooks[webhook.id] = webhook
            await self._persist_config(config)

    async def remove_webhook(self, webhook_id: str) -> bool:
        """Remove a webhook registration. Returns False when it was not stored."""
        async with self._lock:
            config = (await self._load_config()).model_copy(deep=True)
            if config.webhooks.pop(webhook_id, None) is None:
                return False
            await self._persist_config(config)
        return True
