"""Pydantic schema for local tasks."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TaskStatus(str, Enum):
    """Enum for local task statuses."""

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"


class Task(BaseModel):
    """Pydantic model for a local task.

    Remote link fields are populated once the task has been synchronized with
    a Linear issue. ``last_synced_at`` holds the value of ``updated_at`` that
    the last synchronization wrote, so a later ``updated_at`` means the task
    changed locally since then. ``remote_updated_at`` holds the issue's
    ``updatedAt`` observed at that same synchronization.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: int | None = None
    estimate: int | None = None
    feature_context: str | None = None
    selected: bool = False
    created_at: datetime
    updated_at: datetime

    remote_id: str | None = None
    remote_identifier: str | None = None
    remote_url: str | None = None
    remote_team_id: str | None = None
    remote_updated_at: datetime | None = None
    last_synced_at: datetime | None = None

    @property
    def is_linked(self) -> bool:
        """Whether the task is mapped to a remote issue."""
        return self.remote_id is not None


class TaskCreate(BaseModel):
    """Parameters for creating a task."""

    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: int | None = None
    estimate: int | None = None
    feature_context: str | None = None
    selected: bool = False
    remote_id: str | None = None
    remote_identifier: str | None = None
    remote_url: str | None = None
    remote_team_id: str | None = None
    remote_updated_at: datetime | None = None


class TaskFilter(BaseModel):
    """Criteria for listing tasks."""

    task_ids: list[str] | None = None
    status: TaskStatus | None = None
    search_text: str | None = None
    linked: bool | None = None
    selected: bool | None = None
    limit: int | None = Field(default=None, gt=0)

    def matches(self, task: Task) -> bool:
        """Return True when the task satisfies every criterion that is set."""
        if self.task_ids is not None and task.id not in self.task_ids:
            return False
        if self.status is not None and task.status != self.status:
            return False
        if self.search_text:
            needle = self.search_text.lower()
            if needle not in task.title.lower() and needle not in task.description.lower():
                return False
        if self.linked is not None and task.is_linked != self.linked:
            return False
        if self.selected is not None and task.selected != self.selected:
            return False
        return True
