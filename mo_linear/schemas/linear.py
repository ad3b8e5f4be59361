"""Pydantic models for objects returned by the Linear GraphQL API."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class LinearModel(BaseModel):
    """Base model that maps Linear's camelCase fields onto snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class WorkflowStateType(str, Enum):
    """Enum for Linear workflow state types."""

    TRIAGE = "triage"
    BACKLOG = "backlog"
    UNSTARTED = "unstarted"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELED = "canceled"


class IssueRelationType(str, Enum):
    """Enum for the relation types accepted when linking two issues."""

    BLOCKS = "blocks"
    BLOCKED_BY = "blocked_by"
    RELATED = "related"
    DUPLICATE = "duplicate"
    DUPLICATED_BY = "duplicated_by"


class User(LinearModel):
    """Pydantic model for a Linear user."""

    id: str
    name: str
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    active: bool = True


class WorkflowState(LinearModel):
    """Pydantic model for a Linear workflow state."""

    id: str
    name: str
    type: str
    color: str | None = None
    description: str | None = None
    position: float | None = None


class IssueLabel(LinearModel):
    """Pydantic model for a Linear issue label."""

    id: str
    name: str
    color: str | None = None


class Team(LinearModel):
    """Pydantic model for a Linear team."""

    id: str
    name: str
    key: str
    description: str | None = None
    icon: str | None = None
    color: str | None = None


class TeamDetails(Team):
    """A team with its workflow states, labels and members."""

    states: list[WorkflowState] = Field(default_factory=list)
    labels: list[IssueLabel] = Field(default_factory=list)
    members: list[User] = Field(default_factory=list)

    @field_validator("states", "labels", "members", mode="before")
    @classmethod
    def unwrap_connection(cls, value: Any) -> Any:
        """Accept either a plain list or a GraphQL connection with ``nodes``."""
        if isinstance(value, dict):
            return value.get("nodes", [])
        return value


class ProjectReference(LinearModel):
    """Minimal reference to a project embedded in an issue."""

    id: str
    name: str


class Project(ProjectReference):
    """Pydantic model for a Linear project."""

    description: str | None = None
    state: str | None = None
    progress: float | None = None
    start_date: str | None = None
    target_date: str | None = None


class CycleReference(LinearModel):
    """Minimal reference to a cycle embedded in an issue."""

    id: str
    number: int | None = None
    name: str | None = None


class Cycle(CycleReference):
    """Pydantic model for a Linear cycle."""

    starts_at: datetime | None = None
    ends_at: datetime | None = None


class RemoteIssue(LinearModel):
    """Pydantic model for a Linear issue."""

    id: str
    identifier: str
    title: str
    description: str | None = None
    priority: int | None = None
    estimate: int | None = None
    state: WorkflowState | None = None
    assignee: User | None = None
    labels: list[IssueLabel] = Field(default_factory=list)
    project: ProjectReference | None = None
    cycle: CycleReference | None = None
    team: Team | None = None
    created_at: datetime
    updated_at: datetime
    url: str | None = None

    @field_validator("labels", mode="before")
    @classmethod
    def unwrap_labels(cls, value: Any) -> Any:
        """Accept either a plain list or a GraphQL connection with ``nodes``."""
        if value is None:
            return []
        if isinstance(value, dict):
            return value.get("nodes", [])
        return value

    @field_validator("estimate", mode="before")
    @classmethod
    def coerce_estimate(cls, value: Any) -> Any:
        """Linear reports estimates as floats; tasks track whole points."""
        if isinstance(value, float):
            return int(value)
        return value


class PageInfo(LinearModel):
    """Cursor pagination information."""

    has_next_page: bool = False
    end_cursor: str | None = None


class IssuePage(LinearModel):
    """A single page of issues."""

    issues: list[RemoteIssue]
    page_info: PageInfo


class Comment(LinearModel):
    """Pydantic model for a Linear comment."""

    id: str
    body: str
    created_at: datetime | None = None
    user: User | None = None


class IssueRelation(LinearModel):
    """Pydantic model for a relation between two issues."""

    id: str
    type: str
    issue_id: str | None = None
    related_issue_id: str | None = None
    related_issue_identifier: str | None = None


class Webhook(LinearModel):
    """Pydantic model for a webhook registered in Linear."""

    id: str
    url: str
    label: str | None = None
    enabled: bool = True
    resource_types: list[str] = Field(default_factory=list)
    team_id: str | None = None


class IssueCreateInput(LinearModel):
    """Input for creating an issue."""

    title: str
    team_id: str
    description: str | None = None
    priority: int | None = None
    estimate: int | None = None
    state_id: str | None = None
    assignee_id: str | None = None
    label_ids: list[str] | None = None
    project_id: str | None = None
    cycle_id: str | None = None
    parent_id: str | None = None


class IssueUpdateInput(LinearModel):
    """Input for updating an issue. Fields left as None are not sent."""

    title: str | None = None
    description: str | None = None
    priority: int | None = None
    estimate: int | None = None
    state_id: str | None = None
    assignee_id: str | None = None
    label_ids: list[str] | None = None
    project_id: str | None = None
    cycle_id: str | None = None
    parent_id: str | None = None
