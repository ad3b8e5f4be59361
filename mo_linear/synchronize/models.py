"""Contains models used by the synchronization engine."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mo_linear.schemas.linear import RemoteIssue
from mo_linear.schemas.task import Task


class SyncDirection(str, Enum):
    """Enum for the direction of a synchronization run."""

    PUSH = "push"
    PULL = "pull"
    BOTH = "both"

    @property
    def pushes(self) -> bool:
        """Whether local changes flow to Linear."""
        return self in (SyncDirection.PUSH, SyncDirection.BOTH)

    @property
    def pulls(self) -> bool:
        """Whether Linear changes flow to local tasks."""
        return self in (SyncDirection.PULL, SyncDirection.BOTH)


class SyncDecision(Enum):
    """Enum for the action planned for a single task/issue."""

    CREATE_REMOTE = "create_remote"
    UPDATE_REMOTE = "update_remote"
    CREATE_LOCAL = "create_local"
    UPDATE_LOCAL = "update_local"
    UNLINK_LOCAL = "unlink_local"
    CONFLICT = "conflict"
    NOOP = "noop"


Resolution = Literal["local", "remote", "unresolved"]


class SyncModel(BaseModel):
    """Base model for sync results, serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncFilter(SyncModel):
    """Narrows which tasks and issues take part in a run."""

    task_ids: list[str] | None = None
    issue_ids: list[str] | None = None
    states: list[str] | None = None
    search_text: str | None = None

    @property
    def is_empty(self) -> bool:
        """Whether no criteria are set."""
        return not (self.task_ids or self.issue_ids or self.states or self.search_text)


class SyncOptions(SyncModel):
    """Options for a single synchronization run."""

    direction: SyncDirection = SyncDirection.BOTH
    filter: SyncFilter = Field(default_factory=SyncFilter)
    team_id: str | None = None
    limit: int = Field(default=100, gt=0)
    dry_run: bool = False
    force: bool = False


class SyncItem(SyncModel):
    """A task/issue pair as reported in result details."""

    local: dict[str, Any] | None = None
    remote: dict[str, Any] | None = None


class SyncConflict(SyncItem):
    """A pair where both sides changed since the last sync."""

    resolution: Resolution


class SyncFailure(SyncModel):
    """An item that could not be synchronized."""

    id: str
    error: str


class SyncError(SyncModel):
    """An error recorded during a run."""

    code: str
    message: str
    item_id: str | None = None


class SyncDetails(SyncModel):
    """Per-item breakdown of a run."""

    added: list[SyncItem] = Field(default_factory=list)
    updated: list[SyncItem] = Field(default_factory=list)
    deleted: list[SyncItem] = Field(default_factory=list)
    conflicts: list[SyncConflict] = Field(default_factory=list)
    skipped: list[SyncItem] = Field(default_factory=list)
    failed: list[SyncFailure] = Field(default_factory=list)


class SyncResult(SyncModel):
    """Outcome of one synchronization run. Never persisted."""

    added: int = 0
    updated: int = 0
    deleted: int = 0
    conflicts: int = 0
    errors: list[SyncError] = Field(default_factory=list)
    details: SyncDetails = Field(default_factory=SyncDetails)
    dry_run: bool = False

    @property
    def success(self) -> bool:
        """Whether the run finished without errors."""
        return not self.errors

    def record_error(self, code: str, message: str, item_id: str | None = None) -> None:
        """Record an error and mark the item as failed."""
        self.errors.append(SyncError(code=code, message=message, item_id=item_id))
        self.details.failed.append(SyncFailure(id=item_id or "", error=message))


class IncompletePlanError(Exception):
    """Raised when a planned action lacks the task or issue its decision needs."""

    pass


class PlannedAction(BaseModel):
    """An action decided during planning and carried out during execution."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    decision: SyncDecision
    task: Task | None = None
    issue: RemoteIssue | None = None
    resolution: Resolution | None = None
    issue_id: str | None = None

    @property
    def item_id(self) -> str:
        """Identifier used when reporting this action."""
        if self.task is not None:
            return self.task.id
        if self.issue is not None:
            return self.issue.identifier
        return self.issue_id or ""

    @property
    def is_push(self) -> bool:
        """Whether executing the action writes to Linear."""
        if self.decision == SyncDecision.CONFLICT:
            return self.resolution == "local"
        return self.decision in (SyncDecision.CREATE_REMOTE, SyncDecision.UPDATE_REMOTE)

    def require_task(self) -> Task:
        """The local task of this action.

        Raises:
            IncompletePlanError: If the action has no task
        """
        if self.task is None:
            raise IncompletePlanError(f"{self.decision.value} action has no local task")
        return self.task

    def require_issue(self) -> RemoteIssue:
        """The remote issue of this action.

        Raises:
            IncompletePlanError: If the action has no issue
        """
        if self.issue is None:
            raise IncompletePlanError(f"{self.decision.value} action has no remote issue")
        return self.issue
