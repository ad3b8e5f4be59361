"""Base ABC for Linear clients."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from mo_linear.schemas.linear import (
    Comment,
    Cycle,
    IssueCreateInput,
    IssuePage,
    IssueRelation,
    IssueRelationType,
    IssueUpdateInput,
    Project,
    RemoteIssue,
    Team,
    TeamDetails,
    User,
    Webhook,
    WorkflowState,
)


class LinearClientBase(ABC):
    """Base ABC for Linear clients."""

    # Authentication
    @abstractmethod
    async def get_viewer(self) -> User:
        """Get the user that owns the API key."""
        pass

    async def validate_api_key(self) -> User:
        """Validate the API key by fetching the current user."""
        return await self.get_viewer()

    # Teams
    @abstractmethod
    async def list_teams(self) -> list[Team]:
        """List teams visible to the API key."""
        pass

    @abstractmethod
    async def get_team(self, team_id: str) -> TeamDetails | None:
        """Get a team with its workflow states, labels and members."""
        pass

    async def get_workflow_states(self, team_id: str) -> list[WorkflowState]:
        """List the workflow states of a team."""
        team = await self.get_team(team_id)
        return team.states if team is not None else []

    def clear_cache(self) -> None:
        """Drop any cached lookups."""
        return None

    # Issue CRUD
    @abstractmethod
    async def get_issues(self, filter: dict[str, Any] | None = None, first: int = 50, after: str | None = None) -> IssuePage:
        """Get a single page of issues."""
        pass

    @abstractmethod
    async def get_all_issues(
        self, filter: dict[str, Any] | None = None, batch_size: int = 50, max_items: int | None = None
    ) -> list[RemoteIssue]:
        """Get every issue matching a filter, following pagination cursors."""
        pass

    @abstractmethod
    async def get_issue(self, issue_id: str) -> RemoteIssue | None:
        """Get a single issue by ID or identifier."""
        pass

    @abstractmethod
    async def create_issue(self, issue: IssueCreateInput) -> RemoteIssue:
        """Create an issue."""
        pass

    @abstractmethod
    async def update_issue(self, issue_id: str, changes: IssueUpdateInput) -> RemoteIssue:
        """Update an issue."""
        pass

    @abstractmethod
    async def delete_issue(self, issue_id: str) -> bool:
        """Delete (archive) an issue."""
        pass

    # Comments
    @abstractmethod
    async def add_comment(self, issue_id: str, body: str) -> Comment:
        """Add a comment to an issue."""
        pass

    @abstractmethod
    async def get_comments(self, issue_id: str) -> list[Comment]:
        """List comments on an issue."""
        pass

    # Relations
    @abstractmethod
    async def create_issue_relation(self, issue_id: str, related_issue_id: str, relation_type: IssueRelationType) -> IssueRelation:
        """Create a relation between two issues."""
        pass

    @abstractmethod
    async def get_issue_relations(self, issue_id: str) -> list[IssueRelation]:
        """List the relations of an issue, including inverse ones."""
        pass

    # Projects and cycles
    @abstractmethod
    async def list_projects(self, team_id: str, first: int = 100) -> list[Project]:
        """List projects of a team."""
        pass

    @abstractmethod
    async def create_project(self, name: str, team_ids: list[str], description: str | None = None, **kwargs: Any) -> Project:
        """Create a project."""
        pass

    @abstractmethod
    async def list_cycles(self, team_id: str, first: int = 50) -> list[Cycle]:
        """List cycles of a team."""
        pass

    @abstractmethod
    async def create_cycle(self, team_id: str, starts_at: datetime, ends_at: datetime, name: str | None = None) -> Cycle:
        """Create a cycle."""
        pass

    # Webhooks
    @abstractmethod
    async def create_webhook(
        self,
        url: str,
        team_id: str | None,
        label: str | None,
        resource_types: list[str],
        secret: str | None = None,
    ) -> Webhook:
        """Register a webhook."""
        pass

    @abstractmethod
    async def list_webhooks(self) -> list[Webhook]:
        """List webhooks registered in the workspace."""
        pass

    @abstractmethod
    async def delete_webhook(self, webhook_id: str) -> bool:
        """Delete a webhook."""
        pass
