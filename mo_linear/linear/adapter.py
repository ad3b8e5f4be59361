"""Linear client adapter for the GraphQL API over httpx."""

import time
from datetime import datetime
from typing import Any, Self

import httpx
import structlog
from pydantic.alias_generators import to_camel

from mo_linear.schemas.linear import (
    Comment,
    Cycle,
    IssueCreateInput,
    IssuePage,
    IssueRelation,
    IssueRelationType,
    IssueUpdateInput,
    PageInfo,
    Project,
    RemoteIssue,
    Team,
    TeamDetails,
    User,
    Webhook,
)
from mo_linear.utils.retry import DEFAULT_MAX_RETRIES, retry_on_rate_limit

from . import queries
from .abc import LinearClientBase
from .client import DEFAULT_LINEAR_API_URL, get_linear_client
from .exceptions import LinearAPIError, LinearRateLimitError

logger = structlog.get_logger(__name__)

TEAM_CACHE_TTL = 300.0
DEFAULT_BATCH_SIZE = 50

# Linear only stores the forward direction of a relation.
INVERSE_RELATION_TYPES: dict[IssueRelationType, IssueRelationType] = {
    IssueRelationType.BLOCKED_BY: IssueRelationType.BLOCKS,
    IssueRelationType.DUPLICATED_BY: IssueRelationType.DUPLICATE,
}
INVERSE_RELATION_NAMES = {"blocks": "blocked_by", "duplicate": "duplicated_by"}


def _parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header expressed in seconds."""
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _webhook_from_node(node: dict[str, Any]) -> Webhook:
    team = node.get("team") or {}
    return Webhook.model_validate({**node, "teamId": team.get("id")})


class LinearGraphQLAdapter(LinearClientBase):
    """Linear client adapter for the GraphQL API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str = DEFAULT_LINEAR_API_URL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        team_cache_ttl: float = TEAM_CACHE_TTL,
    ) -> None:
        """Initialize the Linear adapter with an already-initialized httpx client."""
        self.client = client
        self.api_url = api_url
        self.max_retries = max_retries
        self.team_cache_ttl = team_cache_ttl
        self._team_cache: dict[str, tuple[float, TeamDetails]] = {}

    @classmethod
    async def create(
        cls,
        api_key: str,
        api_url: str = DEFAULT_LINEAR_API_URL,
        timeout: float = 30.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> Self:
        """Create a new Linear adapter.

        Args:
            api_key: Linear personal API key
            api_url: GraphQL endpoint (defaults to https://api.linear.app/graphql)
            timeout: Per-request timeout in seconds
            max_retries: Retry bound applied to read operations
            transport: Optional httpx transport, used by tests to mock the API

        Returns:
            Configured LinearGraphQLAdapter instance
        """
        logger.info("Creating client for Linear GraphQL API", api_url=api_url, timeout=timeout)
        client = get_linear_client(api_key=api_key, timeout=timeout, transport=transport)
        return cls(client, api_url=api_url, max_retries=max_retries)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()

    def _omit_null_parameters(self, **kwargs: Any) -> dict[str, Any]:
        """Omit parameters that are None."""
        return {k: v for k, v in kwargs.items() if v is not None}

    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Execute a GraphQL document and return its ``data`` member.

        Raises:
            LinearRateLimitError: On HTTP 429 or a RATELIMITED GraphQL error
            LinearAPIError: On transport failures, non-2xx responses and GraphQL errors
        """
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables
        try:
            response = await self.client.post(self.api_url, json=payload)
        except httpx.TimeoutException as exc:
            raise LinearAPIError(f"Request to Linear timed out: {exc}", code="TIMEOUT") from exc
        except httpx.HTTPError as exc:
            raise LinearAPIError(f"Network error while contacting Linear: {exc}", code="NETWORK_ERROR") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code == 429:
            raise LinearRateLimitError(
                "Linear rate limit exceeded",
                status_code=429,
                code="RATELIMITED",
                payload=body,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            first = errors[0] if isinstance(errors[0], dict) else {"message": str(errors[0])}
            message = first.get("message", "Unknown GraphQL error")
            code = (first.get("extensions") or {}).get("code")
            logger.error(
                "Linear GraphQL request returned errors",
                status_code=response.status_code,
                code=code,
                message=message,
                error_count=len(errors),
            )
            if code == "RATELIMITED":
                raise LinearRateLimitError(
                    message,
                    status_code=response.status_code,
                    code=code,
                    payload=body,
                    retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                )
            raise LinearAPIError(message, status_code=response.status_code, code=code, payload=body)

        if response.is_error:
            raise LinearAPIError(
                f"Linear API returned HTTP {response.status_code}",
                status_code=response.status_code,
                payload=body,
            )
        if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
            raise LinearAPIError("Linear API returned a malformed response", status_code=response.status_code, payload=body)
        return body["data"]

    async def _mutate(self, query: str, variables: dict[str, Any], field: str) -> dict[str, Any]:
        """Execute a mutation and verify that its payload reports success."""
        data = await self.execute(query, variables)
        result = data.get(field) or {}
        if not result.get("success"):
            raise LinearAPIError(f"Linear mutation {field} did not succeed", payload=data)
        return result

    # Authentication
    @retry_on_rate_limit()
    async def get_viewer(self) -> User:
        """Get the user that owns the API key."""
        data = await self.execute(queries.VIEWER_QUERY)
        return User.model_validate(data["viewer"])

    # Teams
    @retry_on_rate_limit()
    async def list_teams(self) -> list[Team]:
        """List teams visible to the API key."""
        data = await self.execute(queries.TEAMS_QUERY)
        return [Team.model_validate(node) for node in data["teams"]["nodes"]]

    @retry_on_rate_limit()
    async def get_team(self, team_id: str) -> TeamDetails | None:
        """Get a team with its states, labels and members, served from cache when fresh."""
        cached = self._team_cache.get(team_id)
        if cached is not None and time.monotonic() - cached[0] < self.team_cache_ttl:
            logger.debug("Serving team from cache", team_id=team_id)
            return cached[1]
        data = await self.execute(queries.TEAM_QUERY, {"id": team_id})
        if not data.get("team"):
            return None
        team = TeamDetails.model_validate(data["team"])
        self._team_cache[team_id] = (time.monotonic(), team)
        return team

    def clear_cache(self) -> None:
        """Drop all cached team details."""
        self._team_cache.clear()

    # Issue CRUD
    @retry_on_rate_limit()
    async def get_issues(self, filter: dict[str, Any] | None = None, first: int = DEFAULT_BATCH_SIZE, after: str | None = None) -> IssuePage:
        """Get a single page of issues."""
        variables = self._omit_null_parameters(filter=filter, first=first, after=after)
        data = await self.execute(queries.ISSUES_QUERY, variables)
        connection = data["issues"]
        return IssuePage(
            issues=[RemoteIssue.model_validate(node) for node in connection["nodes"]],
            page_info=PageInfo.model_validate(connection.get("pageInfo") or {}),
        )

    async def get_all_issues(
        self, filter: dict[str, Any] | None = None, batch_size: int = DEFAULT_BATCH_SIZE, max_items: int | None = None
    ) -> list[RemoteIssue]:
        """Get every issue matching a filter, following cursors until exhausted or capped."""
        issues: list[RemoteIssue] = []
        seen: set[str] = set()
        cursor: str | None = None
        while True:
            first = batch_size
            if max_items is not None:
                first = min(batch_size, max_items - len(issues))
                if first <= 0:
                    break
            page = await self.get_issues(filter=filter, first=first, after=cursor)
            for issue in page.issues:
                if issue.id in seen:
                    continue
                seen.add(issue.id)
                issues.append(issue)
            if not page.page_info.has_next_page or not page.page_info.end_cursor:
                break
            if page.page_info.end_cursor == cursor:
                logger.warning("Linear returned the same cursor twice, stopping pagination", cursor=cursor)
                break
            cursor = page.page_info.end_cursor
        if max_items is not None:
            issues = issues[:max_items]
        logger.debug("Fetched issues", count=len(issues), filter=filter)
        return issues

    @retry_on_rate_limit()
    async def get_issue(self, issue_id: str) -> RemoteIssue | None:
        """Get a single issue by ID or identifier, or None if it does not exist."""
        try:
            data = await self.execute(queries.ISSUE_QUERY, {"id": issue_id})
        except LinearAPIError as exc:
            if isinstance(exc, LinearRateLimitError) or "not found" not in exc.message.lower():
                raise
            logger.info("Linear issue not found", issue_id=issue_id)
            return None
        if not data.get("issue"):
            return None
        return RemoteIssue.model_validate(data["issue"])

    async def create_issue(self, issue: IssueCreateInput) -> RemoteIssue:
        """Create an issue."""
        input_data = issue.model_dump(by_alias=True, exclude_none=True)
        result = await self._mutate(queries.CREATE_ISSUE_MUTATION, {"input": input_data}, "issueCreate")
        created = RemoteIssue.model_validate(result["issue"])
        logger.info("Created Linear issue", issue_id=created.id, identifier=created.identifier)
        return created

    async def update_issue(self, issue_id: str, changes: IssueUpdateInput) -> RemoteIssue:
        """Update an issue."""
        input_data = changes.model_dump(by_alias=True, exclude_none=True)
        result = await self._mutate(queries.UPDATE_ISSUE_MUTATION, {"id": issue_id, "input": input_data}, "issueUpdate")
        updated = RemoteIssue.model_validate(result["issue"])
        logger.info("Updated Linear issue", issue_id=updated.id, identifier=updated.identifier, fields=sorted(input_data))
        return updated

    async def delete_issue(self, issue_id: str) -> bool:
        """Delete (archive) an issue."""
        await self._mutate(queries.DELETE_ISSUE_MUTATION, {"id": issue_id}, "issueDelete")
        logger.info("Deleted Linear issue", issue_id=issue_id)
        return True

    # Comments
    async def add_comment(self, issue_id: str, body: str) -> Comment:
        """Add a comment to an issue."""
        result = await self._mutate(queries.CREATE_COMMENT_MUTATION, {"input": {"issueId": issue_id, "body": body}}, "commentCreate")
        return Comment.model_validate(result["comment"])

    @retry_on_rate_limit()
    async def get_comments(self, issue_id: str) -> list[Comment]:
        """List comments on an issue."""
        data = await self.execute(queries.ISSUE_COMMENTS_QUERY, {"id": issue_id})
        issue = data.get("issue") or {}
        return [Comment.model_validate(node) for node in (issue.get("comments") or {}).get("nodes", [])]

    # Relations
    async def create_issue_relation(self, issue_id: str, related_issue_id: str, relation_type: IssueRelationType) -> IssueRelation:
        """Create a relation between two issues.

        Inverse relation types are stored by Linear as their forward type with
        the two endpoints swapped.
        """
        source, target = issue_id, related_issue_id
        forward_type = relation_type
        if relation_type in INVERSE_RELATION_TYPES:
            forward_type = INVERSE_RELATION_TYPES[relation_type]
            source, target = related_issue_id, issue_id
        result = await self._mutate(
            queries.CREATE_ISSUE_RELATION_MUTATION,
            {"input": {"issueId": source, "relatedIssueId": target, "type": forward_type.value}},
            "issueRelationCreate",
        )
        node = result["issueRelation"]
        return IssueRelation(
            id=node["id"],
            type=relation_type.value,
            issue_id=issue_id,
            related_issue_id=related_issue_id,
            related_issue_identifier=(node.get("relatedIssue") or {}).get("identifier") if source == issue_id else None,
        )

    @retry_on_rate_limit()
    async def get_issue_relations(self, issue_id: str) -> list[IssueRelation]:
        """List the relations of an issue, expressing inverse ones from its point of view."""
        data = await self.execute(queries.ISSUE_RELATIONS_QUERY, {"id": issue_id})
        issue = data.get("issue") or {}
        relations: list[IssueRelation] = []
        for node in (issue.get("relations") or {}).get("nodes", []):
            related = node.get("relatedIssue") or {}
            relations.append(
                IssueRelation(
                    id=node["id"],
                    type=node["type"],
                    issue_id=issue_id,
                    related_issue_id=related.get("id"),
                    related_issue_identifier=related.get("identifier"),
                )
            )
        for node in (issue.get("inverseRelations") or {}).get("nodes", []):
            other = node.get("issue") or {}
            relations.append(
                IssueRelation(
                    id=node["id"],
                    type=INVERSE_RELATION_NAMES.get(node["type"], node["type"]),
                    issue_id=issue_id,
                    related_issue_id=other.get("id"),
                    related_issue_identifier=other.get("identifier"),
                )
            )
        return relations

    # Projects and cycles
    @retry_on_rate_limit()
    async def list_projects(self, team_id: str, first: int = 100) -> list[Project]:
        """List projects of a team."""
        data = await self.execute(queries.PROJECTS_QUERY, {"teamId": team_id, "first": first})
        team = data.get("team") or {}
        return [Project.model_validate(node) for node in (team.get("projects") or {}).get("nodes", [])]

    async def create_project(self, name: str, team_ids: list[str], description: str | None = None, **kwargs: Any) -> Project:
        """Create a project. Extra keyword arguments are sent as camelCase input fields."""
        extra = {to_camel(key): value for key, value in self._omit_null_parameters(**kwargs).items()}
        input_data = self._omit_null_parameters(name=name, teamIds=team_ids, description=description, **extra)
        result = await self._mutate(queries.CREATE_PROJECT_MUTATION, {"input": input_data}, "projectCreate")
        return Project.model_validate(result["project"])

    @retry_on_rate_limit()
    async def list_cycles(self, team_id: str, first: int = 50) -> list[Cycle]:
        """List cycles of a team."""
        data = await self.execute(queries.CYCLES_QUERY, {"teamId": team_id, "first": first})
        team = data.get("team") or {}
        return [Cycle.model_validate(node) for node in (team.get("cycles") or {}).get("nodes", [])]

    async def create_cycle(self, team_id: str, starts_at: datetime, ends_at: datetime, name: str | None = None) -> Cycle:
        """Create a cycle."""
        if ends_at <= starts_at:
            raise ValueError("A cycle must end after it starts.")
        input_data = self._omit_null_parameters(teamId=team_id, startsAt=starts_at.isoformat(), endsAt=ends_at.isoformat(), name=name)
        result = await self._mutate(queries.CREATE_CYCLE_MUTATION, {"input": input_data}, "cycleCreate")
        return Cycle.model_validate(result["cycle"])

    # Webhooks
    async def create_webhook(
        self,
        url: str,
        team_id: str | None,
        label: str | None,
        resource_types: list[str],
        secret: str | None = None,
    ) -> Webhook:
        """Register a webhook for a team, or for all public teams when no team is given."""
        input_data = self._omit_null_parameters(url=url, label=label, resourceTypes=resource_types, secret=secret, teamId=team_id)
        if team_id is None:
            input_data["allPublicTeams"] = True
        result = await self._mutate(queries.CREATE_WEBHOOK_MUTATION, {"input": input_data}, "webhookCreate")
        webhook = _webhook_from_node(result["webhook"])
        logger.info("Created Linear webhook", webhook_id=webhook.id, url=webhook.url, team_id=webhook.team_id)
        return webhook

    @retry_on_rate_limit()
    async def list_webhooks(self) -> list[Webhook]:
        """List webhooks registered in the workspace."""
        data = await self.execute(queries.WEBHOOKS_QUERY)
        return [_webhook_from_node(node) for node in (data.get("webhooks") or {}).get("nodes", [])]

    async def delete_webhook(self, webhook_id: str) -> bool:
        """Delete a webhook."""
        await self._mutate(queries.DELETE_WEBHOOK_MUTATION, {"id": webhook_id}, "webhookDelete")
        logger.info("Deleted Linear webhook", webhook_id=webhook_id)
        return True
