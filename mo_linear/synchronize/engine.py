"""Contains the engine reconciling local tasks with Linear issues.

A run has two phases. Planning reads both sides and classifies every
task/issue pair exactly once; it is identical for dry and real runs.
Execution then carries out push actions before pull actions, isolating
failures per item so one bad issue never aborts the whole run.
"""

import time
from typing import Awaitable, Callable

import structlog

from mo_linear.linear.abc import LinearClientBase
from mo_linear.linear.exceptions import LinearAPIError, LinearRateLimitError
from mo_linear.schemas.linear import RemoteIssue, WorkflowState
from mo_linear.schemas.task import Task, TaskFilter
from mo_linear.store.exceptions import StoreError
from mo_linear.store.json_store import JsonTaskStore

from .mapping import issue_to_task_changes, issue_to_task_create, task_to_create_input, task_to_update_input
from .models import (
    PlannedAction,
    Resolution,
    SyncConflict,
    SyncDecision,
    SyncDirection,
    SyncItem,
    SyncOptions,
    SyncResult,
)
from .utils import (
    build_issue_filter,
    issue_changed_remotely,
    issue_matches_filter,
    local_summary,
    remote_summary,
    task_changed_locally,
    text_matches,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

ClientProvider = Callable[[], Awaitable[LinearClientBase]]
TeamProvider = Callable[[], Awaitable[str | None]]

BATCH_SIZE = 50


def _error_code(exc: Exception) -> str:
    if isinstance(exc, LinearRateLimitError):
        return "RATE_LIMITED"
    if isinstance(exc, LinearAPIError):
        return exc.code or "LINEAR_API_ERROR"
    return "STORE_ERROR"


class SyncEngine:
    """Reconciles local tasks with Linear issues."""

    def __init__(self, store: JsonTaskStore, client_provider: ClientProvider, default_team_provider: TeamProvider) -> None:
        """Initialize the engine.

        Args:
            store: Local task store
            client_provider: Coroutine returning an authenticated Linear client;
                raises AuthError when no credential is available
            default_team_provider: Coroutine returning the default team ID
        """
        self.store = store
        self.client_provider = client_provider
        self.default_team_provider = default_team_provider

    async def sync(self, options: SyncOptions | None = None) -> SyncResult:
        """Run one synchronization and report what happened."""
        options = options or SyncOptions()
        client = await self.client_provider()
        team_id = options.team_id or await self.default_team_provider()
        result = SyncResult(dry_run=options.dry_run)

        start_time = time.time()
        logger.info(
            "Starting synchronization",
            direction=options.direction.value,
            team_id=team_id,
            dry_run=options.dry_run,
            force=options.force,
        )
        actions = await self.plan(client, options, team_id, result)
        push_actions = [action for action in actions if action.is_push]
        pull_actions = [action for action in actions if not action.is_push]
        workflow_states: dict[str, list[WorkflowState]] = {}
        for action in push_actions + pull_actions:
            await self._execute(client, action, team_id, options, result, workflow_states)

        logger.info(
            "Finished synchronization",
            duration=time.time() - start_time,
            added=result.added,
            updated=result.updated,
            deleted=result.deleted,
            conflicts=result.conflicts,
            errors=len(result.errors),
            dry_run=options.dry_run,
        )
        return result

    # Planning
    async def plan(self, client: LinearClientBase, options: SyncOptions, team_id: str | None, result: SyncResult) -> list[PlannedAction]:
        """Classify every candidate task and issue into a planned action."""
        direction = options.direction
        actions: list[PlannedAction] = []
        pairs: dict[str, tuple[Task, RemoteIssue]] = {}

        if direction.pushes:
            tasks = await self._select_push_tasks(options, result)
            linked = [task for task in tasks if task.remote_id]
            for task in tasks:
                if not task.remote_id:
                    actions.append(PlannedAction(decision=SyncDecision.CREATE_REMOTE, task=task))
            try:
                remote_by_id = await self._fetch_issues_by_id(client, [task.remote_id for task in linked if task.remote_id])
            except LinearAPIError as exc:
                logger.error("Failed to fetch linked issues", count=len(linked), error=str(exc))
                for task in linked:
                    result.record_error(_error_code(exc), f"Could not fetch linked issue: {exc}", task.id)
                linked = []
                remote_by_id = {}
            for task in linked:
                issue = remote_by_id.get(task.remote_id or "")
                if issue is None:
                    result.record_error("REMOTE_NOT_FOUND", f"Linked issue {task.remote_identifier or task.remote_id} no longer exists", task.id)
                    continue
                pairs[task.id] = (task, issue)

        if direction.pulls:
            if options.filter.issue_ids:
                issues, missing = await self._fetch_explicit_issues(client, options.filter.issue_ids, result)
                for ref in missing:
                    task = await self._find_task_for_issue_ref(ref)
                    if task is not None:
                        actions.append(PlannedAction(decision=SyncDecision.UNLINK_LOCAL, task=task, issue_id=ref))
            elif team_id is None:
                result.record_error("NO_TEAM", "No team selected. Pass team:<id> or set a default team with /mo linear-auth team:<id>.")
                issues = []
            else:
                try:
                    issues = await client.get_all_issues(
                        filter=build_issue_filter(team_id, options.filter),
                        batch_size=BATCH_SIZE,
                        max_items=options.limit,
                    )
                except LinearAPIError as exc:
                    logger.error("Failed to fetch team issues", team_id=team_id, error=str(exc))
                    result.record_error(_error_code(exc), f"Could not fetch issues for team {team_id}: {exc}")
                    issues = []
                issues = [issue for issue in issues if issue_matches_filter(issue, options.filter)]
            for issue in issues:
                task = await self.store.get_task_by_remote_id(issue.id)
                if task is None:
                    actions.append(PlannedAction(decision=SyncDecision.CREATE_LOCAL, issue=issue))
                elif task.id not in pairs:
                    pairs[task.id] = (task, issue)

        for task, issue in pairs.values():
            actions.append(self.classify_pair(task, issue, direction, options.force))
        return actions

    def classify_pair(self, task: Task, issue: RemoteIssue, direction: SyncDirection, force: bool) -> PlannedAction:
        """Decide what to do with a linked task and its issue."""
        local_changed = task_changed_locally(task)
        remote_changed = issue_changed_remotely(task, issue)

        if local_changed and remote_changed and not force:
            resolution: Resolution = "unresolved"
            if task.updated_at > issue.updated_at:
                resolution = "local"
            elif issue.updated_at > task.updated_at:
                resolution = "remote"
            # Only a side this direction may write is applied.
            if (resolution == "local" and not direction.pushes) or (resolution == "remote" and not direction.pulls):
                resolution = "unresolved"
            logger.warning(
                "Both sides changed since last sync",
                task_id=task.id,
                issue_identifier=issue.identifier,
                resolution=resolution,
            )
            return PlannedAction(decision=SyncDecision.CONFLICT, task=task, issue=issue, resolution=resolution)

        if force:
            # The requested direction wins; "both" only pulls when the remote alone changed.
            if direction == SyncDirection.PULL or (direction == SyncDirection.BOTH and remote_changed and not local_changed):
                decision = SyncDecision.UPDATE_LOCAL
            else:
                decision = SyncDecision.UPDATE_REMOTE
        elif local_changed and direction.pushes:
            decision = SyncDecision.UPDATE_REMOTE
        elif remote_changed and direction.pulls:
            decision = SyncDecision.UPDATE_LOCAL
        else:
            decision = SyncDecision.NOOP
        return PlannedAction(decision=decision, task=task, issue=issue)

    async def _select_push_tasks(self, options: SyncOptions, result: SyncResult) -> list[Task]:
        sync_filter = options.filter
        if sync_filter.task_ids:
            tasks = []
            for task_id in sync_filter.task_ids:
                task = await self.store.get_task(task_id)
                if task is None:
                    result.record_error("TASK_NOT_FOUND", f"Task not found: {task_id}", task_id)
                elif text_matches(sync_filter.search_text, task.title, task.description):
                    tasks.append(task)
            return tasks
        if sync_filter.search_text:
            return await self.store.list_tasks(TaskFilter(search_text=sync_filter.search_text))
        if sync_filter.issue_ids:
            all_tasks = await self.store.list_tasks()
            refs = set(sync_filter.issue_ids)
            return [task for task in all_tasks if task.remote_id in refs or task.remote_identifier in refs]
        if sync_filter.states:
            return []
        selected = await self.store.list_tasks(TaskFilter(selected=True))
        return selected or await self.store.list_tasks()

    async def _fetch_issues_by_id(self, client: LinearClientBase, issue_ids: list[str]) -> dict[str, RemoteIssue]:
        if not issue_ids:
            return {}
        issues = await client.get_all_issues(filter={"id": {"in": issue_ids}}, batch_size=BATCH_SIZE)
        return {issue.id: issue for issue in issues}

    async def _fetch_explicit_issues(
        self, client: LinearClientBase, refs: list[str], result: SyncResult
    ) -> tuple[list[RemoteIssue], list[str]]:
        issues: list[RemoteIssue] = []
        missing: list[str] = []
        for ref in refs:
            try:
                issue = await client.get_issue(ref)
            except LinearAPIError as exc:
                logger.error("Failed to fetch issue", issue_ref=ref, error=str(exc))
                result.record_error(_error_code(exc), str(exc), ref)
                continue
            if issue is None:
                missing.append(ref)
            else:
                issues.append(issue)
        return issues, missing

    async def _find_task_for_issue_ref(self, ref: str) -> Task | None:
        task = await self.store.get_task_by_remote_id(ref)
        if task is not None:
            return task
        for candidate in await self.store.list_tasks(TaskFilter(linked=True)):
            if candidate.remote_identifier == ref:
                return candidate
        return None

    # Execution
    async def _execute(
        self,
        client: LinearClientBase,
        action: PlannedAction,
        team_id: str | None,
        options: SyncOptions,
        result: SyncResult,
        workflow_states: dict[str, list[WorkflowState]],
    ) -> None:
        item = SyncItem(local=local_summary(action.task), remote=remote_summary(action.issue))
        decision = action.decision
        if decision == SyncDecision.NOOP:
            result.details.skipped.append(item)
            return
        if decision == SyncDecision.CONFLICT:
            result.conflicts += 1
            result.details.conflicts.append(SyncConflict(local=item.local, remote=item.remote, resolution=action.resolution or "unresolved"))
            if action.resolution == "local":
                decision = SyncDecision.UPDATE_REMOTE
            elif action.resolution == "remote":
                decision = SyncDecision.UPDATE_LOCAL
            else:
                return

        try:
            if decision == SyncDecision.CREATE_REMOTE:
                if team_id is None:
                    result.record_error("NO_TEAM", "No team selected for creating the issue", action.item_id)
                    return
                if not options.dry_run:
                    task = action.require_task()
                    states = await self._get_states(client, team_id, workflow_states)
                    issue = await client.create_issue(task_to_create_input(task, team_id, states))
                    await self.store.mark_synced(task.id, issue, synced_version=task.updated_at)
                    item.remote = remote_summary(issue)
                result.added += 1
                result.details.added.append(item)
            elif decision == SyncDecision.UPDATE_REMOTE:
                if not options.dry_run:
                    task, current = action.require_task(), action.require_issue()
                    state_team = current.team.id if current.team else (task.remote_team_id or team_id)
                    states = await self._get_states(client, state_team, workflow_states) if state_team else []
                    issue = await client.update_issue(current.id, task_to_update_input(task, states, current.state))
                    await self.store.mark_synced(task.id, issue, synced_version=task.updated_at)
                self._count_update(action, result, item)
            elif decision == SyncDecision.CREATE_LOCAL:
                if not options.dry_run:
                    created = await self.store.create_task(issue_to_task_create(action.require_issue()), mark_synced=True)
                    item.local = local_summary(created)
                result.added += 1
                result.details.added.append(item)
            elif decision == SyncDecision.UPDATE_LOCAL:
                if not options.dry_run:
                    task, issue = action.require_task(), action.require_issue()
                    await self.store.mark_synced(task.id, issue, issue_to_task_changes(issue), synced_version=task.updated_at)
                self._count_update(action, result, item)
            elif decision == SyncDecision.UNLINK_LOCAL:
                if not options.dry_run:
                    await self.store.unlink_task(action.require_task().id)
                item.remote = {"id": action.issue_id}
                result.deleted += 1
                result.details.deleted.append(item)
        except (LinearAPIError, StoreError) as exc:
            logger.error(
                "Failed to synchronize item",
                item_id=action.item_id,
                decision=decision.value,
                error=str(exc),
            )
            result.record_error(_error_code(exc), str(exc), action.item_id)

    def _count_update(self, action: PlannedAction, result: SyncResult, item: SyncItem) -> None:
        # Conflicts are reported once, under conflicts.
        if action.decision == SyncDecision.CONFLICT:
            return
        result.updated += 1
        result.details.updated.append(item)

    async def _get_states(self, client: LinearClientBase, team_id: str, cache: dict[str, list[WorkflowState]]) -> list[WorkflowState]:
        if team_id not in cache:
            cache[team_id] = await client.get_workflow_states(team_id)
        return cache[team_id]
