"""
Draft Manager
Edit-then-commit lifecycle for workflows: a draft is a full copy of a
published workflow that can be changed freely, then published (its content
replaces the live workflow) or discarded.

No project ever binds to a draft, so editing one never changes how issues
transition until publish commits.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import List, Optional, Tuple

from .boards import BoardColumnSynchronizer
from .graph import WorkflowGraph
from .models import GraphError, ProjectSyncError, PublishResult, Workflow
from .repository import WorkflowRepository
from .stores import ProjectStore
from .usage import UsageGuard

logger = logging.getLogger(__name__)

SyncResult = Tuple[int, Optional[ProjectSyncError]]


class DraftManager:
    def __init__(
        self,
        repo: WorkflowRepository,
        projects: ProjectStore,
        synchronizer: BoardColumnSynchronizer,
        guard: UsageGuard,
        max_workers: int = 4,
        sync_timeout: float = 30.0,
    ):
        self.repo = repo
        self.projects = projects
        self.synchronizer = synchronizer
        self.guard = guard
        self.max_workers = max_workers
        self.sync_timeout = sync_timeout

    def start_draft(self, workflow_id: str) -> Workflow:
        """Create the draft of a published workflow. Raises DraftAlreadyExists if one is open."""
        draft = self.repo.create_draft(workflow_id)
        logger.info("Draft %s started for workflow %s", draft.id, workflow_id)
        return draft

    def get_draft(self, workflow_id: str) -> Optional[Workflow]:
        self.repo.require_workflow(workflow_id)
        return self.repo.get_draft(workflow_id)

    def publish(self, draft_id: str) -> PublishResult:
        """
        Validate the draft, swap it into the published workflow, then resync
        the boards of every project bound to that workflow.

        The draft is rejected with InvalidWorkflowGraph when its graph is not
        valid or when it drops a status that issues of a bound project still
        hold. Both checks run inside the swap transaction.

        The swap is the commit point: once it returns the publish has
        succeeded, whatever happens to board synchronization afterwards.
        Per-project sync failures come back in `sync_errors`.
        """
        workflow = self.repo.publish_draft(draft_id, check=self._publish_errors)
        logger.info("Draft %s published into workflow %s", draft_id, workflow.id)

        project_ids = self.projects.get_projects_using_workflow(workflow.id)
        results = self._sync_projects(project_ids)

        boards_updated = sum(count for count, _ in results)
        sync_errors = [error for _, error in results if error is not None]
        for error in sync_errors:
            logger.warning("Board sync failed for project %s: %s", error.project_id, error.message)

        return PublishResult(
            workflow=workflow,
            affected_project_ids=project_ids,
            boards_updated=boards_updated,
            sync_errors=sync_errors,
        )

    def discard(self, draft_id: str) -> None:
        """Delete a draft. Discarding a draft that is already gone is a no-op."""
        if self.repo.delete_draft(draft_id):
            logger.info("Draft %s discarded", draft_id)

    def _publish_errors(self, draft: WorkflowGraph, live: WorkflowGraph) -> List[GraphError]:
        errors = draft.validate()
        for status_id in sorted(live.status_ids - draft.status_ids):
            check = self.guard.can_remove_step(live.workflow_id, status_id)
            if not check.allowed:
                errors.append(GraphError(
                    code="step_in_use",
                    message=(
                        f"{check.issue_count} issue(s) are still in status {status_id}, "
                        "which this draft removes"
                    ),
                    status_id=status_id,
                ))
        return errors

    # ------------------------------------------------------------------
    # Board sync fan-out
    # ------------------------------------------------------------------

    def _sync_projects(self, project_ids: List[str]) -> List[SyncResult]:
        """
        Sync every project, in parallel when workers allow. All projects share
        one deadline of `sync_timeout` seconds; a project still running then is
        reported as timed out. Its thread is not interrupted, so its columns may
        still be written after publish returns.
        """
        if self.max_workers <= 1 or len(project_ids) <= 1:
            return [self._sync_project(pid) for pid in project_ids]

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(project_ids)),
            thread_name_prefix="board-sync",
        )
        try:
            futures = [(pid, executor.submit(self._sync_project, pid)) for pid in project_ids]
            done, _ = wait([future for _, future in futures], timeout=self.sync_timeout)
            results: List[SyncResult] = []
            for pid, future in futures:
                if future in done:
                    results.append(future.result())
                else:
                    future.cancel()
                    results.append((0, ProjectSyncError(
                        project_id=pid,
                        message=f"Board sync timed out after {self.sync_timeout}s",
                    )))
            return results
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _sync_project(self, project_id: str) -> SyncResult:
        try:
            outcome = self.synchronizer.regenerate_board_columns_for_project(project_id)
        except Exception as exc:
            return 0, ProjectSyncError(project_id=project_id, message=str(exc))

        if outcome.errors:
            total = outcome.boards_updated + len(outcome.errors)
            return outcome.boards_updated, ProjectSyncError(
                project_id=project_id,
                message=f"{len(outcome.errors)} of {total} board(s) failed to sync",
                board_errors=outcome.errors,
            )
        return outcome.boards_updated, None
