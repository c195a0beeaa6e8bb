"""
Transition Executor
Runtime state-machine check for issue status changes.

An illegal move is an expected outcome and comes back as
TransitionResult(success=False). Missing issue/project/workflow raise a
NotFoundError, and a lost concurrent write raises StatusConflictError.
"""

import logging
from typing import List, Tuple

from .errors import ProjectWorkflowNotFound
from .graph import WorkflowGraph
from .models import AvailableTransition, Issue, TransitionResult
from .repository import WorkflowRepository
from .stores import IssueStore, ProjectStore, StatusCatalog

logger = logging.getLogger(__name__)

TRANSITION_NOT_ALLOWED = "Transition not allowed by workflow"


class TransitionExecutor:
    def __init__(
        self,
        repo: WorkflowRepository,
        projects: ProjectStore,
        issues: IssueStore,
        catalog: StatusCatalog,
    ):
        self.repo = repo
        self.projects = projects
        self.issues = issues
        self.catalog = catalog

    def _resolve(self, issue_id: str) -> Tuple[Issue, WorkflowGraph]:
        """Issue -> project -> bound published workflow -> fresh graph."""
        issue = self.issues.get_issue(issue_id)
        workflow_id = self.projects.get_project_workflow(issue.project_id)
        if workflow_id is None:
            raise ProjectWorkflowNotFound(issue.project_id)
        return issue, self.repo.load_graph(workflow_id)

    def execute_transition(self, issue_id: str, to_status_id: str) -> TransitionResult:
        issue, graph = self._resolve(issue_id)
        current = issue.status_id

        if not graph.is_valid_transition(current, to_status_id):
            logger.info(
                "Rejected transition of issue %s: %s -> %s not in workflow %s",
                issue_id, current, to_status_id, graph.workflow_id,
            )
            return TransitionResult(
                success=False,
                error=self._rejection_message(graph, current),
                from_status_id=current,
                to_status_id=to_status_id,
            )

        # Conditional on the status read above; a racing writer makes this raise
        self.issues.set_issue_status(issue_id, to_status_id, expected_prior_status_id=current)
        logger.info("Issue %s moved %s -> %s", issue_id, current, to_status_id)
        return TransitionResult(success=True, from_status_id=current, to_status_id=to_status_id)

    def available_transitions(self, issue_id: str) -> List[AvailableTransition]:
        """Transitions the issue can take from its current status."""
        issue, graph = self._resolve(issue_id)
        outgoing = graph.outgoing(issue.status_id)
        targets = {tr.id: graph.step(tr.to_step_id).status_id for tr in outgoing}
        statuses = self.catalog.get_statuses(targets.values())

        result = []
        for tr in outgoing:
            status = statuses.get(targets[tr.id])
            if status is None:
                continue
            result.append(AvailableTransition(
                transition_id=tr.id,
                transition_name=tr.name,
                to_status_id=status.id,
                to_status_name=status.name,
                to_status_category=status.category,
                to_status_color=status.color,
            ))
        return result

    def _rejection_message(self, graph: WorkflowGraph, current: str) -> str:
        reachable = graph.reachable_steps(current)
        if not reachable:
            return f"{TRANSITION_NOT_ALLOWED}: this move isn't allowed from the current status"
        names = sorted(s.name for s in self.catalog.get_statuses(reachable).values())
        return (
            f"{TRANSITION_NOT_ALLOWED}: this move isn't allowed from the current status. "
            f"Allowed next statuses: {', '.join(names)}"
        )
