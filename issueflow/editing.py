"""
Workflow Editor
The edit path for steps and transitions. Checks references against the
current graph and asks the Usage Guard before removing a step; problems come
back as GraphError entries in an EditResult instead of exceptions.

Only drafts, and published workflows that no project uses yet, are editable.
"""

import logging

from .errors import DuplicateStep, DuplicateTransition, StepNotFound, WorkflowLocked
from .models import (
    AddStepDTO,
    AddTransitionDTO,
    EditResult,
    GraphError,
    UpdateStepDTO,
    UpdateTransitionDTO,
    Workflow,
)
from .repository import WorkflowRepository
from .stores import ProjectStore, StatusCatalog
from .usage import UsageGuard

logger = logging.getLogger(__name__)


class WorkflowEditor:
    def __init__(
        self,
        repo: WorkflowRepository,
        projects: ProjectStore,
        catalog: StatusCatalog,
        guard: UsageGuard,
    ):
        self.repo = repo
        self.projects = projects
        self.catalog = catalog
        self.guard = guard

    def ensure_editable(self, workflow_id: str) -> Workflow:
        workflow = self.repo.require_workflow(workflow_id)
        if not workflow.is_draft and self.projects.get_projects_using_workflow(workflow_id):
            raise WorkflowLocked(workflow_id)
        return workflow

    # ========================================================================
    # Steps
    # ========================================================================

    def add_step(self, workflow_id: str, data: AddStepDTO) -> EditResult:
        self.ensure_editable(workflow_id)
        graph = self.repo.load_graph(workflow_id)

        errors = []
        if not self.catalog.get_statuses([data.status_id]):
            errors.append(GraphError(
                code="unknown_status",
                message=f"Status {data.status_id} does not exist",
                status_id=data.status_id,
            ))
        if graph.has_status(data.status_id):
            errors.append(self._duplicate_status(data.status_id))
        if data.is_initial and any(s.is_initial for s in graph.steps):
            errors.append(GraphError(
                code="multiple_initial_steps",
                message="The workflow already has an initial step",
                status_id=data.status_id,
            ))
        if errors:
            return EditResult(ok=False, errors=errors)

        try:
            step = self.repo.add_step(workflow_id, data)
        except DuplicateStep:
            return EditResult(ok=False, errors=[self._duplicate_status(data.status_id)])
        return EditResult(ok=True, step=step)

    def update_step(self, workflow_id: str, step_id: str, data: UpdateStepDTO) -> EditResult:
        self.ensure_editable(workflow_id)
        if data.is_initial:
            graph = self.repo.load_graph(workflow_id)
            others = [s for s in graph.steps if s.is_initial and s.id != step_id]
            if others:
                return EditResult(ok=False, errors=[GraphError(
                    code="multiple_initial_steps",
                    message=f"Step {others[0].id} is already the initial step",
                    step_id=step_id,
                )])
        step = self.repo.update_step(workflow_id, step_id, data)
        return EditResult(ok=True, step=step)

    def remove_step(self, workflow_id: str, step_id: str) -> EditResult:
        self.ensure_editable(workflow_id)
        step = self.repo.load_graph(workflow_id).step(step_id)
        if step is None:
            raise StepNotFound(step_id)

        check = self.guard.can_remove_step(workflow_id, step.status_id)
        if not check.allowed:
            return EditResult(
                ok=False,
                errors=[GraphError(
                    code="step_in_use",
                    message=(
                        f"{check.issue_count} issue(s) are still in status {step.status_id}; "
                        "move them to another status before removing this step"
                    ),
                    status_id=step.status_id,
                    step_id=step_id,
                )],
                step=step,
                issue_count=check.issue_count,
            )

        self.repo.remove_step(workflow_id, step_id)
        logger.info("Removed step %s (%s) from workflow %s", step_id, step.status_id, workflow_id)
        return EditResult(ok=True, step=step, issue_count=0)

    # ========================================================================
    # Transitions
    # ========================================================================

    def add_transition(self, workflow_id: str, data: AddTransitionDTO) -> EditResult:
        self.ensure_editable(workflow_id)
        graph = self.repo.load_graph(workflow_id)

        missing = [sid for sid in (data.from_step_id, data.to_step_id) if graph.step(sid) is None]
        if missing:
            return EditResult(ok=False, errors=[GraphError(
                code="orphan_transition",
                message=f"Transition '{data.name}' references steps outside the workflow: {', '.join(missing)}",
                step_id=missing[0],
            )])
        if graph.transition_between(data.from_step_id, data.to_step_id) is not None:
            return EditResult(ok=False, errors=[self._duplicate_transition(data)])

        try:
            transition = self.repo.add_transition(workflow_id, data)
        except DuplicateTransition:
            return EditResult(ok=False, errors=[self._duplicate_transition(data)])
        return EditResult(ok=True, transition=transition)

    def update_transition(self, workflow_id: str, transition_id: str, data: UpdateTransitionDTO) -> EditResult:
        self.ensure_editable(workflow_id)
        transition = self.repo.update_transition(workflow_id, transition_id, data)
        return EditResult(ok=True, transition=transition)

    def remove_transition(self, workflow_id: str, transition_id: str) -> EditResult:
        self.ensure_editable(workflow_id)
        self.repo.remove_transition(workflow_id, transition_id)
        return EditResult(ok=True)

    @staticmethod
    def _duplicate_status(status_id: str) -> GraphError:
        return GraphError(
            code="duplicate_status",
            message=f"Status {status_id} already has a step in this workflow",
            status_id=status_id,
        )

    @staticmethod
    def _duplicate_transition(data: AddTransitionDTO) -> GraphError:
        return GraphError(
            code="duplicate_transition",
            message=f"A transition {data.from_step_id} -> {data.to_step_id} already exists",
            step_id=data.from_step_id,
        )
