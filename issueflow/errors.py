"""
Domain errors for the workflow engine.

Validation problems are not in this module: they are returned as GraphError
data. These exceptions cover not-found (fatal, referential corruption),
conflicts (caller retries or notifies the user) and graph rejection on publish.
"""

from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from .models import GraphError


class WorkflowEngineError(Exception):
    """Base error for the workflow engine."""

    code = "WORKFLOW_ERROR"


# ============================================================================
# Not found
# ============================================================================

class NotFoundError(WorkflowEngineError):
    code = "NOT_FOUND"
    entity = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}")


class WorkflowNotFound(NotFoundError):
    entity = "Workflow"


class DraftNotFound(NotFoundError):
    entity = "Draft"


class IssueNotFound(NotFoundError):
    entity = "Issue"


class ProjectNotFound(NotFoundError):
    entity = "Project"


class StatusNotFound(NotFoundError):
    entity = "Status"


class StepNotFound(NotFoundError):
    entity = "Workflow step"


class TransitionNotFound(NotFoundError):
    entity = "Workflow transition"


class BoardNotFound(NotFoundError):
    entity = "Board"


class ProjectWorkflowNotFound(NotFoundError):
    """The project exists but no published workflow governs it."""

    entity = "Workflow for project"


# ============================================================================
# Conflicts
# ============================================================================

class ConflictError(WorkflowEngineError):
    code = "CONFLICT"


class DraftAlreadyExists(ConflictError):
    def __init__(self, workflow_id: str, draft_id: Optional[str] = None):
        self.workflow_id = workflow_id
        self.draft_id = draft_id
        suffix = f" ({draft_id})" if draft_id else ""
        super().__init__(f"Workflow {workflow_id} already has a draft{suffix}")


class StatusConflictError(ConflictError):
    """The issue left the status that was read before the write could land."""

    def __init__(self, issue_id: str, expected_status_id: str, actual_status_id: Optional[str]):
        self.issue_id = issue_id
        self.expected_status_id = expected_status_id
        self.actual_status_id = actual_status_id
        super().__init__(
            f"Issue {issue_id} is no longer in status {expected_status_id} "
            f"(now {actual_status_id}); reload the issue and retry"
        )


class WorkflowInUse(ConflictError):
    def __init__(self, workflow_id: str, project_ids: Sequence[str]):
        self.workflow_id = workflow_id
        self.project_ids = list(project_ids)
        super().__init__(
            f"Workflow {workflow_id} is used by projects: {', '.join(self.project_ids)}"
        )


class WorkflowLocked(ConflictError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(
            f"Workflow {workflow_id} is published and bound to projects; "
            "start a draft to edit it"
        )


class NotADraft(ConflictError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} is not a draft")


class NotAPublishedWorkflow(ConflictError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} is a draft, not a published workflow")


class DuplicateStep(ConflictError):
    def __init__(self, workflow_id: str, status_id: str):
        self.workflow_id = workflow_id
        self.status_id = status_id
        super().__init__(f"Status {status_id} already has a step in workflow {workflow_id}")


class DuplicateTransition(ConflictError):
    def __init__(self, workflow_id: str, from_step_id: str, to_step_id: str):
        self.workflow_id = workflow_id
        self.from_step_id = from_step_id
        self.to_step_id = to_step_id
        super().__init__(
            f"Workflow {workflow_id} already has a transition {from_step_id} -> {to_step_id}"
        )


# ============================================================================
# Graph rejection
# ============================================================================

class InvalidWorkflowGraph(WorkflowEngineError):
    code = "INVALID_WORKFLOW_GRAPH"

    def __init__(self, workflow_id: str, errors: List["GraphError"]):
        self.workflow_id = workflow_id
        self.errors = list(errors)
        details = "; ".join(e.message for e in self.errors)
        super().__init__(f"Workflow {workflow_id} is not valid: {details}")
