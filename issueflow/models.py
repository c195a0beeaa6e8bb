"""
Data Models
SQLModel tables for workflows and their collaborators (statuses, projects,
issues, boards) plus the pydantic DTOs exchanged with callers.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField
from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


class StatusCategory(str, Enum):
    todo = "todo"
    in_progress = "in_progress"
    done = "done"


# Board column order follows the category order
CATEGORY_ORDER: Dict[str, int] = {
    StatusCategory.todo.value: 0,
    StatusCategory.in_progress.value: 1,
    StatusCategory.done.value: 2,
}

EXPORT_FORMAT_VERSION = "1.0"


# ============================================================================
# WORKFLOW TABLES (owned by the engine)
# ============================================================================

class WorkflowTable(SQLModel, table=True):
    """
    Published workflows and their drafts share this table.
    A draft row has is_draft=True and draft_of pointing at the published row;
    the UNIQUE constraint on draft_of keeps one draft per workflow.
    """
    __tablename__ = "workflows"
    __table_args__ = (UniqueConstraint("draft_of", name="uq_workflow_draft"),)

    id: str = Field(primary_key=True)
    name: str
    description: Optional[str] = None
    project_id: Optional[str] = Field(default=None, index=True)
    is_draft: bool = Field(default=False, index=True)
    draft_of: Optional[str] = Field(default=None, foreign_key="workflows.id")
    published_at: Optional[str] = None  # ISO timestamp
    created_at: str  # ISO timestamp
    updated_at: str  # ISO timestamp


class WorkflowStepTable(SQLModel, table=True):
    """One graph node: a status bound into a workflow."""
    __tablename__ = "workflow_steps"
    __table_args__ = (UniqueConstraint("workflow_id", "status_id", name="uq_step_status"),)

    id: str = Field(primary_key=True)
    workflow_id: str = Field(foreign_key="workflows.id", index=True)
    status_id: str = Field(foreign_key="issue_statuses.id", index=True)
    position_x: int = 0
    position_y: int = 0
    is_initial: bool = False


class WorkflowTransitionTable(SQLModel, table=True):
    """One graph edge. Conditions are opaque rule references, stored as JSON."""
    __tablename__ = "workflow_transitions"
    __table_args__ = (
        UniqueConstraint("workflow_id", "from_step_id", "to_step_id", name="uq_transition_pair"),
    )

    id: str = Field(primary_key=True)
    workflow_id: str = Field(foreign_key="workflows.id", index=True)
    from_step_id: str = Field(foreign_key="workflow_steps.id")
    to_step_id: str = Field(foreign_key="workflow_steps.id")
    name: str
    description: Optional[str] = None
    conditions: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON))


# ============================================================================
# COLLABORATOR TABLES (catalog, projects, issues, boards)
# ============================================================================

class IssueStatusTable(SQLModel, table=True):
    __tablename__ = "issue_statuses"

    id: str = Field(primary_key=True)
    name: str
    category: StatusCategory = Field(default=StatusCategory.todo)
    color: str = "#42526E"
    position: int = 0


class ProjectTable(SQLModel, table=True):
    """A project and its binding to the published workflow governing it."""
    __tablename__ = "projects"

    id: str = Field(primary_key=True)
    key: str = Field(index=True, unique=True)
    name: str
    workflow_id: Optional[str] = Field(default=None, foreign_key="workflows.id", index=True)


class IssueTable(SQLModel, table=True):
    __tablename__ = "issues"

    id: str = Field(primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    issue_key: str = Field(index=True, unique=True)
    summary: str
    status_id: str = Field(foreign_key="issue_statuses.id", index=True)
    updated_at: str  # ISO timestamp


class BoardTable(SQLModel, table=True):
    __tablename__ = "boards"

    id: str = Field(primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    name: str


class BoardColumnTable(SQLModel, table=True):
    __tablename__ = "board_columns"

    id: str = Field(primary_key=True)
    board_id: str = Field(foreign_key="boards.id", index=True)
    name: str
    position: int = 0
    min_issues: Optional[int] = None
    max_issues: Optional[int] = None


class BoardColumnStatusTable(SQLModel, table=True):
    __tablename__ = "board_column_statuses"
    __table_args__ = (UniqueConstraint("column_id", "status_id", name="uq_column_status"),)

    id: str = Field(primary_key=True)
    column_id: str = Field(foreign_key="board_columns.id", index=True)
    status_id: str = Field(foreign_key="issue_statuses.id")
    position: int = 0


# ============================================================================
# PYDANTIC MODELS (DTOs)
# ============================================================================

# --- Catalog ---

class Status(BaseModel):
    id: str
    name: str
    category: StatusCategory
    color: str = "#42526E"
    position: int = 0


class CreateStatusDTO(BaseModel):
    name: str
    category: StatusCategory = StatusCategory.todo
    color: str = "#42526E"
    position: int = 0


# --- Workflows ---

class Workflow(BaseModel):
    """Workflow entity (published or draft)"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    project_id: Optional[str] = None
    is_draft: bool = False
    draft_of: Optional[str] = None
    published_at: Optional[str] = None
    created_at: str
    updated_at: str


class WorkflowStep(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    workflow_id: str
    status_id: str
    position_x: int = 0
    position_y: int = 0
    is_initial: bool = False


class WorkflowTransition(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    workflow_id: str
    from_step_id: str
    to_step_id: str
    name: str
    description: Optional[str] = None
    conditions: Optional[List[Dict[str, Any]]] = None


class WorkflowDetail(BaseModel):
    """Workflow with steps and transitions"""
    workflow: Workflow
    steps: List[WorkflowStep]
    transitions: List[WorkflowTransition]


class CreateWorkflowDTO(BaseModel):
    name: str
    description: Optional[str] = None
    project_id: Optional[str] = None


class UpdateWorkflowDTO(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class CloneWorkflowDTO(BaseModel):
    new_name: str
    project_id: Optional[str] = None


class AddStepDTO(BaseModel):
    status_id: str
    position_x: int = 0
    position_y: int = 0
    is_initial: bool = False


class UpdateStepDTO(BaseModel):
    position_x: Optional[int] = None
    position_y: Optional[int] = None
    is_initial: Optional[bool] = None


class AddTransitionDTO(BaseModel):
    from_step_id: str
    to_step_id: str
    name: str
    description: Optional[str] = None
    conditions: Optional[List[Dict[str, Any]]] = None


class UpdateTransitionDTO(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    conditions: Optional[List[Dict[str, Any]]] = None


# --- Validation ---

class GraphError(BaseModel):
    """A structural problem in a workflow graph. Data, never raised."""
    code: str
    message: str
    status_id: Optional[str] = None
    step_id: Optional[str] = None
    transition_id: Optional[str] = None


class ValidationReport(BaseModel):
    workflow_id: str
    valid: bool
    errors: List[GraphError]


class EditResult(BaseModel):
    """Outcome of an edit-path operation; errors are returned, not thrown."""
    ok: bool
    errors: List[GraphError] = PydanticField(default_factory=list)
    step: Optional[WorkflowStep] = None
    transition: Optional[WorkflowTransition] = None
    issue_count: Optional[int] = None


class StepRemovalCheck(BaseModel):
    allowed: bool
    issue_count: int


# --- Export / import ---

class ExportedStep(BaseModel):
    status_id: str
    status_name: Optional[str] = None
    position_x: int = 0
    position_y: int = 0
    is_initial: bool = False


class ExportedTransition(BaseModel):
    """Endpoints by status id, so the file does not depend on step ids."""
    from_status_id: str
    to_status_id: str
    name: str
    description: Optional[str] = None
    conditions: List[Dict[str, Any]] = PydanticField(default_factory=list)


class ExportedWorkflowBody(BaseModel):
    name: str
    description: Optional[str] = None
    steps: List[ExportedStep]
    transitions: List[ExportedTransition] = PydanticField(default_factory=list)


class WorkflowExport(BaseModel):
    """Portable JSON envelope of one workflow (format version 1.0)."""
    model_config = ConfigDict(populate_by_name=True)

    version: str = EXPORT_FORMAT_VERSION
    exported_at: str = PydanticField(alias="exportedAt")
    workflow: ExportedWorkflowBody


class ImportWorkflowDTO(BaseModel):
    data: WorkflowExport
    name: Optional[str] = None  # defaults to "<exported name> (Imported)"
    project_id: Optional[str] = None


# --- Comparison ---

ChangeKind = Literal["removed", "modified", "added", "unchanged"]


class ComparisonItem(BaseModel):
    kind: ChangeKind
    label: str
    status_id: Optional[str] = None
    from_status_id: Optional[str] = None
    to_status_id: Optional[str] = None
    details: Optional[str] = None


class WorkflowComparison(BaseModel):
    left_id: str
    right_id: str
    steps: List[ComparisonItem]
    transitions: List[ComparisonItem]
    summary: Dict[str, int]


# --- Transitions at runtime ---

class TransitionRequest(BaseModel):
    to_status_id: str


class TransitionResult(BaseModel):
    success: bool
    error: Optional[str] = None
    from_status_id: Optional[str] = None
    to_status_id: Optional[str] = None


class AvailableTransition(BaseModel):
    transition_id: str
    transition_name: str
    to_status_id: str
    to_status_name: str
    to_status_category: StatusCategory
    to_status_color: str


# --- Projects, issues, boards ---

class Project(BaseModel):
    id: str
    key: str
    name: str
    workflow_id: Optional[str] = None


class Issue(BaseModel):
    id: str
    project_id: str
    issue_key: str
    summary: str
    status_id: str
    updated_at: str


class BoardColumn(BaseModel):
    id: Optional[str] = None
    name: str
    position: int = 0
    min_issues: Optional[int] = None
    max_issues: Optional[int] = None
    status_ids: List[str] = PydanticField(default_factory=list)


class Board(BaseModel):
    id: str
    project_id: str
    name: str
    columns: List[BoardColumn] = PydanticField(default_factory=list)


# --- Publish / sync results ---

class BoardSyncError(BaseModel):
    board_id: str
    message: str


class ProjectSyncError(BaseModel):
    """Board sync failures for one project, so an operator can re-sync just it."""
    project_id: str
    message: str
    board_errors: List[BoardSyncError] = PydanticField(default_factory=list)


class ProjectSyncOutcome(BaseModel):
    project_id: str
    boards_updated: int
    errors: List[BoardSyncError] = PydanticField(default_factory=list)


class PublishResult(BaseModel):
    workflow: Workflow
    affected_project_ids: List[str]
    boards_updated: int
    sync_errors: List[ProjectSyncError]
