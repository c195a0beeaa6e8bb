from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from issueflow.comparison import compare_workflows
from issueflow.core import WorkflowCore
from issueflow.deps import get_core
from issueflow.models import (
    AddStepDTO,
    AddTransitionDTO,
    CloneWorkflowDTO,
    CreateWorkflowDTO,
    EditResult,
    ImportWorkflowDTO,
    StepRemovalCheck,
    UpdateStepDTO,
    UpdateTransitionDTO,
    UpdateWorkflowDTO,
    ValidationReport,
    Workflow,
    WorkflowComparison,
    WorkflowDetail,
    WorkflowExport,
)

router = APIRouter()


def edit_response(result: EditResult, success_code: int = status.HTTP_200_OK) -> JSONResponse:
    """EditResult -> HTTP: rejected edits are 422 with the graph errors as details."""
    if result.ok:
        return JSONResponse(status_code=success_code, content=result.model_dump(mode="json"))
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "INVALID_EDIT",
                "message": result.errors[0].message,
                "details": [e.model_dump(mode="json") for e in result.errors],
                "issue_count": result.issue_count,
            }
        },
    )


# ============================================================================
# Workflows
# ============================================================================

@router.post("/workflows", response_model=Workflow, status_code=status.HTTP_201_CREATED)
def create_workflow(data: CreateWorkflowDTO, core: WorkflowCore = Depends(get_core)):
    return core.repo.create_workflow(data.name, data.description, data.project_id)


@router.get("/workflows", response_model=List[Workflow])
def list_workflows(
    include_drafts: bool = True,
    project_id: Optional[str] = None,
    core: WorkflowCore = Depends(get_core),
):
    return core.repo.list_workflows(include_drafts=include_drafts, project_id=project_id)


@router.post("/workflows/import", response_model=Workflow, status_code=status.HTTP_201_CREATED)
def import_workflow(data: ImportWorkflowDTO, core: WorkflowCore = Depends(get_core)):
    name = data.name or f"{data.data.workflow.name} (Imported)"
    return core.repo.import_workflow(data.data, name, data.project_id)


@router.get("/workflows/{workflow_id}", response_model=WorkflowDetail)
def get_workflow(workflow_id: str, core: WorkflowCore = Depends(get_core)):
    return core.repo.get_workflow_detail(workflow_id)


@router.patch("/workflows/{workflow_id}", response_model=Workflow)
def update_workflow(workflow_id: str, data: UpdateWorkflowDTO, core: WorkflowCore = Depends(get_core)):
    core.editor.ensure_editable(workflow_id)
    return core.repo.update_workflow(workflow_id, data)


@router.delete("/workflows/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_workflow(workflow_id: str, core: WorkflowCore = Depends(get_core)):
    core.repo.delete_workflow(workflow_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/workflows/{workflow_id}/clone", response_model=Workflow, status_code=status.HTTP_201_CREATED)
def clone_workflow(workflow_id: str, data: CloneWorkflowDTO, core: WorkflowCore = Depends(get_core)):
    return core.repo.clone_workflow(workflow_id, data.new_name, data.project_id)


@router.get("/workflows/{workflow_id}/validate", response_model=ValidationReport)
def validate_workflow(workflow_id: str, core: WorkflowCore = Depends(get_core)):
    errors = core.repo.load_graph(workflow_id).validate()
    return ValidationReport(workflow_id=workflow_id, valid=not errors, errors=errors)


@router.get("/workflows/{workflow_id}/export", response_model=WorkflowExport)
def export_workflow(workflow_id: str, core: WorkflowCore = Depends(get_core)):
    return core.repo.export_workflow(workflow_id)


@router.get("/workflows/{workflow_id}/compare/{other_id}", response_model=WorkflowComparison)
def compare_workflow(workflow_id: str, other_id: str, core: WorkflowCore = Depends(get_core)):
    return compare_workflows(core.repo, core.catalog, workflow_id, other_id)


# ============================================================================
# Steps
# ============================================================================

@router.post("/workflows/{workflow_id}/steps", response_model=EditResult, status_code=status.HTTP_201_CREATED)
def add_step(workflow_id: str, data: AddStepDTO, core: WorkflowCore = Depends(get_core)):
    return edit_response(core.editor.add_step(workflow_id, data), status.HTTP_201_CREATED)


@router.patch("/workflows/{workflow_id}/steps/{step_id}", response_model=EditResult)
def update_step(workflow_id: str, step_id: str, data: UpdateStepDTO, core: WorkflowCore = Depends(get_core)):
    return edit_response(core.editor.update_step(workflow_id, step_id, data))


@router.delete("/workflows/{workflow_id}/steps/{step_id}", response_model=EditResult)
def remove_step(workflow_id: str, step_id: str, core: WorkflowCore = Depends(get_core)):
    return edit_response(core.editor.remove_step(workflow_id, step_id))


@router.get("/workflows/{workflow_id}/statuses/{status_id}/usage", response_model=StepRemovalCheck)
def step_usage(workflow_id: str, status_id: str, core: WorkflowCore = Depends(get_core)):
    return core.guard.can_remove_step(workflow_id, status_id)


# ============================================================================
# Transitions
# ============================================================================

@router.post("/workflows/{workflow_id}/transitions", response_model=EditResult, status_code=status.HTTP_201_CREATED)
def add_transition(workflow_id: str, data: AddTransitionDTO, core: WorkflowCore = Depends(get_core)):
    return edit_response(core.editor.add_transition(workflow_id, data), status.HTTP_201_CREATED)


@router.patch("/workflows/{workflow_id}/transitions/{transition_id}", response_model=EditResult)
def update_transition(
    workflow_id: str,
    transition_id: str,
    data: UpdateTransitionDTO,
    core: WorkflowCore = Depends(get_core),
):
    return edit_response(core.editor.update_transition(workflow_id, transition_id, data))


@router.delete("/workflows/{workflow_id}/transitions/{transition_id}", response_model=EditResult)
def remove_transition(workflow_id: str, transition_id: str, core: WorkflowCore = Depends(get_core)):
    return edit_response(core.editor.remove_transition(workflow_id, transition_id))
