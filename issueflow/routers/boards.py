from typing import List

from fastapi import APIRouter, Depends

from issueflow.core import WorkflowCore
from issueflow.deps import get_core
from issueflow.models import Board, ProjectSyncOutcome

router = APIRouter()


@router.get("/projects/{project_id}/boards", response_model=List[Board])
def list_boards(project_id: str, core: WorkflowCore = Depends(get_core)):
    core.projects.get_project_workflow(project_id)  # 404 for unknown projects
    return core.boards.get_boards_for_project(project_id)


@router.post("/projects/{project_id}/boards/sync", response_model=ProjectSyncOutcome)
def sync_boards(project_id: str, core: WorkflowCore = Depends(get_core)):
    return core.synchronizer.regenerate_board_columns_for_project(project_id)
