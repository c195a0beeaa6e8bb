from fastapi import APIRouter, Depends, Response, status

from issueflow.core import WorkflowCore
from issueflow.deps import get_core
from issueflow.errors import DraftNotFound
from issueflow.models import PublishResult, Workflow

router = APIRouter()


@router.post("/workflows/{workflow_id}/draft", response_model=Workflow, status_code=status.HTTP_201_CREATED)
def start_draft(workflow_id: str, core: WorkflowCore = Depends(get_core)):
    return core.drafts.start_draft(workflow_id)


@router.get("/workflows/{workflow_id}/draft", response_model=Workflow)
def get_draft(workflow_id: str, core: WorkflowCore = Depends(get_core)):
    draft = core.drafts.get_draft(workflow_id)
    if draft is None:
        raise DraftNotFound(workflow_id)
    return draft


@router.post("/drafts/{draft_id}/publish", response_model=PublishResult)
def publish_draft(draft_id: str, core: WorkflowCore = Depends(get_core)):
    # Sync errors don't fail the request: the publish already committed
    return core.drafts.publish(draft_id)


@router.delete("/drafts/{draft_id}", status_code=status.HTTP_204_NO_CONTENT)
def discard_draft(draft_id: str, core: WorkflowCore = Depends(get_core)):
    core.drafts.discard(draft_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
