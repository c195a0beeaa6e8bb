from typing import List

from fastapi import APIRouter, Depends

from issueflow.core import WorkflowCore
from issueflow.deps import get_core
from issueflow.models import AvailableTransition, TransitionRequest, TransitionResult

router = APIRouter()


@router.get("/issues/{issue_id}/transitions", response_model=List[AvailableTransition])
def list_available_transitions(issue_id: str, core: WorkflowCore = Depends(get_core)):
    return core.executor.available_transitions(issue_id)


@router.post("/issues/{issue_id}/transitions", response_model=TransitionResult)
def execute_transition(issue_id: str, body: TransitionRequest, core: WorkflowCore = Depends(get_core)):
    # A move the workflow forbids is a normal answer (success=False), not an HTTP error
    return core.executor.execute_transition(issue_id, body.to_status_id)
