from typing import List

from fastapi import APIRouter, Depends, status

from issueflow.core import WorkflowCore
from issueflow.deps import get_core
from issueflow.models import CreateStatusDTO, Status

router = APIRouter()


@router.get("/statuses", response_model=List[Status])
def list_statuses(core: WorkflowCore = Depends(get_core)):
    return core.catalog.list_statuses()


@router.post("/statuses", response_model=Status, status_code=status.HTTP_201_CREATED)
def create_status(data: CreateStatusDTO, core: WorkflowCore = Depends(get_core)):
    return core.catalog.create_status(data)
