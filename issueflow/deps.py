from fastapi import Request

from .core import WorkflowCore


def get_core(request: Request) -> WorkflowCore:
    return request.app.state.core
